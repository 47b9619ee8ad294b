"""
FastAPI application for the DoH relay.

Forwards raw DNS query bytes to allow-listed DoH endpoints and mirrors
the upstream status and body back to the caller, including error
statuses such as 412.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Iterable, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .. import __version__
from ..resolvers import ALLOWED_DOH_URLS

logger = logging.getLogger(__name__)

DNS_MESSAGE = "application/dns-message"


class QueryBody(BaseModel):
    data: list[Annotated[int, Field(ge=0, le=255)]]


class ProxyRequest(BaseModel):
    """Body of a POST /doh-proxy request."""
    url: str
    body: QueryBody


def create_app(
    allowed_urls: Optional[Iterable[str]] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> FastAPI:
    """
    Create and configure the relay application.

    Args:
        allowed_urls: DoH endpoints the relay may forward to
            (default: ALLOWED_DOH_URLS)
        client: Optional upstream HTTP client; created lazily if omitted
        timeout: Upstream request timeout in seconds

    Returns:
        FastAPI application
    """
    allowed = frozenset(ALLOWED_DOH_URLS if allowed_urls is None else allowed_urls)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        upstream = app.state.upstream_client
        if upstream is not None and app.state.owns_client:
            await upstream.aclose()
            app.state.upstream_client = None

    app = FastAPI(
        title="DoH Rank Relay",
        description="Allow-listed DNS-over-HTTPS relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.upstream_client = client
    app.state.owns_client = client is None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_client() -> httpx.AsyncClient:
        """Get or create the upstream HTTP/2 client."""
        if app.state.upstream_client is None:
            app.state.upstream_client = httpx.AsyncClient(
                http2=True,
                timeout=httpx.Timeout(timeout, connect=5.0),
            )
        return app.state.upstream_client

    def rejected_url():
        return JSONResponse(status_code=400, content={"error": "Invalid DoH URL"})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        """Answer 400 for a missing or unlisted URL before complaining about the body."""
        if request.url.path == "/doh-proxy":
            body = exc.body if isinstance(exc.body, dict) else {}
            url = body.get("url")
            if not isinstance(url, str) or url not in allowed:
                logger.warning("Rejected DoH URL: %r", url)
                return rejected_url()
        return await request_validation_exception_handler(request, exc)

    @app.post("/doh-proxy")
    async def doh_proxy(payload: ProxyRequest):
        """Forward a DNS query to an allow-listed DoH endpoint."""
        if payload.url not in allowed:
            logger.warning("Rejected DoH URL: %s", payload.url)
            return rejected_url()

        try:
            upstream = await get_client().post(
                payload.url,
                content=bytes(payload.body.data),
                headers={
                    "Content-Type": DNS_MESSAGE,
                    "Accept": DNS_MESSAGE,
                },
            )
        except httpx.HTTPError as e:
            logger.error("DoH request to %s failed: %r", payload.url, e)
            code = "ETIMEDOUT" if isinstance(e, httpx.TimeoutException) else "ECONNFAILED"
            return JSONResponse(
                status_code=502,
                content={
                    "error": "DoH request failed",
                    "message": str(e) or e.__class__.__name__,
                    "type": e.__class__.__name__,
                    "code": code,
                },
            )

        # Every upstream status, 412 included, goes back unchanged
        if not upstream.is_success:
            logger.info("Upstream %s returned %d", payload.url, upstream.status_code)
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            media_type=DNS_MESSAGE,
        )

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def run_relay(host: str = "127.0.0.1", port: int = 3000, log_level: str = "warning"):
    """Run the relay server."""
    app = create_app()
    logger.info("DoH relay listening on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
