"""
Relay transport for DoH probes.

Resolvers are not contacted directly: each encoded query is posted to
the relay, which forwards it to the resolver's DoH endpoint and mirrors
the upstream status and body back.
"""

import logging
import time
from typing import Optional

import httpx

from .models import FailureReason, ProbeOutcome, Resolver

logger = logging.getLogger(__name__)

DEFAULT_RELAY_URL = "http://127.0.0.1:3000/doh-proxy"
DEFAULT_TIMEOUT_MS = 5000


def _is_json(response: httpx.Response) -> bool:
    return response.headers.get("content-type", "").startswith("application/json")


def _relay_error_message(response: httpx.Response) -> str:
    """Build a message from the relay's 502 diagnostic fields."""
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.reason_phrase}"
    return "{}: {} (type={}, code={})".format(
        data.get("error", "relay error"),
        data.get("message", ""),
        data.get("type", "unknown"),
        data.get("code", "UNKNOWN"),
    )


class RelayClient:
    """
    Sends encoded DNS queries through the DoH relay.

    One instance can serve every resolver of a session; the underlying
    HTTP client is created on first use and reused.
    """

    def __init__(
        self,
        relay_url: str = DEFAULT_RELAY_URL,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the relay client.

        Args:
            relay_url: Full URL of the relay's /doh-proxy endpoint
            timeout_ms: Overall per-probe timeout in milliseconds
            transport: Optional httpx transport (used to stub the relay)
        """
        self.relay_url = relay_url
        self.timeout_ms = timeout_ms
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.timeout_ms / 1000),
            )
        return self._client

    async def probe(self, resolver: Resolver, query: bytes) -> ProbeOutcome:
        """
        Send one encoded query for a resolver through the relay.

        Args:
            resolver: Resolver whose endpoint the relay should forward to
            query: DNS wire-format query

        Returns:
            ProbeOutcome with elapsed milliseconds or a failure reason
        """
        if not isinstance(query, (bytes, bytearray)):
            raise TypeError(f"query must be bytes, not {type(query).__name__}")

        client = await self._get_client()
        payload = {
            "url": resolver.endpoint,
            "body": {"data": list(query)},
        }

        start = time.perf_counter_ns()
        try:
            response = await client.post(
                self.relay_url,
                json=payload,
                timeout=self.timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            logger.warning("Probe %s timed out after %sms", resolver.name, self.timeout_ms)
            return ProbeOutcome.failure(
                FailureReason.TIMEOUT,
                f"Timed out after {self.timeout_ms:g}ms: {e.__class__.__name__}",
            )
        except httpx.TransportError as e:
            logger.warning("Probe %s connection error: %s", resolver.name, e)
            return ProbeOutcome.failure(
                FailureReason.CONNECTION_ERROR,
                f"{e.__class__.__name__}: {e}",
            )
        end = time.perf_counter_ns()

        status = response.status_code
        if response.is_success:
            return ProbeOutcome.success((end - start) / 1_000_000)

        if status == 412:
            logger.warning(
                "Probe %s: DNS server returned Precondition Failed (412)",
                resolver.name,
            )
            return ProbeOutcome.failure(
                FailureReason.PRECONDITION_FAILED,
                "DNS server returned Precondition Failed (412)",
            )

        if status == 400 and _is_json(response):
            logger.warning("Relay rejected endpoint %s", resolver.endpoint)
            return ProbeOutcome.failure(
                FailureReason.RELAY_REJECTED,
                f"Relay rejected endpoint {resolver.endpoint}",
            )

        if status == 502 and _is_json(response):
            message = _relay_error_message(response)
            logger.warning("Relay failed for %s: %s", resolver.name, message)
            return ProbeOutcome.failure(FailureReason.RELAY_ERROR, message)

        message = f"HTTP {status}: {response.reason_phrase}"
        logger.warning("Probe %s failed: %s", resolver.name, message)
        return ProbeOutcome.failure(FailureReason.UPSTREAM_STATUS, message)

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
