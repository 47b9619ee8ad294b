"""Tests for the DoH relay service."""

import asyncio
from datetime import datetime

import httpx
import pytest
from fastapi.testclient import TestClient

from dohrank.codec import encode
from dohrank.models import FailureReason, Resolver, SessionStatus, TestOptions
from dohrank.relay import create_app
from dohrank.resolvers import ALLOWED_DOH_URLS
from dohrank.runner import TestSession
from dohrank.transports import RelayClient

GOOD_URL = "https://dns.alidns.com/dns-query"
REJECTING_URL = "https://doh.pub/dns-query"
EVIL_URL = "https://evil.example/dns-query"


class Upstream:
    """Stub DoH servers keyed by URL."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == REJECTING_URL:
            return httpx.Response(412, content=b"precondition")
        # Echo the query back as the "answer"
        return httpx.Response(
            200,
            content=request.content,
            headers={"Content-Type": "application/dns-message"},
        )


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def app(upstream):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return create_app(allowed_urls=[GOOD_URL, REJECTING_URL], client=client)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def proxy_body(url, data=b"\x12\x34\x01\x00"):
    return {"url": url, "body": {"data": list(data)}}


class TestRelayAPI:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        datetime.fromisoformat(data["timestamp"])

    def test_rejects_url_outside_allow_list(self, client, upstream):
        response = client.post("/doh-proxy", json=proxy_body(EVIL_URL))
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid DoH URL"}
        assert upstream.requests == []

    def test_allow_list_requires_exact_match(self, client, upstream):
        response = client.post("/doh-proxy", json=proxy_body(GOOD_URL + "?x=1"))
        assert response.status_code == 400
        assert upstream.requests == []

    def test_forwards_bytes_verbatim(self, client, upstream):
        query = encode("example.com")
        response = client.post("/doh-proxy", json=proxy_body(GOOD_URL, query))

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/dns-message"
        assert response.content == query

        sent = upstream.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == GOOD_URL
        assert sent.content == query
        assert sent.headers["content-type"] == "application/dns-message"
        assert sent.headers["accept"] == "application/dns-message"

    def test_upstream_412_is_relayed_unchanged(self, client):
        response = client.post("/doh-proxy", json=proxy_body(REJECTING_URL))
        assert response.status_code == 412
        assert response.content == b"precondition"

    def test_transport_failure_returns_502_with_diagnostics(self):
        def broken(request):
            raise httpx.ConnectError("name resolution failed", request=request)

        app = create_app(
            allowed_urls=[GOOD_URL],
            client=httpx.AsyncClient(transport=httpx.MockTransport(broken)),
        )
        with TestClient(app) as client:
            response = client.post("/doh-proxy", json=proxy_body(GOOD_URL))

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "DoH request failed"
        assert data["message"] == "name resolution failed"
        assert data["type"] == "ConnectError"
        assert data["code"] == "ECONNFAILED"

    def test_invalid_byte_values_are_client_errors(self, client, upstream):
        response = client.post(
            "/doh-proxy",
            json={"url": GOOD_URL, "body": {"data": [1, 300]}},
        )
        assert response.status_code == 422
        assert upstream.requests == []

    @pytest.mark.parametrize("payload", [
        {"body": {"data": [1, 2]}},
        {"url": None, "body": {"data": [1, 2]}},
        {"url": EVIL_URL, "body": {"data": [1, 300]}},
        {"url": EVIL_URL},
        ["not", "an", "object"],
    ])
    def test_missing_or_unlisted_url_in_malformed_body_is_rejected(self, client, upstream, payload):
        response = client.post("/doh-proxy", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid DoH URL"}
        assert upstream.requests == []

    def test_allowed_url_without_body_is_a_validation_error(self, client, upstream):
        response = client.post("/doh-proxy", json={"url": GOOD_URL})
        assert response.status_code == 422
        assert upstream.requests == []

    def test_default_allow_list(self):
        with TestClient(create_app()) as client:
            response = client.post("/doh-proxy", json=proxy_body(EVIL_URL))
        assert response.status_code == 400
        assert GOOD_URL in ALLOWED_DOH_URLS


class TestThroughRelay:
    """RelayClient talking to the relay app in-process."""

    def relay_client(self, app):
        return RelayClient(
            "http://relay.test/doh-proxy",
            transport=httpx.ASGITransport(app=app),
        )

    def test_probe_outcomes(self, app):
        async def go():
            async with self.relay_client(app) as client:
                query = encode("example.com")
                return [
                    await client.probe(Resolver("ok", "OK", GOOD_URL), query),
                    await client.probe(Resolver("p", "Pub", REJECTING_URL), query),
                    await client.probe(Resolver("x", "Evil", EVIL_URL), query),
                ]

        ok, rejected_upstream, rejected_relay = asyncio.run(go())
        assert ok.is_success
        assert rejected_upstream.reason == FailureReason.PRECONDITION_FAILED
        assert rejected_relay.reason == FailureReason.RELAY_REJECTED

    def test_full_session(self, app):
        good = Resolver("ok", "OK", GOOD_URL)
        picky = Resolver("p", "Pub", REJECTING_URL)
        events = []

        async def go():
            async with self.relay_client(app) as client:
                session = TestSession(client, on_event=events.append)
                options = TestOptions(
                    domain="example.com", rounds=2, retry=2,
                    interval_ms=0, backoff_base_ms=0,
                )
                return session, await session.start(options, [picky, good])

        session, ranked = asyncio.run(go())
        assert session.status == SessionStatus.COMPLETED
        assert [agg.resolver for agg in ranked] == [good, picky]
        assert ranked[0].success_count == 2
        assert ranked[1].success_count == 0
        assert ranked[1].total_count == 2
