"""
Unit Tests - API Middleware
"""
import time
from collections import deque

import httpx
import pytest
from fastapi import FastAPI
from starlette.requests import Request

from storefront.serving.api.middleware import RateLimitMiddleware

PROXY = "10.0.0.2"


def limited_app(**options) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, **options)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    return app


def client_for(app: FastAPI, peer: str = "203.0.113.5") -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app, client=(peer, 40000))
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


class TestRateLimit:
    """Tests for RateLimitMiddleware"""

    async def test_forwarded_header_ignored_from_untrusted_peer(self):
        """Test rotating X-Forwarded-For does not reset the limit"""
        app = limited_app(max_requests=2, window_seconds=60)

        async with client_for(app) as client:
            statuses = [
                (await client.get("/ping", headers={"X-Forwarded-For": f"198.51.100.{i}"})).status_code
                for i in range(5)
            ]

        assert statuses == [200, 200, 429, 429, 429]

    async def test_forwarded_header_used_behind_trusted_proxy(self):
        """Test each forwarded client gets its own budget behind a trusted proxy"""
        app = limited_app(max_requests=1, window_seconds=60, trusted_proxies=[PROXY])

        async with client_for(app, peer=PROXY) as client:
            first = await client.get("/ping", headers={"X-Forwarded-For": "198.51.100.1"})
            other = await client.get("/ping", headers={"X-Forwarded-For": "198.51.100.2, 10.0.0.1"})
            repeat = await client.get("/ping", headers={"X-Forwarded-For": "198.51.100.1"})

        assert (first.status_code, other.status_code, repeat.status_code) == (200, 200, 429)
        assert repeat.json()["error"] == "rate_limited"

    async def test_remaining_header(self):
        """Test responses report the remaining budget"""
        app = limited_app(max_requests=3, window_seconds=60)

        async with client_for(app) as client:
            response = await client.get("/ping")

        assert response.headers["X-RateLimit-Remaining"] == "2"

    def test_sweep_drops_idle_clients(self):
        """Test clients with no hits inside the window are forgotten"""
        limiter = RateLimitMiddleware(limited_app(), max_requests=5, window_seconds=10)
        now = time.monotonic()
        limiter._requests["198.51.100.1"] = deque([now - 30])
        limiter._requests["198.51.100.2"] = deque([now - 1])

        limiter.sweep(now)

        assert limiter.tracked_clients == 1
        assert list(limiter._requests) == ["198.51.100.2"]

    @pytest.mark.parametrize("peer", ["203.0.113.5", PROXY])
    def test_client_id_without_forwarded_header(self, peer):
        """Test the socket peer is the key when no header is sent"""
        limiter = RateLimitMiddleware(limited_app(), trusted_proxies=[PROXY])
        request = Request({"type": "http", "method": "GET", "path": "/ping", "headers": [], "client": (peer, 1)})

        assert limiter.client_id(request) == peer
