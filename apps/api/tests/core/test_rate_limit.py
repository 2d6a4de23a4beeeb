"""Tests for rate limiting on scan-trigger endpoints.

SlowAPI rate limits are scoped per key function (hashed API key). The
`app` fixture resets the limiter storage so each test starts with empty
buckets. Default limits: scan 5/5minutes, force 3/5minutes.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from app.core.config import Settings, get_settings
from app.core.limiter import _api_key_key

REPO = "https://github.com/acme/widgets"


def _request(headers: dict[str, str], client=("203.0.113.7", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestKeyFunction:
    def test_keyed_on_hashed_api_key(self) -> None:
        key = _api_key_key(_request({"X-API-Key": "secret-key"}))
        assert key.startswith("key:")
        assert "secret-key" not in key
        assert key == _api_key_key(_request({"X-API-Key": "secret-key"}, client=("198.51.100.1", 1)))

    def test_different_keys_get_different_buckets(self) -> None:
        assert _api_key_key(_request({"X-API-Key": "a"})) != _api_key_key(_request({"X-API-Key": "b"}))

    def test_falls_back_to_client_ip(self) -> None:
        assert _api_key_key(_request({})) == "203.0.113.7"


class TestScanRateLimit:
    async def test_first_request_is_accepted(self, client: AsyncClient) -> None:
        res = await client.post("/scan", json={"repoUrl": REPO})
        assert res.status_code != 429

    async def test_429_returned_after_exceeding_limit(self, client: AsyncClient) -> None:
        statuses = []
        for _ in range(7):
            r = await client.post("/scan", json={"repoUrl": REPO})
            statuses.append(r.status_code)

        assert statuses[:5] == [200] * 5
        assert statuses[5:] == [429, 429]

    async def test_force_has_its_own_tighter_limit(self, client: AsyncClient) -> None:
        statuses = [
            (await client.post("/scan/force", json={"repoUrl": REPO})).status_code
            for _ in range(4)
        ]
        assert statuses == [200, 200, 200, 429]
        # The plain scan bucket is untouched
        assert (await client.post("/scan", json={"repoUrl": REPO})).status_code == 200

    async def test_429_response_has_security_headers(self, client: AsyncClient) -> None:
        """A 429 response from the rate limiter must still have security headers."""
        last = None
        for _ in range(6):
            last = await client.post("/scan", json={"repoUrl": REPO})

        assert last.status_code == 429
        assert last.headers.get("x-content-type-options") == "nosniff"
        assert last.headers.get("x-frame-options") == "DENY"
        assert "x-request-id" in last.headers

    async def test_limits_are_per_api_key(self, app) -> None:
        app.dependency_overrides[get_settings] = lambda: Settings(
            api_keys=["key-a", "key-b"], store_url="memory://", sentry_dsn=""
        )
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            for _ in range(5):
                await ac.post("/scan", json={"repoUrl": REPO}, headers={"X-API-Key": "key-a"})
            blocked = await ac.post("/scan", json={"repoUrl": REPO}, headers={"X-API-Key": "key-a"})
            other = await ac.post("/scan", json={"repoUrl": REPO}, headers={"X-API-Key": "key-b"})

        assert blocked.status_code == 429
        assert other.status_code == 200

    async def test_health_is_not_rate_limited(self, client: AsyncClient) -> None:
        for _ in range(40):
            r = await client.get("/health")
            assert r.status_code != 429
