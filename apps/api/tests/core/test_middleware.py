"""Tests for request ID propagation, security headers and CORS."""

import logging
import uuid

import pytest
from httpx import AsyncClient

from app.core.middleware import SECURITY_HEADERS


class TestRequestId:
    async def test_generated_id_is_a_uuid(self, client: AsyncClient) -> None:
        res = await client.get("/health")
        uuid.UUID(res.headers["x-request-id"])

    async def test_client_id_is_echoed(self, client: AsyncClient) -> None:
        res = await client.get("/health", headers={"X-Request-ID": "ci-job-4711"})
        assert res.headers["x-request-id"] == "ci-job-4711"

    async def test_ids_differ_between_requests(self, client: AsyncClient) -> None:
        first = await client.get("/health")
        second = await client.get("/health")
        assert first.headers["x-request-id"] != second.headers["x-request-id"]

    @pytest.mark.parametrize("path", ["/does-not-exist", "/scan/nope"])
    async def test_present_on_errors(self, client: AsyncClient, path: str) -> None:
        res = await client.get(path)
        assert res.status_code == 404
        assert "x-request-id" in res.headers

    async def test_access_line_is_logged(self, client: AsyncClient, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="app.core.middleware"):
            await client.get("/health")
        assert any("GET /health -> 200" in message for message in caplog.messages)


class TestSecurityHeaders:
    @pytest.mark.parametrize("name,value", sorted(SECURITY_HEADERS.items()))
    async def test_header_on_success(self, client: AsyncClient, name: str, value: str) -> None:
        res = await client.get("/scan/statistics")
        assert res.status_code == 200
        assert res.headers.get(name) == value

    @pytest.mark.parametrize("name,value", sorted(SECURITY_HEADERS.items()))
    async def test_header_on_401(self, unauthed_client: AsyncClient, name: str, value: str) -> None:
        res = await unauthed_client.get("/scan/statistics")
        assert res.status_code == 401
        assert res.headers.get(name) == value

    async def test_legacy_xss_header_not_sent(self, client: AsyncClient) -> None:
        res = await client.get("/health")
        assert "x-xss-protection" not in res.headers


class TestCORS:
    async def test_preflight_allowed(self, client: AsyncClient) -> None:
        res = await client.options(
            "/scan",
            headers={
                "Origin": "https://ci.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert res.status_code == 200
        assert res.headers.get("access-control-allow-origin") is not None

    async def test_simple_request_gets_allow_origin(self, client: AsyncClient) -> None:
        res = await client.get("/health", headers={"Origin": "https://ci.example.com"})
        assert "access-control-allow-origin" in res.headers
