"""Tests for the X-API-Key dependency."""

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from app.auth.dependencies import _matches_any, require_api_key
from app.core.config import Settings, get_settings


def _settings(*keys: str) -> Settings:
    return Settings(api_keys=list(keys), store_url="memory://", sentry_dsn="")


class TestRequireApiKey:
    async def test_valid_key_is_returned(self) -> None:
        assert await require_api_key("key-1", _settings("key-1", "key-2")) == "key-1"

    async def test_surrounding_whitespace_is_ignored(self) -> None:
        assert await require_api_key("  key-2 ", _settings("key-1", "key-2")) == "key-2"

    async def test_missing_key(self) -> None:
        with pytest.raises(HTTPException) as excinfo:
            await require_api_key("", _settings("key-1"))
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail == "Missing API key"

    async def test_invalid_key(self) -> None:
        with pytest.raises(HTTPException) as excinfo:
            await require_api_key("nope", _settings("key-1"))
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail == "Invalid API key"

    async def test_unconfigured_keys_reject_everything(self) -> None:
        with pytest.raises(HTTPException) as excinfo:
            await require_api_key("anything", _settings())
        assert excinfo.value.status_code == 401


class TestMatchesAny:
    def test_match(self) -> None:
        assert _matches_any("b", ["a", "b", "c"])

    def test_prefix_is_not_a_match(self) -> None:
        assert not _matches_any("key", ["key-1"])

    def test_empty_list(self) -> None:
        assert not _matches_any("key", [])


class TestApiKeyViaAPI:
    async def test_missing_header_detail(self, unauthed_client: AsyncClient) -> None:
        res = await unauthed_client.get("/scan/statistics")
        assert res.status_code == 401
        assert res.json()["detail"] == "Missing API key"

    async def test_valid_key_passes(self, client: AsyncClient) -> None:
        res = await client.get("/scan/statistics")
        assert res.status_code == 200

    async def test_any_configured_key_is_accepted(self, app) -> None:
        from httpx import ASGITransport

        app.dependency_overrides[get_settings] = lambda: _settings("first", "second")
        transport = ASGITransport(app=app)
        async with AsyncClient(
            transport=transport, base_url="http://test", headers={"X-API-Key": "second"}
        ) as ac:
            res = await ac.get("/scan/statistics")
        assert res.status_code == 200
