"""Tests for Settings parsing and the runner-facing ScanConfig."""

import pytest
from pydantic import ValidationError

from app.core.config import MEMORY_STORE_URL, Settings
from runner.config import DEFAULT_SCANNERS, ScanConfig


class TestListSettings:
    def test_comma_separated_env_values(self, monkeypatch) -> None:
        monkeypatch.setenv("API_KEYS", "one, two,,three ")
        monkeypatch.setenv("WEBHOOK_URLS", "https://hooks.example.com/a")
        monkeypatch.setenv("SCANNERS", "gitleaks")
        settings = Settings(_env_file=None)
        assert settings.api_keys == ["one", "two", "three"]
        assert settings.webhook_urls == ["https://hooks.example.com/a"]
        assert settings.scanners == ["gitleaks"]

    def test_lists_pass_through(self) -> None:
        settings = Settings(_env_file=None, api_keys=["a", " b "])
        assert settings.api_keys == ["a", "b"]

    def test_defaults(self, monkeypatch) -> None:
        for name in ("API_KEYS", "SCANNERS", "CORS_ORIGINS", "STORE_URL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.api_keys == []
        assert settings.scanners == list(DEFAULT_SCANNERS)
        assert settings.cors_origins == ["*"]
        assert settings.store_url == "sqlite+aiosqlite:///./scan_store.db"


class TestStoreUrl:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("postgresql://u:p@db/scans", "postgresql+asyncpg://u:p@db/scans"),
            ("postgres://u:p@db/scans", "postgresql+asyncpg://u:p@db/scans"),
            ("sqlite:///./scans.db", "sqlite+aiosqlite:///./scans.db"),
            ("sqlite+aiosqlite:///./scans.db", "sqlite+aiosqlite:///./scans.db"),
            (MEMORY_STORE_URL, MEMORY_STORE_URL),
        ],
    )
    def test_normalised_to_async_driver(self, raw: str, expected: str) -> None:
        assert Settings(_env_file=None, store_url=raw).store_url == expected


class TestToScanConfig:
    def test_maps_fields(self) -> None:
        settings = Settings(
            _env_file=None,
            github_token="ghp",
            scanners=["semgrep"],
            best_effort_scanning=True,
            reject_duplicate_scans=True,
            max_history_per_repo=5,
            workspace_root="/srv/work",
        )
        config = settings.to_scan_config()
        assert config.github_token == "ghp"
        assert config.scanners == ("semgrep",)
        assert config.best_effort_scanning is True
        assert config.reject_duplicate_scans is True
        assert config.max_history_per_repo == 5
        assert config.workspace_root == "/srv/work"

    def test_blank_workspace_root_means_system_temp(self) -> None:
        assert Settings(_env_file=None, workspace_root="").to_scan_config().workspace_root is None

    def test_gitlab_host_is_passed_through(self) -> None:
        config = Settings(_env_file=None, gitlab_host="gitlab.acme.io").to_scan_config()
        assert config.gitlab_host == "gitlab.acme.io"


class TestHistoryLimit:
    @pytest.mark.parametrize("limit", [0, -3])
    def test_below_one_rejected(self, limit: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_history_per_repo=limit)

    def test_env_value_below_one_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("MAX_HISTORY_PER_REPO", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_scan_config_rejects_zero(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            ScanConfig(max_history_per_repo=0)

    def test_one_is_accepted(self) -> None:
        assert Settings(_env_file=None, max_history_per_repo=1).to_scan_config().max_history_per_repo == 1
