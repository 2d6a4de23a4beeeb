from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from runner.config import DEFAULT_SCANNERS, ScanConfig

MEMORY_STORE_URL = "memory://"


def _split_csv(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def _normalise_store_url(url: str) -> str:
    """Ensure the STORE_URL uses an async driver prefix.

    Plain ``postgresql://`` / ``postgres://`` strings are rewritten to
    ``postgresql+asyncpg://`` and plain ``sqlite://`` to
    ``sqlite+aiosqlite://``. ``memory://`` selects the in-process store.
    """
    if url.startswith("postgresql://") or url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    List-valued settings (API_KEYS, WEBHOOK_URLS, SCANNERS, CORS_ORIGINS)
    accept a comma-separated string.

    Accepted STORE_URL formats
    ──────────────────────────
    • memory://                        (in-process, lost on restart)
    • sqlite+aiosqlite:///./scans.db   (default driver for local use)
    • sqlite:///./scans.db             (normalised to aiosqlite)
    • postgresql+asyncpg://...         (asyncpg must be installed)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Auth: requests must carry one of these in X-API-Key.
    # An empty list rejects every guarded request.
    api_keys: Annotated[list[str], NoDecode] = []

    # SCM access tokens, optional for public repositories.
    github_token: str = ""
    gitlab_token: str = ""
    bitbucket_token: str = ""
    # Only this GitLab instance receives gitlab_token.
    gitlab_host: str = "gitlab.com"

    # Notifications
    webhook_urls: Annotated[list[str], NoDecode] = []
    webhook_secret: str = ""
    webhook_timeout_seconds: float = 10.0

    # Scanning
    scanners: Annotated[list[str], NoDecode] = list(DEFAULT_SCANNERS)
    scanner_timeout_seconds: float = 300.0
    best_effort_scanning: bool = False
    reject_duplicate_scans: bool = False
    clone_timeout_seconds: float = 300.0
    health_check_timeout_seconds: float = 10.0
    allow_private_networks: bool = False
    workspace_root: str = ""

    # Store
    store_url: str = "sqlite+aiosqlite:///./scan_store.db"
    # Includes the current record, so at least 1.
    max_history_per_repo: int = Field(default=20, ge=1)

    @field_validator("api_keys", "webhook_urls", "scanners", "cors_origins", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        return _split_csv(v)

    @field_validator("store_url", mode="before")
    @classmethod
    def normalise_store_url(cls, v: str) -> str:
        return _normalise_store_url(v)

    # CORS allowed origins, comma-separated.
    # Defaults to ["*"] for local development; restrict in production.
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    # Rate limits in SlowAPI format, e.g. "10/minute", "5/5minutes".
    scan_rate_limit: str = "5/5minutes"
    force_scan_rate_limit: str = "3/5minutes"
    context_rate_limit: str = "20/minute"
    read_rate_limit: str = "30/minute"

    # Sentry; blank disables error capture.
    sentry_dsn: str = ""

    # App
    debug: bool = True

    def to_scan_config(self) -> ScanConfig:
        return ScanConfig(
            github_token=self.github_token,
            gitlab_token=self.gitlab_token,
            gitlab_host=self.gitlab_host,
            bitbucket_token=self.bitbucket_token,
            scanners=tuple(self.scanners),
            scanner_timeout_seconds=self.scanner_timeout_seconds,
            clone_timeout_seconds=self.clone_timeout_seconds,
            health_check_timeout_seconds=self.health_check_timeout_seconds,
            best_effort_scanning=self.best_effort_scanning,
            allow_private_networks=self.allow_private_networks,
            max_history_per_repo=self.max_history_per_repo,
            reject_duplicate_scans=self.reject_duplicate_scans,
            workspace_root=self.workspace_root or None,
        )


def get_settings() -> Settings:
    return Settings()
