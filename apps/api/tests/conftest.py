"""Shared test fixtures for the scan API test suite.

The app is built with create_app(services=...) so no real provider,
scanner binary or database is touched: a fake GitHub-like provider and
fake scanners feed an InMemoryScanStore. SQL store tests use an
in-memory SQLite database instead. Each test gets fresh services.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import MEMORY_STORE_URL, Settings, get_settings
from app.core.services import ScanServices
from app.db.store import SqlScanStore
from app.main import create_app
from runner.config import ScanConfig
from runner.engine import ScanOrchestrator
from runner.scanner.types import Finding
from runner.scm.registry import ProviderRegistry
from runner.scm.types import ChangeSummary, LastCommit, ProviderHealthStatus, RepositoryMetadata
from runner.scm.urls import hostname_of
from runner.store import InMemoryScanStore

TEST_API_KEY = "test-key"
REPO_URL = "https://github.com/acme/widgets"


class FakeProvider:
    """GitHub-like provider whose HEAD revision tests can move."""

    name = "fake-github"
    platform = "github"
    hostnames = ("github.com",)

    def __init__(self) -> None:
        self.head = "abc123"
        self.clones = 0
        self.clone_error: Optional[Exception] = None

    def can_handle(self, repo_url: str) -> bool:
        return hostname_of(repo_url) == "github.com"

    def parse_repository_url(self, repo_url: str):
        raise NotImplementedError

    async def clone(self, repo_url: str, target_dir: Path, options=None) -> str:
        self.clones += 1
        if self.clone_error is not None:
            raise self.clone_error
        target_dir.mkdir(parents=True)
        (target_dir / "app.py").write_text("import os\nvalue = eval(os.environ['X'])\nprint(value)\n")
        return self.head

    async def fetch_metadata(self, repo_url: str, working_copy=None) -> RepositoryMetadata:
        return RepositoryMetadata(
            name=repo_url.rsplit("/", 1)[-1],
            description=None,
            default_branch="main",
            last_commit=LastCommit(hash=self.head),
        )

    async def get_latest_revision(self, repo_url: str) -> str:
        return self.head

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        return ChangeSummary(files_changed=1, additions=3, deletions=1, commits=1)

    async def health_check(self) -> ProviderHealthStatus:
        return ProviderHealthStatus(is_healthy=True, response_time=1.0, api_available=True)


class BrokenProvider(FakeProvider):
    name = "broken"
    platform = "gitlab"
    hostnames = ("gitlab.com",)

    def can_handle(self, repo_url: str) -> bool:
        return hostname_of(repo_url) == "gitlab.com"

    async def health_check(self) -> ProviderHealthStatus:
        raise RuntimeError("api unreachable")


class FakeScanner:
    def __init__(self, name: str, severities: tuple[str, ...]):
        self.name = name
        self.severities = severities
        self.error: Optional[Exception] = None

    async def version(self) -> str:
        return "1.0.0"

    async def scan(self, path: Path) -> list[Finding]:
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return [
            Finding(f"{self.name}.rule-{i}", "issue", "app.py", 2, severity)
            for i, severity in enumerate(self.severities)
        ]


def _override_settings() -> Settings:
    """Return Settings with a known API key and no external services."""
    return Settings(
        api_keys=[TEST_API_KEY],
        store_url=MEMORY_STORE_URL,
        webhook_urls=[],
        sentry_dsn="",
        debug=False,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_scanners() -> list[FakeScanner]:
    return [FakeScanner("semgrep", ("ERROR", "WARNING")), FakeScanner("gitleaks", ("high",))]


@pytest.fixture
def scan_services(tmp_path, fake_provider, fake_scanners) -> ScanServices:
    registry = ProviderRegistry(health_check_timeout=1.0)
    registry.register(fake_provider)
    registry.register(BrokenProvider())
    store = InMemoryScanStore()
    orchestrator = ScanOrchestrator(
        registry=registry,
        store=store,
        scanners=fake_scanners,
        config=ScanConfig(workspace_root=str(tmp_path / "work")),
    )
    return ScanServices(registry=registry, store=store, orchestrator=orchestrator)


@pytest.fixture
def app(scan_services):
    """Create a FastAPI app with fake services and test settings.

    The SlowAPI rate limiter uses an in-memory storage that persists across
    requests within the same process. To isolate tests from each other, we
    reset the storage buckets on the module-level limiter before each test.
    """
    from app.core.limiter import limiter

    limiter.reset()

    test_app = create_app(services=scan_services)
    test_app.dependency_overrides[get_settings] = _override_settings
    return test_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client carrying a valid X-API-Key."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-API-Key": TEST_API_KEY},
    ) as ac:
        yield ac


@pytest.fixture
async def unauthed_client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client without an API key."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def sql_store() -> AsyncGenerator[SqlScanStore, None]:
    """A fresh SqlScanStore on in-memory SQLite."""
    store = await SqlScanStore.open("sqlite+aiosqlite:///:memory:", max_history_per_repo=3)
    yield store
    await store.close()
