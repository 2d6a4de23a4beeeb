"""Tests for ScanOrchestrator: skip-vs-rescan decisions, failures, cleanup, notifications.

Providers and scanners are in-process fakes; the store is the real
InMemoryScanStore.
"""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from runner.config import ScanConfig
from runner.engine.orchestrator import ScanOrchestrator
from runner.engine.types import get_scan_id
from runner.errors import CloneFailure, ProviderUnavailable, ScanInProgress, ScannerFailure
from runner.scanner.paths import ScanPathError
from runner.scanner.types import Finding, ScannerError
from runner.scm.registry import ProviderRegistry
from runner.scm.types import (
    ChangeSummary,
    LastCommit,
    ProviderHealthStatus,
    RepositoryMetadata,
)
from runner.scm.urls import hostname_of
from runner.store.memory import InMemoryScanStore

REPO = "https://github.com/acme/widgets"


class FakeProvider:
    name = "fake-github"
    platform = "github"
    hostnames = ("github.com",)

    def __init__(self, head: str = "abc123", clone_delay: float = 0.0):
        self.head = head
        self.clone_delay = clone_delay
        self.clone_error: Optional[Exception] = None
        self.metadata_error: Optional[Exception] = None
        self.clones = 0
        self.cloned_dirs: list[Path] = []

    def can_handle(self, repo_url: str) -> bool:
        return hostname_of(repo_url) == "github.com"

    def parse_repository_url(self, repo_url: str):
        raise NotImplementedError

    async def clone(self, repo_url: str, target_dir: Path, options=None) -> str:
        self.clones += 1
        if self.clone_delay:
            await asyncio.sleep(self.clone_delay)
        if self.clone_error is not None:
            raise self.clone_error
        target_dir.mkdir(parents=True)
        (target_dir / "app.py").write_text("a = 1\nb = eval(a)\nc = 3\n")
        self.cloned_dirs.append(target_dir)
        return self.head

    async def fetch_metadata(self, repo_url: str, working_copy=None) -> RepositoryMetadata:
        if self.metadata_error is not None:
            raise self.metadata_error
        return RepositoryMetadata(
            name="widgets",
            description=None,
            default_branch="main",
            last_commit=LastCommit(hash=self.head),
        )

    async def get_latest_revision(self, repo_url: str) -> str:
        return self.head

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        return ChangeSummary(files_changed=1, additions=1, deletions=0, commits=1)

    async def health_check(self) -> ProviderHealthStatus:
        return ProviderHealthStatus(is_healthy=True, response_time=0.0)


class FakeScanner:
    def __init__(self, name: str, findings: int = 1, error: Optional[Exception] = None):
        self.name = name
        self.findings = findings
        self.error = error
        self.scanned: list[Path] = []
        self.seen_scan_ids: list[str] = []

    async def version(self) -> str:
        return "1.0.0"

    async def scan(self, path: Path) -> list[Finding]:
        self.scanned.append(path)
        self.seen_scan_ids.append(get_scan_id())
        assert (path / "app.py").exists()
        if self.error is not None:
            raise self.error
        return [Finding(f"{self.name}.rule", "issue", "app.py", 2, "high") for _ in range(self.findings)]


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.payloads: list[dict] = []
        self.error = error

    async def notify(self, payload: dict) -> None:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "work"


def _orchestrator(
    provider: FakeProvider,
    workspace_root: Path,
    scanners=None,
    notifier=None,
    **config,
) -> ScanOrchestrator:
    registry = ProviderRegistry()
    registry.register(provider)
    return ScanOrchestrator(
        registry=registry,
        store=InMemoryScanStore(),
        scanners=scanners if scanners is not None else [FakeScanner("semgrep", 2), FakeScanner("gitleaks", 1)],
        config=ScanConfig(workspace_root=str(workspace_root), **config),
        notifier=notifier,
    )


def _workspace_is_empty(root: Path) -> bool:
    return not root.exists() or list(root.iterdir()) == []


class TestSkipDecision:
    async def test_first_scan_runs(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        outcome = await orch.scan(REPO)
        assert outcome.scan_skipped is False
        assert outcome.reason == "No previous scan"
        assert outcome.record.commit_hash == "abc123"
        assert len(outcome.record.findings) == 3
        assert [s.name for s in outcome.record.scanners] == ["semgrep", "gitleaks"]
        assert outcome.record.repository.default_branch == "main"
        assert provider.clones == 1

    async def test_unchanged_repository_is_served_from_cache(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        first = await orch.scan(REPO)
        second = await orch.scan(REPO)

        assert second.scan_skipped is True
        assert second.reason == "No changes since last scan (commit abc123)"
        assert second.record.scan_id == first.record.scan_id
        assert second.change_detection.has_changes is False
        assert provider.clones == 1
        assert (await orch.store.most_cached())[0].cache_hits == 1

    async def test_equivalent_urls_share_cache(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        await orch.scan("git@github.com:acme/widgets.git")
        outcome = await orch.scan("https://github.com/acme/widgets/")
        assert outcome.scan_skipped
        assert outcome.record.repo_url == REPO

    async def test_moved_head_triggers_rescan(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        await orch.scan(REPO)
        provider.head = "def456"
        outcome = await orch.scan(REPO)
        assert not outcome.scan_skipped
        assert outcome.reason == "Repository changed since last scan"
        assert outcome.record.commit_hash == "def456"
        assert outcome.record.change_detection.change_summary.commits == 1
        assert len(await orch.store.history(REPO)) == 2

    async def test_force_always_rescans(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        first = await orch.scan(REPO)
        forced = await orch.scan(REPO, force=True)
        assert not forced.scan_skipped
        assert forced.reason == "Forced rescan"
        assert forced.record.scan_id != first.record.scan_id
        assert provider.clones == 2

    async def test_invalidate_causes_rescan(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        await orch.scan(REPO)
        await orch.store.invalidate(REPO)
        outcome = await orch.scan(REPO)
        assert not outcome.scan_skipped
        assert provider.clones == 2

    async def test_skipped_outcome_dict(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        await orch.scan(REPO)
        data = (await orch.scan(REPO)).to_dict()
        assert data["scanSkipped"] is True
        assert data["currentChangeDetection"]["hasChanges"] is False
        assert data["findingCount"] == 3


class TestConcurrency:
    async def test_duplicate_requests_clone_once(self, workspace_root) -> None:
        provider = FakeProvider(clone_delay=0.1)
        orch = _orchestrator(provider, workspace_root)
        outcomes = await asyncio.gather(*(orch.scan(REPO) for _ in range(4)))
        assert provider.clones == 1
        assert len({o.record.scan_id for o in outcomes}) == 1

    async def test_reject_duplicate_scans(self, workspace_root) -> None:
        provider = FakeProvider(clone_delay=0.2)
        orch = _orchestrator(provider, workspace_root, reject_duplicate_scans=True)
        first = asyncio.create_task(orch.scan(REPO))
        await asyncio.sleep(0.05)
        with pytest.raises(ScanInProgress) as excinfo:
            await orch.scan(REPO)
        assert excinfo.value.repo_url == REPO
        await first


class TestFailures:
    async def test_unknown_host(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(ProviderUnavailable) as excinfo:
            await orch.scan("https://git.example.com/team/repo")
        assert excinfo.value.stage == "resolving"

    async def test_malformed_url(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(ProviderUnavailable):
            await orch.scan("not a url")

    async def test_clone_failure_redacts_and_cleans_up(self, provider, workspace_root) -> None:
        provider.clone_error = RuntimeError("remote hung up")
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(CloneFailure) as excinfo:
            await orch.scan(REPO)
        assert excinfo.value.stage == "acquiring"
        assert "remote hung up" in excinfo.value.message
        assert _workspace_is_empty(workspace_root)
        assert await orch.store.get_current_record(REPO) is None

    async def test_strict_scanner_failure_persists_nothing(self, provider, workspace_root) -> None:
        scanners = [FakeScanner("semgrep"), FakeScanner("gitleaks", error=ScannerError("gitleaks", "exited 2"))]
        orch = _orchestrator(provider, workspace_root, scanners=scanners)
        with pytest.raises(ScannerFailure) as excinfo:
            await orch.scan(REPO)
        assert excinfo.value.stage == "scanning"
        assert await orch.store.get_current_record(REPO) is None
        assert _workspace_is_empty(workspace_root)

    async def test_best_effort_keeps_partial_results(self, provider, workspace_root) -> None:
        scanners = [FakeScanner("semgrep", 2), FakeScanner("gitleaks", error=ScannerError("gitleaks", "exited 2"))]
        orch = _orchestrator(provider, workspace_root, scanners=scanners, best_effort_scanning=True)
        outcome = await orch.scan(REPO)
        assert [s.name for s in outcome.record.scanners] == ["semgrep"]
        assert len(outcome.record.findings) == 2
        assert any("gitleaks" in w for w in outcome.record.warnings)

    async def test_metadata_failure_is_a_warning(self, provider, workspace_root) -> None:
        provider.metadata_error = RuntimeError("api down")
        orch = _orchestrator(provider, workspace_root)
        outcome = await orch.scan(REPO)
        assert outcome.record.repository is None
        assert outcome.record.warnings == ("metadata unavailable: api down",)

    async def test_workspace_removed_after_success(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        await orch.scan(REPO)
        assert provider.cloned_dirs
        assert not provider.cloned_dirs[0].exists()
        assert _workspace_is_empty(workspace_root)

    async def test_cancellation_cleans_up(self, workspace_root) -> None:
        provider = FakeProvider(clone_delay=5)
        orch = _orchestrator(provider, workspace_root)
        task = asyncio.create_task(orch.scan(REPO))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        # The flight unwinds on its own task after the last waiter leaves
        for _ in range(50):
            if _workspace_is_empty(workspace_root):
                break
            await asyncio.sleep(0.01)
        assert _workspace_is_empty(workspace_root)


class TestScanIdContext:
    async def test_scanners_see_scan_id(self, provider, workspace_root) -> None:
        scanner = FakeScanner("semgrep")
        orch = _orchestrator(provider, workspace_root, scanners=[scanner])
        outcome = await orch.scan(REPO)
        assert scanner.seen_scan_ids == [outcome.record.scan_id]
        assert get_scan_id() == ""


class TestNotifications:
    async def test_completed_scan_is_announced(self, provider, workspace_root) -> None:
        notifier = RecordingNotifier()
        orch = _orchestrator(provider, workspace_root, notifier=notifier)
        outcome = await orch.scan(REPO)
        await orch.aclose()

        (payload,) = notifier.payloads
        assert payload["event"] == "scan.completed"
        assert payload["status"] == "success"
        assert payload["scanId"] == outcome.record.scan_id
        assert payload["repository"] == {"name": "acme/widgets", "url": REPO, "branch": "main"}
        assert payload["summary"]["totalIssues"] == 3
        assert payload["summary"]["perScanner"] == [
            {"name": "semgrep", "issuesFound": 2},
            {"name": "gitleaks", "issuesFound": 1},
        ]

    async def test_cache_hits_are_not_announced(self, provider, workspace_root) -> None:
        notifier = RecordingNotifier()
        orch = _orchestrator(provider, workspace_root, notifier=notifier)
        await orch.scan(REPO)
        await orch.scan(REPO)
        await orch.aclose()
        assert len(notifier.payloads) == 1

    async def test_scanner_failure_is_announced(self, provider, workspace_root) -> None:
        notifier = RecordingNotifier()
        scanners = [FakeScanner("semgrep", error=ScannerError("semgrep", "crashed"))]
        orch = _orchestrator(provider, workspace_root, scanners=scanners, notifier=notifier)
        with pytest.raises(ScannerFailure):
            await orch.scan(REPO)
        await orch.aclose()
        (payload,) = notifier.payloads
        assert payload["event"] == "scan.failed"
        assert payload["status"] == "failure"
        assert "crashed" in payload["error"]

    async def test_resolution_failure_is_not_announced(self, provider, workspace_root) -> None:
        notifier = RecordingNotifier()
        orch = _orchestrator(provider, workspace_root, notifier=notifier)
        with pytest.raises(ProviderUnavailable):
            await orch.scan("https://git.example.com/team/repo")
        await orch.aclose()
        assert notifier.payloads == []

    async def test_notifier_error_does_not_fail_scan(self, provider, workspace_root) -> None:
        notifier = RecordingNotifier(error=RuntimeError("webhook down"))
        orch = _orchestrator(provider, workspace_root, notifier=notifier)
        outcome = await orch.scan(REPO)
        await orch.aclose()
        assert not outcome.scan_skipped
        assert len(notifier.payloads) == 1


class TestCodeContext:
    async def test_returns_window(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        ctx = await orch.get_code_context(REPO, "app.py", 2, context=1)
        assert [l.content for l in ctx.lines] == ["a = 1", "b = eval(a)", "c = 3"]
        assert _workspace_is_empty(workspace_root)

    async def test_traversal_rejected_before_clone(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(ScanPathError):
            await orch.get_code_context(REPO, "../../etc/passwd", 1)
        assert provider.clones == 0

    @pytest.mark.parametrize("line,context", [(0, 3), (1, 0), (1, 21)])
    async def test_range_validation(self, provider, workspace_root, line, context) -> None:
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(ValueError):
            await orch.get_code_context(REPO, "app.py", line, context)
        assert provider.clones == 0

    async def test_missing_file(self, provider, workspace_root) -> None:
        orch = _orchestrator(provider, workspace_root)
        with pytest.raises(ScanPathError):
            await orch.get_code_context(REPO, "nope.py", 1)
