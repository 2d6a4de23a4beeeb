"""Scan orchestrator: the top-level coordinator for a scan request.

For one repository URL it:
1. Resolves the SCM provider through the registry
2. Looks up the current scan record and asks the change detector whether
   the repository moved since that record's commit
3. Returns the cached record (scanSkipped) when nothing changed and the
   request is not forced
4. Otherwise clones into a scoped working directory, fans out to every
   configured scanner, concatenates their findings and persists a new
   ScanRecord
5. Hands a notification payload to the notifier without waiting for it

Requests for the same normalized URL are serialized by a single-flight
gate: duplicates join the in-flight scan instead of cloning again. The
working directory is removed on every exit path, including scanner
failure and cancellation.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from runner.config import ScanConfig
from runner.engine.gate import SingleFlight
from runner.engine.notify import (
    EVENT_SCAN_COMPLETED,
    EVENT_SCAN_FAILED,
    Notifier,
    build_notification,
)
from runner.engine.types import ScanOutcome, ScanStage, _scan_id_var, validate_transition
from runner.errors import (
    CloneFailure,
    ProviderUnavailable,
    ScanError,
    ScanInProgress,
    ScannerFailure,
)
from runner.sandbox.checkout import redact_repo_url
from runner.sandbox.workspace import scan_workspace
from runner.scanner.context import DEFAULT_CONTEXT_LINES, MAX_CONTEXT_LINES, MIN_CONTEXT_LINES, extract_code_context
from runner.scanner.orchestrator import run_scanners
from runner.scanner.paths import ScanPathError
from runner.scanner.types import CodeContext, Scanner, ScannerError, ScannerResult
from runner.scm.changes import ChangeDetector
from runner.scm.provider import ScmProvider
from runner.scm.registry import ProviderRegistry
from runner.scm.types import UNKNOWN_REVISION, CloneOptions, RepositoryMetadata
from runner.scm.urls import normalize_repo_url
from runner.store.base import ScanStore
from runner.store.records import ScanRecord, new_scan_id, utcnow

logger = logging.getLogger(__name__)

# Stages after which a failure is announced to the notifier
_NOTIFY_FAILURE_FROM = {
    ScanStage.ACQUIRING,
    ScanStage.SCANNING,
    ScanStage.AGGREGATING,
    ScanStage.PERSISTING,
}


class _StageTracker:
    def __init__(self, repo_url: str):
        self.repo_url = repo_url
        self.stage = ScanStage.IDLE

    def advance(self, target: ScanStage) -> None:
        validate_transition(self.stage, target)
        logger.debug("Scan %s: %s -> %s", self.repo_url, self.stage.value, target.value)
        self.stage = target

    def fail(self) -> ScanStage:
        """Move to ERROR and return the stage that was reached."""
        reached = self.stage
        if reached not in (ScanStage.DONE, ScanStage.ERROR):
            self.stage = ScanStage.ERROR
        return reached


class ScanOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        store: ScanStore,
        scanners: Sequence[Scanner],
        config: Optional[ScanConfig] = None,
        detector: Optional[ChangeDetector] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.registry = registry
        self.store = store
        self.scanners = list(scanners)
        self.config = config or ScanConfig()
        self.detector = detector or ChangeDetector(registry)
        self.notifier = notifier
        self._gate: SingleFlight[ScanOutcome] = SingleFlight()
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(self, repo_url: str) -> str:
        """Normalize repo_url, mapping malformed URLs to ProviderUnavailable."""
        try:
            return normalize_repo_url(repo_url)
        except ValueError as exc:
            raise ProviderUnavailable(str(exc), repo_url=repo_url) from exc

    async def scan(self, repo_url: str, force: bool = False) -> ScanOutcome:
        """Return a cached or fresh scan outcome for repo_url.

        Raises:
            ProviderUnavailable: No provider handles the URL.
            CloneFailure: The working copy could not be acquired.
            ScannerFailure: A scanner failed in strict mode.
            ScanInProgress: Duplicate request while reject_duplicate_scans is set.
        """
        key = self.normalize(repo_url)
        if self.config.reject_duplicate_scans and self._gate.in_flight(key):
            raise ScanInProgress(f"A scan of {key} is already in progress", repo_url=key)
        return await self._gate.run(key, lambda: self._orchestrate(key, force), force=force)

    async def get_code_context(
        self,
        repo_url: str,
        file_path: str,
        line: int,
        context: int = DEFAULT_CONTEXT_LINES,
    ) -> CodeContext:
        """Clone repo_url into a scoped workspace and return lines around file_path:line.

        Raises:
            ValueError: line < 1 or context outside 1..20.
            ScanPathError: file_path escapes the repository or does not exist.
            ProviderUnavailable / CloneFailure: as for scan().
        """
        if line < 1:
            raise ValueError("line must be >= 1")
        if not MIN_CONTEXT_LINES <= context <= MAX_CONTEXT_LINES:
            raise ValueError(f"context must be between {MIN_CONTEXT_LINES} and {MAX_CONTEXT_LINES}")
        if ".." in Path(file_path).parts:
            raise ScanPathError(f"File path escapes the repository: {file_path}")

        key = self.normalize(repo_url)
        provider = self._resolve(key)
        async with scan_workspace(root=self.config.workspace_root) as workspace:
            repo_dir = workspace / "repo"
            await self._clone(provider, key, repo_dir)
            return await asyncio.to_thread(extract_code_context, repo_dir, file_path, line, context)

    async def aclose(self) -> None:
        """Wait for in-flight notification deliveries."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _resolve(self, key: str) -> ScmProvider:
        provider = self.registry.resolve(key)
        if provider is None:
            raise ProviderUnavailable(f"No provider can handle {key}", repo_url=key)
        return provider

    async def _clone(self, provider: ScmProvider, key: str, repo_dir: Path) -> str:
        try:
            return await provider.clone(key, repo_dir, CloneOptions(depth=1))
        except Exception as exc:
            raise CloneFailure(
                f"Could not clone {redact_repo_url(key)}: {exc}", repo_url=key
            ) from exc

    async def _metadata(
        self,
        provider: ScmProvider,
        key: str,
        repo_dir: Path,
        warnings: list[str],
    ) -> Optional[RepositoryMetadata]:
        try:
            return await provider.fetch_metadata(key, working_copy=repo_dir)
        except Exception as exc:
            logger.warning("Metadata unavailable for %s: %s", key, exc)
            warnings.append(f"metadata unavailable: {exc}")
            return None

    async def _orchestrate(self, key: str, force: bool) -> ScanOutcome:
        scan_id = new_scan_id(key)
        token = _scan_id_var.set(scan_id)
        tracker = _StageTracker(key)
        started = time.monotonic()
        results: list[ScannerResult] = []
        branch: Optional[str] = None

        try:
            tracker.advance(ScanStage.RESOLVING)
            provider = self._resolve(key)

            tracker.advance(ScanStage.DECIDING)
            current = await self.store.get_current_record(key)
            known = current.commit_hash if current else UNKNOWN_REVISION
            detection = await self.detector.has_changes_since(key, known, provider=provider)

            if current is not None and not force and not detection.has_changes:
                await self.store.record_cache_hit(key)
                tracker.advance(ScanStage.DONE)
                logger.info("Scan skipped for %s: unchanged at %s", key, current.commit_hash[:12])
                return ScanOutcome(
                    record=current,
                    scan_skipped=True,
                    reason=f"No changes since last scan (commit {current.commit_hash[:12]})",
                    change_detection=detection,
                )

            tracker.advance(ScanStage.ACQUIRING)
            warnings: list[str] = []
            async with scan_workspace(root=self.config.workspace_root) as workspace:
                repo_dir = workspace / "repo"
                commit_hash = await self._clone(provider, key, repo_dir)
                metadata = await self._metadata(provider, key, repo_dir, warnings)
                branch = metadata.default_branch if metadata else None

                tracker.advance(ScanStage.SCANNING)
                try:
                    run = await run_scanners(
                        self.scanners,
                        repo_dir,
                        timeout=self.config.scanner_timeout_seconds,
                        best_effort=self.config.best_effort_scanning,
                    )
                except ScannerError as exc:
                    raise ScannerFailure(str(exc), repo_url=key) from exc
                results = run.results
                warnings.extend(run.warnings)

                tracker.advance(ScanStage.AGGREGATING)
                findings = tuple(f for result in results for f in result.findings)

            tracker.advance(ScanStage.PERSISTING)
            duration = time.monotonic() - started
            record = ScanRecord(
                scan_id=scan_id,
                repo_url=key,
                commit_hash=commit_hash,
                timestamp=utcnow(),
                scanners=tuple(r.identity for r in results),
                findings=findings,
                change_detection=detection,
                repository=metadata,
                warnings=tuple(warnings),
                duration_seconds=duration,
            )
            await self.store.put_record(record)
            tracker.advance(ScanStage.DONE)

            logger.info(
                "Scan %s complete for %s at %s: %d finding(s) in %.2fs",
                scan_id, key, commit_hash[:12], len(findings), duration,
            )
            self._notify(
                build_notification(
                    EVENT_SCAN_COMPLETED, scan_id, key,
                    branch=branch, results=results, duration=duration,
                )
            )
            if force:
                reason = "Forced rescan"
            elif current is None:
                reason = "No previous scan"
            else:
                reason = "Repository changed since last scan"
            return ScanOutcome(record=record, reason=reason, change_detection=detection)

        except ScanError as exc:
            reached = tracker.fail()
            exc.repo_url = exc.repo_url or key
            logger.warning("Scan %s failed at %s: %s", key, reached.value, exc.message)
            if reached in _NOTIFY_FAILURE_FROM:
                self._notify_failure(scan_id, key, branch, started, exc.message)
            raise
        except asyncio.CancelledError:
            reached = tracker.fail()
            logger.info("Scan %s cancelled at %s", key, reached.value)
            raise
        except Exception as exc:
            reached = tracker.fail()
            logger.exception("Scan %s crashed at %s", key, reached.value)
            if reached in _NOTIFY_FAILURE_FROM:
                self._notify_failure(scan_id, key, branch, started, str(exc))
            raise ScanError(
                f"Scan failed during {reached.value}: {exc}", repo_url=key, stage=reached.value
            ) from exc
        finally:
            _scan_id_var.reset(token)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_failure(
        self,
        scan_id: str,
        key: str,
        branch: Optional[str],
        started: float,
        error: str,
    ) -> None:
        self._notify(
            build_notification(
                EVENT_SCAN_FAILED, scan_id, key,
                branch=branch, duration=time.monotonic() - started, error=error,
            )
        )

    def _notify(self, payload: dict) -> None:
        if self.notifier is None:
            return
        task = asyncio.create_task(self._deliver(payload))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _deliver(self, payload: dict) -> None:
        try:
            await self.notifier.notify(payload)
        except Exception as exc:
            logger.warning("Notification delivery failed for %s: %s", payload.get("scanId"), exc)
