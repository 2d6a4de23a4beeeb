"""Tests for the scanner fan-out: concurrency, strict and best-effort failure policies."""

import asyncio
from pathlib import Path

import pytest

from runner.scanner.orchestrator import run_scanners
from runner.scanner.types import Finding, ScannerError


class FakeScanner:
    def __init__(
        self,
        name: str,
        findings: int = 1,
        delay: float = 0.0,
        error: Exception | None = None,
        version: str = "1.0.0",
    ):
        self.name = name
        self._findings = findings
        self._delay = delay
        self._error = error
        self._version = version
        self.started = False
        self.cancelled = False

    async def version(self) -> str:
        return self._version

    async def scan(self, path: Path) -> list[Finding]:
        self.started = True
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        return [
            Finding(f"{self.name}.rule", "issue", "app.py", i + 1, "high")
            for i in range(self._findings)
        ]


class TestStrictMode:
    async def test_results_in_configuration_order(self, tmp_path: Path) -> None:
        scanners = [FakeScanner("slow", findings=2, delay=0.05), FakeScanner("fast", findings=1)]
        run = await run_scanners(scanners, tmp_path, timeout=5)
        assert [r.identity.name for r in run.results] == ["slow", "fast"]
        assert [len(r.findings) for r in run.results] == [2, 1]
        assert run.warnings == []

    async def test_scanners_run_concurrently(self, tmp_path: Path) -> None:
        scanners = [FakeScanner(f"s{i}", delay=0.2) for i in range(4)]
        loop = asyncio.get_running_loop()
        started = loop.time()
        await run_scanners(scanners, tmp_path, timeout=5)
        assert loop.time() - started < 0.6

    async def test_failure_cancels_siblings(self, tmp_path: Path) -> None:
        slow = FakeScanner("slow", delay=5)
        broken = FakeScanner("broken", error=ScannerError("broken", "crashed"))
        with pytest.raises(ScannerError, match="crashed"):
            await run_scanners([slow, broken], tmp_path, timeout=10)
        assert slow.cancelled

    async def test_unexpected_exception_is_wrapped(self, tmp_path: Path) -> None:
        with pytest.raises(ScannerError) as excinfo:
            await run_scanners([FakeScanner("odd", error=KeyError("x"))], tmp_path, timeout=5)
        assert excinfo.value.scanner == "odd"

    async def test_timeout_becomes_scanner_error(self, tmp_path: Path) -> None:
        with pytest.raises(ScannerError, match="timed out"):
            await run_scanners([FakeScanner("hang", delay=5)], tmp_path, timeout=0.05)

    async def test_no_scanners(self, tmp_path: Path) -> None:
        run = await run_scanners([], tmp_path, timeout=5)
        assert run.results == [] and run.warnings == []

    async def test_cancellation_cancels_every_scanner(self, tmp_path: Path) -> None:
        scanners = [FakeScanner("a", delay=5), FakeScanner("b", delay=5)]
        task = asyncio.create_task(run_scanners(scanners, tmp_path, timeout=10))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert all(s.cancelled for s in scanners)


class TestBestEffortMode:
    async def test_failures_become_warnings(self, tmp_path: Path) -> None:
        scanners = [
            FakeScanner("semgrep", findings=2),
            FakeScanner("gitleaks", error=ScannerError("gitleaks", "exited 2")),
        ]
        run = await run_scanners(scanners, tmp_path, timeout=5, best_effort=True)
        assert [r.identity.name for r in run.results] == ["semgrep"]
        assert len(run.warnings) == 1
        assert run.warnings[0].startswith("gitleaks:")
        assert "exited 2" in run.warnings[0]

    async def test_all_failing_yields_empty_results(self, tmp_path: Path) -> None:
        scanners = [FakeScanner("a", error=RuntimeError("x")), FakeScanner("b", delay=5)]
        run = await run_scanners(scanners, tmp_path, timeout=0.05, best_effort=True)
        assert run.results == []
        assert len(run.warnings) == 2
