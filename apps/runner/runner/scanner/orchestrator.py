"""Scanner fan-out: run every configured scanner against one working copy.

One asyncio task per scanner, each bounded by the same wall-clock
timeout. Two failure policies:

  strict (default)  the first scanner failure cancels the remaining
                    scanners and is raised as ScannerError
  best-effort       failing scanners are dropped and each failure is
                    returned as a warning string

If the awaiting task is cancelled, every scanner task is cancelled and
awaited before the cancellation propagates, so scanner subprocesses are
terminated rather than orphaned.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from runner.scanner.types import Scanner, ScannerError, ScannerIdentity, ScannerResult

logger = logging.getLogger(__name__)


@dataclass
class ScanRun:
    """Per-scanner results in configuration order, plus best-effort warnings."""

    results: list[ScannerResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


async def _run_one(scanner: Scanner, path: Path, timeout: float) -> ScannerResult:
    start = time.monotonic()
    try:
        version = await asyncio.wait_for(scanner.version(), timeout=timeout)
        findings = await asyncio.wait_for(scanner.scan(path), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ScannerError(scanner.name, f"timed out after {timeout:.0f}s", exc) from exc
    except ScannerError:
        raise
    except Exception as exc:
        raise ScannerError(scanner.name, str(exc) or type(exc).__name__, exc) from exc

    duration = time.monotonic() - start
    logger.info("Scanner %s finished: %d finding(s) in %.2fs", scanner.name, len(findings), duration)
    return ScannerResult(
        identity=ScannerIdentity(name=scanner.name, version=version),
        findings=list(findings),
        duration_seconds=duration,
    )


async def _cancel_all(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def run_scanners(
    scanners: Sequence[Scanner],
    path: Path,
    timeout: float,
    best_effort: bool = False,
) -> ScanRun:
    """Run all scanners concurrently against path.

    Raises:
        ScannerError: In strict mode, for the first scanner (in
            configuration order) that failed.
    """
    if not scanners:
        return ScanRun()

    tasks = [
        asyncio.create_task(_run_one(scanner, path, timeout), name=f"scanner:{scanner.name}")
        for scanner in scanners
    ]

    if best_effort:
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        run = ScanRun()
        for scanner, outcome in zip(scanners, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Scanner %s failed (best-effort, skipped): %s", scanner.name, outcome)
                run.warnings.append(f"{scanner.name}: {outcome}")
            else:
                run.results.append(outcome)
        return run

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise

    failures = [t.exception() for t in tasks if t in done and t.exception() is not None]
    if failures:
        await _cancel_all(list(pending))
        logger.warning("Scanner failure aborts scan: %s", failures[0])
        raise failures[0]

    return ScanRun(results=[task.result() for task in tasks])
