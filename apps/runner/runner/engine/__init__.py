"""Scan orchestration: skip-vs-rescan decision, fan-out, persistence.

Public API:
    ScanOrchestrator(registry, store, scanners, config).scan(repo_url, force)
"""

from runner.engine.notify import Notifier, build_notification
from runner.engine.orchestrator import ScanOrchestrator
from runner.engine.types import ScanOutcome, ScanStage, get_scan_id

__all__ = [
    "Notifier",
    "build_notification",
    "ScanOrchestrator",
    "ScanOutcome",
    "ScanStage",
    "get_scan_id",
]
