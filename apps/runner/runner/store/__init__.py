"""Scan store: current record per repository, bounded history, statistics."""

from runner.store.base import ScanStore
from runner.store.memory import InMemoryScanStore
from runner.store.records import RepositoryActivity, ScanRecord, new_scan_id

__all__ = [
    "ScanStore",
    "InMemoryScanStore",
    "RepositoryActivity",
    "ScanRecord",
    "new_scan_id",
]
