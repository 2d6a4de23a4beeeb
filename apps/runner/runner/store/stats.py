"""Aggregate queries shared by every ScanStore implementation.

Stores gather a consistent snapshot (current records plus activity
counters) and hand it to these pure functions, so in-memory and SQL
stores report identical shapes.
"""

from datetime import datetime, timedelta
from typing import Iterable, Sequence

from runner.scanner.types import SEVERITY_LEVELS, normalize_severity
from runner.store.records import RepositoryActivity, ScanRecord


def scan_statistics(
    current: Sequence[ScanRecord],
    activity: Sequence[RepositoryActivity],
) -> dict:
    """Counts, average findings per current record and severity distribution."""
    distribution = {level: 0 for level in SEVERITY_LEVELS}
    total_findings = 0
    for record in current:
        total_findings += len(record.findings)
        for finding in record.findings:
            distribution[normalize_severity(finding.severity)] += 1

    last_scan = max((a.last_scan for a in activity if a.last_scan), default=None)
    return {
        "totalRepositories": len(activity),
        "currentRecords": len(current),
        "totalScans": sum(a.scan_count for a in activity),
        "totalCacheHits": sum(a.cache_hits for a in activity),
        "totalFindings": total_findings,
        "averageFindings": round(total_findings / len(current), 2) if current else 0.0,
        "severityDistribution": distribution,
        "lastScanTimestamp": last_scan.isoformat() if last_scan else None,
    }


def cache_statistics(current: Sequence[ScanRecord], history_entries: int) -> dict:
    timestamps = [r.timestamp for r in current]
    return {
        "totalEntries": len(current),
        "totalHistoryEntries": history_entries,
        "repositories": sorted(r.repo_url for r in current),
        "oldestEntry": min(timestamps).isoformat() if timestamps else None,
        "newestEntry": max(timestamps).isoformat() if timestamps else None,
    }


def stale_records(current: Iterable[ScanRecord], max_age: timedelta, now: datetime) -> list[ScanRecord]:
    """Current records older than max_age, oldest first."""
    cutoff = now - max_age
    return sorted((r for r in current if r.timestamp <= cutoff), key=lambda r: r.timestamp)


def top_by_scans(activity: Iterable[RepositoryActivity], limit: int) -> list[RepositoryActivity]:
    ranked = [a for a in activity if a.scan_count > 0]
    ranked.sort(key=lambda a: a.repo_url)
    ranked.sort(key=lambda a: a.scan_count, reverse=True)
    return ranked[: max(limit, 0)]


def top_by_cache_hits(activity: Iterable[RepositoryActivity], limit: int) -> list[RepositoryActivity]:
    ranked = [a for a in activity if a.cache_hits > 0]
    ranked.sort(key=lambda a: a.repo_url)
    ranked.sort(key=lambda a: a.cache_hits, reverse=True)
    return ranked[: max(limit, 0)]
