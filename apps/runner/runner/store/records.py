"""Scan records: the persisted outcome of one completed scan.

A ScanRecord is immutable. A rescan of the same repository produces a
new record that supersedes the previous one as "current"; the old one
stays in history.
"""

import hashlib
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from runner.errors import CacheCorruption
from runner.scanner.types import Finding, ScannerIdentity
from runner.scm.types import ChangeDetectionResult, RepositoryMetadata


def new_scan_id(repo_url: str) -> str:
    """Return ``scan_<epoch ms>_<8 hex chars>``, unique per repo and instant."""
    millis = int(time.time() * 1000)
    digest = hashlib.md5(f"{repo_url}:{time.monotonic_ns()}".encode(), usedforsecurity=False)
    return f"scan_{millis}_{digest.hexdigest()[:8]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ScanRecord:
    scan_id: str
    repo_url: str
    commit_hash: str
    timestamp: datetime
    scanners: tuple[ScannerIdentity, ...] = ()
    findings: tuple[Finding, ...] = ()
    change_detection: Optional[ChangeDetectionResult] = None
    repository: Optional[RepositoryMetadata] = None
    warnings: tuple[str, ...] = ()
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "scanId": self.scan_id,
            "repoUrl": self.repo_url,
            "commitHash": self.commit_hash,
            "timestamp": self.timestamp.isoformat(),
            "scanners": [s.to_dict() for s in self.scanners],
            "findings": [f.to_dict() for f in self.findings],
            "findingCount": len(self.findings),
            "changeDetection": self.change_detection.to_dict() if self.change_detection else None,
            "repository": self.repository.to_dict() if self.repository else None,
            "warnings": list(self.warnings),
            "durationSeconds": round(self.duration_seconds, 3),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ScanRecord":
        """Rebuild a record from its to_dict() form.

        Raises:
            CacheCorruption: If data does not have the expected shape.
        """
        repo_url = data.get("repoUrl", "") if isinstance(data, dict) else ""
        try:
            change = data.get("changeDetection")
            repository = data.get("repository")
            return cls(
                scan_id=str(data["scanId"]),
                repo_url=str(data["repoUrl"]),
                commit_hash=str(data["commitHash"]),
                timestamp=_parse_timestamp(data["timestamp"]),
                scanners=tuple(ScannerIdentity.from_dict(s) for s in data["scanners"]),
                findings=tuple(Finding.from_dict(f) for f in data["findings"]),
                change_detection=ChangeDetectionResult.from_dict(change) if change else None,
                repository=RepositoryMetadata.from_dict(repository) if repository else None,
                warnings=tuple(str(w) for w in data.get("warnings") or ()),
                duration_seconds=float(data.get("durationSeconds") or 0.0),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CacheCorruption(
                f"stored scan record is malformed: {exc!r}", repo_url=str(repo_url)
            ) from exc


@dataclass(frozen=True)
class RepositoryActivity:
    """Per-repository counters backing most-scanned / most-cached queries."""

    repo_url: str
    scan_count: int = 0
    cache_hits: int = 0
    last_scan: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "repoUrl": self.repo_url,
            "scanCount": self.scan_count,
            "cacheHits": self.cache_hits,
            "lastScanTimestamp": self.last_scan.isoformat() if self.last_scan else None,
        }
