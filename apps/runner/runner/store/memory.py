"""In-process ScanStore.

State lives in plain dicts guarded by a lock. Every public method takes
the lock once, so each mutation is atomic and each read copies a
snapshot before aggregating. Used by tests and single-process
deployments; history is bounded per repository.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from runner.store import stats
from runner.store.records import RepositoryActivity, ScanRecord, utcnow

logger = logging.getLogger(__name__)


class InMemoryScanStore:
    def __init__(self, max_history_per_repo: int = 20):
        if max_history_per_repo < 1:
            raise ValueError(f"max_history_per_repo must be at least 1, got {max_history_per_repo}")
        self.max_history_per_repo = max_history_per_repo
        self._lock = threading.Lock()
        self._current: dict[str, ScanRecord] = {}
        self._history: dict[str, deque[ScanRecord]] = {}
        self._activity: dict[str, RepositoryActivity] = {}

    async def get_current_record(self, repo_url: str) -> Optional[ScanRecord]:
        with self._lock:
            return self._current.get(repo_url)

    async def put_record(self, record: ScanRecord) -> None:
        with self._lock:
            self._current[record.repo_url] = record
            history = self._history.setdefault(
                record.repo_url, deque(maxlen=self.max_history_per_repo)
            )
            history.appendleft(record)

            prior = self._activity.get(record.repo_url, RepositoryActivity(record.repo_url))
            self._activity[record.repo_url] = RepositoryActivity(
                repo_url=record.repo_url,
                scan_count=prior.scan_count + 1,
                cache_hits=prior.cache_hits,
                last_scan=record.timestamp,
            )
        logger.debug("Stored scan %s for %s", record.scan_id, record.repo_url)

    async def invalidate(self, repo_url: str) -> bool:
        with self._lock:
            removed = self._current.pop(repo_url, None)
        if removed:
            logger.info("Invalidated cached scan for %s", repo_url)
        return removed is not None

    async def invalidate_all(self) -> None:
        with self._lock:
            count = len(self._current)
            self._current.clear()
            self._history.clear()
            self._activity.clear()
        logger.info("Cleared scan store (%d current records)", count)

    async def history(self, repo_url: str, limit: Optional[int] = None) -> list[ScanRecord]:
        with self._lock:
            records = list(self._history.get(repo_url, ()))
        return records[:limit] if limit is not None else records

    async def all_current_records(self) -> list[ScanRecord]:
        with self._lock:
            records = list(self._current.values())
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    async def cached_repositories(self) -> list[str]:
        with self._lock:
            return sorted(self._current)

    async def record_cache_hit(self, repo_url: str) -> None:
        with self._lock:
            prior = self._activity.get(repo_url, RepositoryActivity(repo_url))
            self._activity[repo_url] = RepositoryActivity(
                repo_url=repo_url,
                scan_count=prior.scan_count,
                cache_hits=prior.cache_hits + 1,
                last_scan=prior.last_scan,
            )

    async def list_stale(
        self,
        max_age: timedelta,
        now: Optional[datetime] = None,
    ) -> list[ScanRecord]:
        with self._lock:
            current = list(self._current.values())
        return stats.stale_records(current, max_age, now or utcnow())

    async def most_scanned(self, limit: int = 10) -> list[RepositoryActivity]:
        with self._lock:
            activity = list(self._activity.values())
        return stats.top_by_scans(activity, limit)

    async def most_cached(self, limit: int = 10) -> list[RepositoryActivity]:
        with self._lock:
            activity = list(self._activity.values())
        return stats.top_by_cache_hits(activity, limit)

    async def statistics(self) -> dict:
        with self._lock:
            current = list(self._current.values())
            activity = list(self._activity.values())
        return stats.scan_statistics(current, activity)

    async def cache_statistics(self) -> dict:
        with self._lock:
            current = list(self._current.values())
            history_entries = sum(len(h) for h in self._history.values())
        return stats.cache_statistics(current, history_entries)

    async def close(self) -> None:
        return None
