"""ScanStore protocol.

The store is the only long-lived shared mutable state in the service.
Contract:
  - put_record() is the only way cache content is created; it makes the
    record current for its repo_url and retains the previous one in history
  - at most one current record exists per repo_url
  - each mutating call is atomic; reads return a consistent snapshot and
    never block writers
  - a stored record that fails validation on read is logged and reported
    as absent (CacheCorruption never reaches the caller)
"""

from datetime import datetime, timedelta
from typing import Optional, Protocol, runtime_checkable

from runner.store.records import RepositoryActivity, ScanRecord


@runtime_checkable
class ScanStore(Protocol):
    async def get_current_record(self, repo_url: str) -> Optional[ScanRecord]:
        ...

    async def put_record(self, record: ScanRecord) -> None:
        ...

    async def invalidate(self, repo_url: str) -> bool:
        """Drop the current record. Returns False if there was none."""
        ...

    async def invalidate_all(self) -> None:
        """Clear everything: current records, history and counters."""
        ...

    async def history(self, repo_url: str, limit: Optional[int] = None) -> list[ScanRecord]:
        """Records for repo_url, newest first."""
        ...

    async def all_current_records(self) -> list[ScanRecord]:
        ...

    async def cached_repositories(self) -> list[str]:
        ...

    async def record_cache_hit(self, repo_url: str) -> None:
        ...

    async def list_stale(
        self,
        max_age: timedelta,
        now: Optional[datetime] = None,
    ) -> list[ScanRecord]:
        ...

    async def most_scanned(self, limit: int = 10) -> list[RepositoryActivity]:
        ...

    async def most_cached(self, limit: int = 10) -> list[RepositoryActivity]:
        ...

    async def statistics(self) -> dict:
        ...

    async def cache_statistics(self) -> dict:
        ...

    async def close(self) -> None:
        ...
