"""SQLAlchemy-backed ScanStore.

Each public method runs in one session/transaction: put_record marks the
previous current row as history, inserts the new row, prunes history past
max_history_per_repo and bumps the activity counters atomically. Reads
gather their snapshot inside a single transaction and aggregate with the
same pure functions the in-memory store uses, so both report identical
shapes.

A payload that no longer parses as a ScanRecord is logged and treated as
a cache miss.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from app.db.models import Base, RepositoryActivityRow, ScanRecordRow
from app.db.session import create_session_factory, create_store_engine
from runner.errors import CacheCorruption
from runner.store import stats
from runner.store.records import RepositoryActivity, ScanRecord, utcnow

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on DateTime(timezone=True) columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _decode(row: ScanRecordRow) -> Optional[ScanRecord]:
    try:
        return ScanRecord.from_dict(row.payload)
    except CacheCorruption as exc:
        logger.warning("Ignoring corrupted scan record %s for %s: %s", row.scan_id, row.repo_url, exc.message)
        return None


def _activity(row: RepositoryActivityRow) -> RepositoryActivity:
    return RepositoryActivity(
        repo_url=row.repo_url,
        scan_count=row.scan_count,
        cache_hits=row.cache_hits,
        last_scan=_aware(row.last_scan_at),
    )


class SqlScanStore:
    def __init__(self, engine: AsyncEngine, max_history_per_repo: int = 20):
        if max_history_per_repo < 1:
            raise ValueError(f"max_history_per_repo must be at least 1, got {max_history_per_repo}")
        self.engine = engine
        self.max_history_per_repo = max_history_per_repo
        self._sessions = create_session_factory(engine)

    @classmethod
    async def open(
        cls,
        url: str,
        max_history_per_repo: int = 20,
        echo: bool = False,
    ) -> "SqlScanStore":
        """Create an engine for url, ensure the schema exists and return the store."""
        store = cls(create_store_engine(url, echo=echo), max_history_per_repo)
        await store.create_schema()
        return store

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _current_rows(self, session: AsyncSession) -> list[ScanRecordRow]:
        result = await session.execute(
            select(ScanRecordRow)
            .where(ScanRecordRow.is_current.is_(True))
            .order_by(ScanRecordRow.scanned_at.desc(), ScanRecordRow.id.desc())
        )
        return list(result.scalars().all())

    async def _current_records(self, session: AsyncSession) -> list[ScanRecord]:
        records = [_decode(row) for row in await self._current_rows(session)]
        return [r for r in records if r is not None]

    async def _activity_rows(self, session: AsyncSession) -> list[RepositoryActivity]:
        result = await session.execute(select(RepositoryActivityRow))
        return [_activity(row) for row in result.scalars().all()]

    async def _activity_for(self, session: AsyncSession, repo_url: str) -> RepositoryActivityRow:
        row = await session.get(RepositoryActivityRow, repo_url)
        if row is None:
            row = RepositoryActivityRow(repo_url=repo_url, scan_count=0, cache_hits=0)
            session.add(row)
        return row

    # ------------------------------------------------------------------
    # ScanStore
    # ------------------------------------------------------------------

    async def get_current_record(self, repo_url: str) -> Optional[ScanRecord]:
        async with self._sessions() as session:
            result = await session.execute(
                select(ScanRecordRow)
                .where(ScanRecordRow.repo_url == repo_url, ScanRecordRow.is_current.is_(True))
                .order_by(ScanRecordRow.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _decode(row) if row is not None else None

    async def put_record(self, record: ScanRecord) -> None:
        async with self._sessions() as session, session.begin():
            await session.execute(
                update(ScanRecordRow)
                .where(ScanRecordRow.repo_url == record.repo_url, ScanRecordRow.is_current.is_(True))
                .values(is_current=False)
            )
            session.add(
                ScanRecordRow(
                    scan_id=record.scan_id,
                    repo_url=record.repo_url,
                    commit_hash=record.commit_hash,
                    scanned_at=record.timestamp,
                    is_current=True,
                    finding_count=len(record.findings),
                    payload=record.to_dict(),
                )
            )
            await session.flush()

            # The new current row always counts toward the limit.
            history_ids = (
                await session.execute(
                    select(ScanRecordRow.id)
                    .where(
                        ScanRecordRow.repo_url == record.repo_url,
                        ScanRecordRow.is_current.is_(False),
                    )
                    .order_by(ScanRecordRow.id.desc())
                )
            ).scalars().all()
            expired = history_ids[self.max_history_per_repo - 1:]
            if expired:
                await session.execute(delete(ScanRecordRow).where(ScanRecordRow.id.in_(expired)))

            activity = await self._activity_for(session, record.repo_url)
            activity.scan_count += 1
            activity.last_scan_at = record.timestamp
        logger.debug("Stored scan %s for %s", record.scan_id, record.repo_url)

    async def invalidate(self, repo_url: str) -> bool:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                update(ScanRecordRow)
                .where(ScanRecordRow.repo_url == repo_url, ScanRecordRow.is_current.is_(True))
                .values(is_current=False)
            )
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info("Invalidated cached scan for %s", repo_url)
        return removed

    async def invalidate_all(self) -> None:
        async with self._sessions() as session, session.begin():
            result = await session.execute(delete(ScanRecordRow))
            await session.execute(delete(RepositoryActivityRow))
        logger.info("Cleared scan store (%d rows)", result.rowcount or 0)

    async def history(self, repo_url: str, limit: Optional[int] = None) -> list[ScanRecord]:
        query = (
            select(ScanRecordRow)
            .where(ScanRecordRow.repo_url == repo_url)
            .order_by(ScanRecordRow.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        async with self._sessions() as session:
            rows = (await session.execute(query)).scalars().all()
        records = [_decode(row) for row in rows]
        return [r for r in records if r is not None]

    async def all_current_records(self) -> list[ScanRecord]:
        async with self._sessions() as session:
            return await self._current_records(session)

    async def cached_repositories(self) -> list[str]:
        async with self._sessions() as session:
            result = await session.execute(
                select(ScanRecordRow.repo_url)
                .where(ScanRecordRow.is_current.is_(True))
                .distinct()
                .order_by(ScanRecordRow.repo_url)
            )
            return list(result.scalars().all())

    async def record_cache_hit(self, repo_url: str) -> None:
        async with self._sessions() as session, session.begin():
            activity = await self._activity_for(session, repo_url)
            activity.cache_hits += 1

    async def list_stale(
        self,
        max_age: timedelta,
        now: Optional[datetime] = None,
    ) -> list[ScanRecord]:
        async with self._sessions() as session:
            current = await self._current_records(session)
        return stats.stale_records(current, max_age, now or utcnow())

    async def most_scanned(self, limit: int = 10) -> list[RepositoryActivity]:
        async with self._sessions() as session:
            activity = await self._activity_rows(session)
        return stats.top_by_scans(activity, limit)

    async def most_cached(self, limit: int = 10) -> list[RepositoryActivity]:
        async with self._sessions() as session:
            activity = await self._activity_rows(session)
        return stats.top_by_cache_hits(activity, limit)

    async def statistics(self) -> dict:
        async with self._sessions() as session, session.begin():
            current = await self._current_records(session)
            activity = await self._activity_rows(session)
        return stats.scan_statistics(current, activity)

    async def cache_statistics(self) -> dict:
        async with self._sessions() as session, session.begin():
            current = await self._current_records(session)
            history_entries = (
                await session.execute(select(func.count()).select_from(ScanRecordRow))
            ).scalar_one()
        return stats.cache_statistics(current, history_entries)

    async def close(self) -> None:
        await self.engine.dispose()
