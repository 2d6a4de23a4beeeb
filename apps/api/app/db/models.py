"""SQLAlchemy 2.0 declarative models for the persistent scan store.

Two tables:
  scan_records          one row per completed scan; exactly one row per
                        repository carries is_current=True until it is
                        superseded or invalidated. The full record lives in
                        the JSON payload; the scalar columns exist for
                        filtering and ordering.
  repository_activity   scan / cache-hit counters per repository.

Uses dialect-agnostic types (JSON, DateTime) so the models work with both
PostgreSQL and SQLite (the default and the test database).
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ScanRecordRow(Base):
    __tablename__ = "scan_records"
    __table_args__ = (
        Index("ix_scan_records_repo_current", "repo_url", "is_current"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scan_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    commit_hash: Mapped[str] = mapped_column(Text, nullable=False)
    scanned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    finding_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)


class RepositoryActivityRow(Base):
    __tablename__ = "repository_activity"

    repo_url: Mapped[str] = mapped_column(Text, primary_key=True)
    scan_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cache_hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scan_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
