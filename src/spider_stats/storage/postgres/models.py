"""SQLAlchemy ORM model for per-owner statistics.

One row per owner id.  Rows are created by the first upsert that mentions
an owner and are never deleted by the service.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from spider_stats.core.models import OwnerStatistics


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


class OwnerStatisticsRecord(Base):
    """Persisted counters for one crawl task."""

    __tablename__ = "owner_statistics"

    owner_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    total: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    success: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    failed: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    download_success_count: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0",
    )
    download_success_bytes: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0",
    )
    download_failed_count: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0",
    )
    download_failed_bytes: Mapped[int] = mapped_column(
        BigInteger, default=0, server_default="0",
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    exited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_owner_statistics_updated_at", "updated_at"),
    )

    def to_statistics(self) -> OwnerStatistics:
        return OwnerStatistics(
            owner_id=self.owner_id,
            total=self.total,
            success=self.success,
            failed=self.failed,
            download_success_count=self.download_success_count,
            download_success_bytes=self.download_success_bytes,
            download_failed_count=self.download_failed_count,
            download_failed_bytes=self.download_failed_bytes,
            started_at=self.started_at,
            exited_at=self.exited_at,
        )

    def __repr__(self) -> str:
        return (
            f"<OwnerStatisticsRecord(owner_id={self.owner_id!r}, "
            f"total={self.total}, success={self.success}, failed={self.failed})>"
        )
