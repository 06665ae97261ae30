"""Core data models used across the statistics service.

``OwnerStatistics`` is the snapshot a counter store hands back;
``StatisticsMessage`` is the envelope carried by the event channel.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .enums import OwnerState


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatisticsMessage(BaseModel):
    """A raw statistics event: a kind tag plus a string payload.

    ``message_id`` and ``timestamp`` are transport metadata and play no
    part in aggregation.
    """

    kind: str
    payload: str | None = None
    message_id: str = Field(default_factory=_uuid)
    timestamp: datetime = Field(default_factory=_now)


class OwnerStatistics(BaseModel):
    """Point-in-time counters for one crawl task."""

    owner_id: str
    total: int = 0
    success: int = 0
    failed: int = 0
    download_success_count: int = 0
    download_success_bytes: int = 0
    download_failed_count: int = 0
    download_failed_bytes: int = 0
    started_at: datetime | None = None
    exited_at: datetime | None = None

    @property
    def state(self) -> OwnerState:
        if self.exited_at is not None:
            return OwnerState.EXITED
        if self.started_at is not None:
            return OwnerState.RUNNING
        return OwnerState.NOT_STARTED

    @property
    def left(self) -> int | None:
        """Items still outstanding, or ``None`` when it cannot be known."""
        done = self.success + self.failed
        if self.total >= done:
            return self.total - done
        return None

    def report_line(self) -> str:
        left = self.left
        return (
            f"{self.owner_id} total {self.total}, success {self.success}, "
            f"failed {self.failed}, left {'unknown' if left is None else left}"
        )
