"""In-memory counter store for tests and single-process deployments.

One ``asyncio.Lock`` per owner id serializes read-modify-write cycles on
that owner; different owners never share a lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from spider_stats.core.clock import IClock, WallClock
from spider_stats.core.models import OwnerStatistics

logger = logging.getLogger(__name__)


class InMemoryCounterStore:
    """Dict-backed counter store.

    Snapshots are copies; mutating one never touches the stored record.
    """

    def __init__(self, clock: IClock | None = None) -> None:
        self._clock = clock or WallClock()
        self._records: dict[str, OwnerStatistics] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ready = False

    async def ensure_ready(self) -> None:
        self._ready = True
        logger.debug("In-memory counter store ready")

    async def close(self) -> None:
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def _add(self, owner_id: str, **deltas: int) -> None:
        async with self._locks[owner_id]:
            record = self._records.get(owner_id)
            if record is None:
                record = OwnerStatistics(owner_id=owner_id)
                self._records[owner_id] = record
            for name, delta in deltas.items():
                setattr(record, name, getattr(record, name) + delta)

    async def _set_once(self, owner_id: str, name: str) -> None:
        async with self._locks[owner_id]:
            record = self._records.get(owner_id)
            if record is None:
                record = OwnerStatistics(owner_id=owner_id)
                self._records[owner_id] = record
            if getattr(record, name) is None:
                setattr(record, name, self._clock.now())

    # -- counters --------------------------------------------------------

    async def increment_success(self, owner_id: str) -> None:
        await self._add(owner_id, success=1)

    async def increment_failed(self, owner_id: str, count: int) -> None:
        await self._add(owner_id, failed=count)

    async def increment_total(self, owner_id: str, count: int) -> None:
        await self._add(owner_id, total=count)

    async def increment_download_success(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._add(
            owner_id,
            download_success_count=count,
            download_success_bytes=bytes_,
        )

    async def increment_download_failed(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._add(
            owner_id,
            download_failed_count=count,
            download_failed_bytes=bytes_,
        )

    # -- lifecycle timestamps --------------------------------------------

    async def start(self, owner_id: str) -> None:
        await self._set_once(owner_id, "started_at")

    async def exit(self, owner_id: str) -> None:
        await self._set_once(owner_id, "exited_at")

    # -- reads -----------------------------------------------------------

    async def get_snapshot(self, owner_id: str) -> OwnerStatistics | None:
        if owner_id not in self._records:
            return None
        async with self._locks[owner_id]:
            record = self._records.get(owner_id)
            return record.model_copy() if record is not None else None

    def owner_ids(self) -> list[str]:
        return sorted(self._records)
