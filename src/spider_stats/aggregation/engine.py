"""Aggregation engine: applies decoded commands to the counter store.

Validation happens before any store call, so a rejected command never
mutates a counter.  Store failures surface as :class:`StoreUnavailable`;
the engine never retries.
"""

from __future__ import annotations

import logging

from spider_stats.core.commands import (
    Command,
    RecordDownloadFailed,
    RecordDownloadSuccess,
    RecordExit,
    RecordFailed,
    RecordStart,
    RecordSuccess,
    RecordTotal,
    RequestSnapshot,
)
from spider_stats.core.errors import InvalidOwnerId, InvalidQuantity, StoreUnavailable
from spider_stats.core.interfaces import ICounterStore
from spider_stats.core.models import OwnerStatistics

logger = logging.getLogger(__name__)


_COMMAND_TYPES = (
    RecordSuccess,
    RecordFailed,
    RecordTotal,
    RecordStart,
    RecordExit,
    RecordDownloadSuccess,
    RecordDownloadFailed,
    RequestSnapshot,
)


def _validate(command: Command) -> None:
    if not isinstance(command, _COMMAND_TYPES):
        raise TypeError(f"Unsupported command: {command!r}")
    if not command.owner_id or not command.owner_id.strip():
        raise InvalidOwnerId(command.owner_id)
    for field in ("count", "bytes"):
        value = getattr(command, field, None)
        if value is not None and value < 0:
            raise InvalidQuantity(command.owner_id, field, value)


class AggregationEngine:
    """Maps commands onto counter store mutations.

    The engine holds no per-owner state; atomicity of each mutation is the
    store's contract, which keeps owners independent of one another.
    """

    def __init__(self, store: ICounterStore) -> None:
        self._store = store

    async def apply(self, command: Command) -> OwnerStatistics | None:
        """Apply one command.

        Returns the snapshot for :class:`RequestSnapshot` (``None`` if the
        owner is unknown) and ``None`` for every mutation.

        Raises:
            InvalidOwnerId: empty or whitespace owner id.
            InvalidQuantity: negative count or bytes.
            StoreUnavailable: the store call failed.
        """
        _validate(command)
        try:
            return await self._dispatch(command)
        except StoreUnavailable:
            raise
        except Exception as exc:
            raise StoreUnavailable(
                f"{type(command).__name__} for {command.owner_id!r} failed: {exc}"
            ) from exc

    async def _dispatch(self, command: Command) -> OwnerStatistics | None:
        store = self._store
        match command:
            case RecordSuccess(owner_id=owner_id):
                await store.increment_success(owner_id)
            case RecordFailed(owner_id=owner_id, count=count):
                await store.increment_failed(owner_id, count)
            case RecordTotal(owner_id=owner_id, count=count):
                await store.increment_total(owner_id, count)
            case RecordStart(owner_id=owner_id):
                await store.start(owner_id)
            case RecordExit(owner_id=owner_id):
                await store.exit(owner_id)
            case RecordDownloadSuccess(owner_id=owner_id, count=count, bytes=size):
                await store.increment_download_success(owner_id, count, size)
            case RecordDownloadFailed(owner_id=owner_id, count=count, bytes=size):
                await store.increment_download_failed(owner_id, count, size)
            case RequestSnapshot(owner_id=owner_id):
                return await self._report(owner_id)
        return None

    async def _report(self, owner_id: str) -> OwnerStatistics | None:
        statistics = await self._store.get_snapshot(owner_id)
        if statistics is None:
            logger.debug("No statistics recorded for %s", owner_id)
            return None
        logger.info(
            "%s",
            statistics.report_line(),
            extra={
                "owner_id": owner_id,
                "state": statistics.state.value,
                "download_success_count": statistics.download_success_count,
                "download_success_bytes": statistics.download_success_bytes,
                "download_failed_count": statistics.download_failed_count,
                "download_failed_bytes": statistics.download_failed_bytes,
            },
        )
        return statistics

    async def snapshot(self, owner_id: str) -> OwnerStatistics | None:
        """Read-only query of one owner's counters."""
        if not owner_id or not owner_id.strip():
            raise InvalidOwnerId(owner_id)
        try:
            return await self._store.get_snapshot(owner_id)
        except Exception as exc:
            raise StoreUnavailable(
                f"snapshot for {owner_id!r} failed: {exc}"
            ) from exc
