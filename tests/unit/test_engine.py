"""Test AggregationEngine command application and validation."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from spider_stats.aggregation.engine import AggregationEngine
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
from spider_stats.storage.memory_store import InMemoryCounterStore


class _BrokenStore(InMemoryCounterStore):
    """Memory store whose every call fails like a lost connection."""

    async def increment_success(self, owner_id: str) -> None:
        raise ConnectionError("store down")

    async def get_snapshot(self, owner_id: str):
        raise ConnectionError("store down")


class TestCounters:
    async def test_success_increments_by_one(self, engine, memory_store):
        await engine.apply(RecordSuccess("X"))
        await engine.apply(RecordSuccess("X"))
        snap = await memory_store.get_snapshot("X")
        assert snap.success == 2

    async def test_failed_adds_count(self, engine, memory_store):
        await engine.apply(RecordFailed("X", 2))
        await engine.apply(RecordFailed("X", 3))
        assert (await memory_store.get_snapshot("X")).failed == 5

    async def test_total_adds_count(self, engine, memory_store):
        for count in (1, 4, 0, 5):
            await engine.apply(RecordTotal("X", count))
        assert (await memory_store.get_snapshot("X")).total == 10

    async def test_download_success(self, engine, memory_store):
        await engine.apply(RecordDownloadSuccess("X", 2, 1024))
        await engine.apply(RecordDownloadSuccess("X", 1, 512))
        snap = await memory_store.get_snapshot("X")
        assert snap.download_success_count == 3
        assert snap.download_success_bytes == 1536
        assert snap.download_failed_count == 0

    async def test_download_failed(self, engine, memory_store):
        await engine.apply(RecordDownloadFailed("X", 4, 100))
        snap = await memory_store.get_snapshot("X")
        assert snap.download_failed_count == 4
        assert snap.download_failed_bytes == 100
        assert snap.download_success_bytes == 0

    async def test_record_created_without_start(self, engine, memory_store):
        await engine.apply(RecordSuccess("late"))
        snap = await memory_store.get_snapshot("late")
        assert snap.success == 1
        assert snap.started_at is None

    async def test_owners_are_independent(self, engine, memory_store):
        await asyncio.gather(
            *(engine.apply(RecordFailed("A", 1)) for _ in range(50)),
            *(engine.apply(RecordTotal("B", 2)) for _ in range(50)),
        )
        a = await memory_store.get_snapshot("A")
        b = await memory_store.get_snapshot("B")
        assert (a.failed, a.total) == (50, 0)
        assert (b.failed, b.total) == (0, 100)

    async def test_mutations_return_none(self, engine):
        assert await engine.apply(RecordTotal("X", 1)) is None


class TestLifecycleTimestamps:
    async def test_start_sets_started_at(self, engine, memory_store, sim_clock):
        await engine.apply(RecordStart("X"))
        snap = await memory_store.get_snapshot("X")
        assert snap.started_at == sim_clock.now()

    async def test_start_is_idempotent(self, engine, memory_store, sim_clock):
        await engine.apply(RecordStart("X"))
        first = (await memory_store.get_snapshot("X")).started_at
        sim_clock.advance(60)
        await engine.apply(RecordStart("X"))
        assert (await memory_store.get_snapshot("X")).started_at == first

    async def test_exit_is_idempotent(self, engine, memory_store, sim_clock):
        await engine.apply(RecordExit("X"))
        first = (await memory_store.get_snapshot("X")).exited_at
        sim_clock.advance(60)
        await engine.apply(RecordExit("X"))
        assert (await memory_store.get_snapshot("X")).exited_at == first
        assert first == datetime(2024, 6, 1, tzinfo=timezone.utc)

    async def test_concurrent_starts_set_once(self, engine, memory_store):
        await asyncio.gather(*(engine.apply(RecordStart("X")) for _ in range(20)))
        snap = await memory_store.get_snapshot("X")
        assert snap.started_at is not None


class TestValidation:
    @pytest.mark.parametrize(
        "command",
        [
            RecordFailed("X", -1),
            RecordTotal("X", -5),
            RecordDownloadSuccess("X", -1, 10),
            RecordDownloadSuccess("X", 1, -10),
            RecordDownloadFailed("X", 1, -1),
        ],
    )
    async def test_negative_quantity_rejected(self, engine, memory_store, command):
        with pytest.raises(InvalidQuantity):
            await engine.apply(command)
        assert await memory_store.get_snapshot("X") is None

    async def test_negative_bytes_reports_field(self, engine):
        with pytest.raises(InvalidQuantity) as info:
            await engine.apply(RecordDownloadFailed("X", 1, -7))
        assert info.value.field == "bytes"
        assert info.value.value == -7

    async def test_rejection_keeps_existing_counters(self, engine, memory_store):
        await engine.apply(RecordFailed("X", 3))
        with pytest.raises(InvalidQuantity):
            await engine.apply(RecordFailed("X", -3))
        assert (await memory_store.get_snapshot("X")).failed == 3

    @pytest.mark.parametrize("owner_id", ["", "   ", "\t"])
    async def test_blank_owner_rejected(self, engine, owner_id):
        with pytest.raises(InvalidOwnerId):
            await engine.apply(RecordSuccess(owner_id))

    async def test_unknown_command_type(self, engine):
        with pytest.raises(TypeError):
            await engine.apply(Command("X"))


class TestSnapshot:
    async def test_absent_owner_is_noop(self, engine, caplog):
        with caplog.at_level(logging.INFO):
            assert await engine.apply(RequestSnapshot("nobody")) is None
        assert "total" not in caplog.text

    async def test_reports_left(self, engine, caplog):
        await engine.apply(RecordTotal("X", 10))
        for _ in range(7):
            await engine.apply(RecordSuccess("X"))
        await engine.apply(RecordFailed("X", 2))

        with caplog.at_level(logging.INFO):
            snap = await engine.apply(RequestSnapshot("X"))

        assert snap.left == 1
        assert "X total 10, success 7, failed 2, left 1" in caplog.text

    async def test_reports_unknown_left(self, engine, caplog):
        await engine.apply(RecordTotal("X", 5))
        for _ in range(7):
            await engine.apply(RecordSuccess("X"))

        with caplog.at_level(logging.INFO):
            snap = await engine.apply(RequestSnapshot("X"))

        assert snap.left is None
        assert "left unknown" in caplog.text

    async def test_snapshot_does_not_mutate(self, engine, memory_store):
        await engine.apply(RecordTotal("X", 3))
        before = await memory_store.get_snapshot("X")
        await engine.apply(RequestSnapshot("X"))
        assert await memory_store.get_snapshot("X") == before

    async def test_snapshot_query(self, engine):
        await engine.apply(RecordSuccess("X"))
        snap = await engine.snapshot("X")
        assert snap.success == 1
        assert await engine.snapshot("Y") is None

    async def test_snapshot_query_blank_owner(self, engine):
        with pytest.raises(InvalidOwnerId):
            await engine.snapshot(" ")


class TestStoreFailures:
    async def test_store_error_wrapped(self):
        engine = AggregationEngine(_BrokenStore())
        with pytest.raises(StoreUnavailable, match="store down") as info:
            await engine.apply(RecordSuccess("X"))
        assert isinstance(info.value.__cause__, ConnectionError)

    async def test_snapshot_store_error_wrapped(self):
        engine = AggregationEngine(_BrokenStore())
        with pytest.raises(StoreUnavailable):
            await engine.apply(RequestSnapshot("X"))
        with pytest.raises(StoreUnavailable):
            await engine.snapshot("X")
