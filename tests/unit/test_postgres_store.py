"""PostgresCounterStore: upsert statements and record mapping (no database)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.dialects import postgresql

from spider_stats.core.enums import OwnerState
from spider_stats.storage.postgres.models import OwnerStatisticsRecord
from spider_stats.storage.postgres.store import (
    PostgresCounterStore,
    build_increment,
    build_set_once,
)


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestUpsertStatements:
    def test_increment_is_on_conflict_add(self):
        sql = _sql(build_increment("X", failed=2))
        assert "INSERT INTO owner_statistics" in sql
        assert "ON CONFLICT (owner_id) DO UPDATE" in sql
        assert "failed = (owner_statistics.failed + excluded.failed)" in sql

    def test_increment_only_touches_given_counters(self):
        sql = _sql(build_increment("X", success=1))
        update_clause = sql.split("DO UPDATE SET", 1)[1]
        assert "success" in update_clause
        assert "failed" not in update_clause
        assert "total" not in update_clause

    def test_download_increment_updates_both_columns(self):
        sql = _sql(build_increment(
            "X", download_success_count=1, download_success_bytes=10,
        ))
        assert "download_success_count = (owner_statistics.download_success_count" in sql
        assert "download_success_bytes = (owner_statistics.download_success_bytes" in sql

    def test_set_once_uses_coalesce(self):
        when = datetime(2024, 6, 1, tzinfo=timezone.utc)
        sql = _sql(build_set_once("X", "started_at", when))
        assert "ON CONFLICT (owner_id) DO UPDATE" in sql
        assert "started_at = coalesce(owner_statistics.started_at, excluded.started_at)" in sql

    def test_increment_binds_values(self):
        params = build_increment("X", total=10).compile(dialect=postgresql.dialect()).params
        assert params["owner_id"] == "X"
        assert params["total"] == 10


class TestRecordMapping:
    def test_to_statistics(self):
        started = datetime(2024, 6, 1, tzinfo=timezone.utc)
        record = OwnerStatisticsRecord(
            owner_id="X",
            total=10,
            success=7,
            failed=2,
            download_success_count=7,
            download_success_bytes=7000,
            download_failed_count=2,
            download_failed_bytes=0,
            started_at=started,
            exited_at=None,
        )
        snap = record.to_statistics()
        assert snap.owner_id == "X"
        assert snap.left == 1
        assert snap.download_success_bytes == 7000
        assert snap.state is OwnerState.RUNNING

    def test_table_definition(self):
        table = OwnerStatisticsRecord.__table__
        assert table.name == "owner_statistics"
        assert [c.name for c in table.primary_key.columns] == ["owner_id"]


class TestStoreLifecycle:
    def test_sessions_require_ready(self):
        store = PostgresCounterStore("postgresql+asyncpg://u:p@localhost/db")
        with pytest.raises(RuntimeError, match="ensure_ready"):
            store.sessions

    @pytest.mark.asyncio
    async def test_close_without_engine(self):
        store = PostgresCounterStore("postgresql+asyncpg://u:p@localhost/db")
        await store.close()
        with pytest.raises(RuntimeError):
            store.sessions
