"""PostgreSQL counter store.

Every mutation is a single ``INSERT ... ON CONFLICT (owner_id) DO UPDATE``
statement, so record creation and increment happen atomically in the
database and concurrent writers on one owner never lose updates:

  - counters:   ``col = owner_statistics.col + excluded.col``
  - timestamps: ``col = COALESCE(owner_statistics.col, excluded.col)``
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from spider_stats.core.clock import IClock, WallClock
from spider_stats.core.models import OwnerStatistics

from .connection import create_all, create_engine, create_session_factory, session_scope
from .models import OwnerStatisticsRecord

logger = logging.getLogger(__name__)

_table = OwnerStatisticsRecord.__table__


def build_increment(owner_id: str, **deltas: int) -> Insert:
    """Upsert that adds ``deltas`` to the owner's counters."""
    stmt = insert(OwnerStatisticsRecord).values(owner_id=owner_id, **deltas)
    updates = {name: _table.c[name] + stmt.excluded[name] for name in deltas}
    updates["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[_table.c.owner_id],
        set_=updates,
    )


def build_set_once(owner_id: str, column: str, when: datetime) -> Insert:
    """Upsert that fills ``column`` only when it is still NULL."""
    stmt = insert(OwnerStatisticsRecord).values(owner_id=owner_id, **{column: when})
    return stmt.on_conflict_do_update(
        index_elements=[_table.c.owner_id],
        set_={
            column: func.coalesce(_table.c[column], stmt.excluded[column]),
            "updated_at": func.now(),
        },
    )


class PostgresCounterStore:
    """Counter store persisted in the ``owner_statistics`` table.

    Args:
        url: ``postgresql+asyncpg://`` connection URL.
        clock: Source of ``started_at``/``exited_at`` values.
        engine: Pre-built engine; when given, ``url`` and pool options
            are ignored and ``close()`` leaves the engine alone.
    """

    def __init__(
        self,
        url: str = "",
        *,
        clock: IClock | None = None,
        engine: AsyncEngine | None = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        self._url = url
        self._clock = clock or WallClock()
        self._engine = engine
        self._owns_engine = engine is None
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    async def ensure_ready(self) -> None:
        """Create the engine if needed and the table if missing."""
        if self._engine is None:
            self._engine = create_engine(
                self._url,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                echo=self._echo,
            )
        if self._sessions is None:
            self._sessions = create_session_factory(self._engine)
        await create_all(self._engine)

    async def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            logger.info("Engine disposed.")
            self._engine = None
        self._sessions = None

    @property
    def sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            raise RuntimeError(
                "PostgresCounterStore not ready. Call ensure_ready() first."
            )
        return self._sessions

    async def _execute(self, stmt: Insert) -> None:
        async with session_scope(self.sessions) as session:
            await session.execute(stmt)

    # -- counters ------------------------------------------------------------

    async def increment_success(self, owner_id: str) -> None:
        await self._execute(build_increment(owner_id, success=1))

    async def increment_failed(self, owner_id: str, count: int) -> None:
        await self._execute(build_increment(owner_id, failed=count))

    async def increment_total(self, owner_id: str, count: int) -> None:
        await self._execute(build_increment(owner_id, total=count))

    async def increment_download_success(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._execute(build_increment(
            owner_id,
            download_success_count=count,
            download_success_bytes=bytes_,
        ))

    async def increment_download_failed(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._execute(build_increment(
            owner_id,
            download_failed_count=count,
            download_failed_bytes=bytes_,
        ))

    # -- lifecycle timestamps ------------------------------------------------

    async def start(self, owner_id: str) -> None:
        await self._execute(build_set_once(owner_id, "started_at", self._clock.now()))

    async def exit(self, owner_id: str) -> None:
        await self._execute(build_set_once(owner_id, "exited_at", self._clock.now()))

    # -- reads ---------------------------------------------------------------

    async def get_snapshot(self, owner_id: str) -> OwnerStatistics | None:
        async with session_scope(self.sessions) as session:
            record = await session.get(OwnerStatisticsRecord, owner_id)
            if record is None:
                return None
            return record.to_statistics()
