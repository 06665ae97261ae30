"""Counter store factory."""

from __future__ import annotations

from spider_stats.core.clock import IClock
from spider_stats.core.config import Settings
from spider_stats.core.enums import StoreBackend
from spider_stats.core.interfaces import ICounterStore


def create_counter_store(
    settings: Settings,
    clock: IClock | None = None,
) -> ICounterStore:
    """Build the counter store selected by ``settings.store``.

    Backends with third-party drivers are imported lazily so the memory
    backend works without Redis or PostgreSQL client libraries loaded.
    """
    if settings.store == StoreBackend.MEMORY:
        from .memory_store import InMemoryCounterStore

        return InMemoryCounterStore(clock=clock)

    if settings.store == StoreBackend.REDIS:
        from .redis_store import RedisCounterStore

        return RedisCounterStore(
            settings.redis_url,
            prefix=settings.statistics.redis_prefix,
            clock=clock,
        )

    from .postgres.store import PostgresCounterStore

    return PostgresCounterStore(
        settings.postgres_url,
        clock=clock,
        pool_size=settings.postgres.pool_size,
        max_overflow=settings.postgres.max_overflow,
        echo=settings.postgres.echo,
    )
