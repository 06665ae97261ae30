"""Builds the statistics channel selected by ``Settings.bus``."""

from __future__ import annotations

from spider_stats.core.config import RedisBusConfig
from spider_stats.core.enums import BusBackend
from spider_stats.core.interfaces import ErrorCallback

from .memory_bus import MemoryEventBus
from .redis_streams import RedisStreamsBus


def create_event_bus(
    backend: BusBackend,
    redis_url: str = "redis://localhost:6379/0",
    redis_config: RedisBusConfig | None = None,
    on_handler_error: ErrorCallback | None = None,
) -> MemoryEventBus | RedisStreamsBus:
    """Return an unstarted bus for ``backend``.

    Args:
        backend: ``memory`` for a single process, ``redis`` when crawler
            processes and the statistics center run apart.
        redis_url: Used by the redis backend only.
        redis_config: Stream length, batching and retry limits (redis only).
        on_handler_error: Called as ``(topic, group, msg_id, exc)`` after
            each failed handler attempt.
    """
    if backend == BusBackend.MEMORY:
        return MemoryEventBus(on_handler_error)

    cfg = redis_config or RedisBusConfig()
    return RedisStreamsBus(
        redis_url,
        max_stream_length=cfg.max_stream_length,
        block_ms=cfg.block_ms,
        batch_size=cfg.batch_size,
        max_handler_retries=cfg.max_handler_retries,
        retry_delay=cfg.retry_delay_seconds,
        on_handler_error=on_handler_error,
    )
