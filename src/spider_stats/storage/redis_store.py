"""Redis-backed counter store.

Each owner is one hash under ``{prefix}owner:{owner_id}``:

  - integer fields updated with ``HINCRBY`` (creates the hash on first use)
  - ``started_at`` / ``exited_at`` written with ``HSETNX`` (set-if-absent)

Two-field download updates run in a ``MULTI`` pipeline so a snapshot
never observes one half of the update.

Uses ``redis.asyncio`` for non-blocking I/O.
"""

from __future__ import annotations

import logging
from datetime import datetime

import redis.asyncio as aioredis

from spider_stats.core.clock import IClock, WallClock
from spider_stats.core.models import OwnerStatistics

logger = logging.getLogger(__name__)

_COUNTER_FIELDS = (
    "total",
    "success",
    "failed",
    "download_success_count",
    "download_success_bytes",
    "download_failed_count",
    "download_failed_bytes",
)
_TIMESTAMP_FIELDS = ("started_at", "exited_at")


def _owner_key(prefix: str, owner_id: str) -> str:
    return f"{prefix}owner:{owner_id}"


def _to_statistics(owner_id: str, raw: dict[str, str]) -> OwnerStatistics:
    data: dict[str, object] = {"owner_id": owner_id}
    for name in _COUNTER_FIELDS:
        if name in raw:
            data[name] = int(raw[name])
    for name in _TIMESTAMP_FIELDS:
        if raw.get(name):
            data[name] = datetime.fromisoformat(raw[name])
    return OwnerStatistics(**data)


class RedisCounterStore:
    """Async Redis counter store.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        prefix: Key namespace prefix. Defaults to ``"spider_stats:"``.
        clock: Source of ``started_at``/``exited_at`` values.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "spider_stats:",
        clock: IClock | None = None,
    ) -> None:
        self._url = redis_url
        self._prefix = prefix
        self._clock = clock or WallClock()
        self._redis: aioredis.Redis | None = None

    # -- lifecycle -----------------------------------------------------------

    async def ensure_ready(self) -> None:
        """Open the connection pool and verify connectivity."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                decode_responses=True,
                max_connections=20,
            )
        await self._redis.ping()
        logger.info("Redis counter store ready: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed.")

    @property
    def redis(self) -> aioredis.Redis:
        """Return the underlying Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError(
                "RedisCounterStore not connected. Call ensure_ready() first."
            )
        return self._redis

    # -- counters ------------------------------------------------------------

    async def increment_success(self, owner_id: str) -> None:
        await self.redis.hincrby(_owner_key(self._prefix, owner_id), "success", 1)

    async def increment_failed(self, owner_id: str, count: int) -> None:
        await self.redis.hincrby(
            _owner_key(self._prefix, owner_id), "failed", count
        )

    async def increment_total(self, owner_id: str, count: int) -> None:
        await self.redis.hincrby(
            _owner_key(self._prefix, owner_id), "total", count
        )

    async def increment_download_success(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._increment_pair(
            owner_id,
            "download_success_count", count,
            "download_success_bytes", bytes_,
        )

    async def increment_download_failed(
        self, owner_id: str, count: int, bytes_: int
    ) -> None:
        await self._increment_pair(
            owner_id,
            "download_failed_count", count,
            "download_failed_bytes", bytes_,
        )

    async def _increment_pair(
        self,
        owner_id: str,
        count_field: str,
        count: int,
        bytes_field: str,
        bytes_: int,
    ) -> None:
        key = _owner_key(self._prefix, owner_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, count_field, count)
            pipe.hincrby(key, bytes_field, bytes_)
            await pipe.execute()

    # -- lifecycle timestamps ------------------------------------------------

    async def start(self, owner_id: str) -> None:
        await self._set_once(owner_id, "started_at")

    async def exit(self, owner_id: str) -> None:
        await self._set_once(owner_id, "exited_at")

    async def _set_once(self, owner_id: str, field: str) -> None:
        key = _owner_key(self._prefix, owner_id)
        created = await self.redis.hsetnx(key, field, self._clock.now().isoformat())
        if not created:
            logger.debug("%s already set for %s", field, owner_id)

    # -- reads ---------------------------------------------------------------

    async def get_snapshot(self, owner_id: str) -> OwnerStatistics | None:
        raw = await self.redis.hgetall(_owner_key(self._prefix, owner_id))
        if not raw:
            return None
        return _to_statistics(owner_id, raw)
