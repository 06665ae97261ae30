"""Redis Streams event bus implementation.

Uses Redis Streams with consumer groups, so every statistics message is
delivered at least once to each group even across consumer restarts.

- Messages are acknowledged only after the handler returns.
- Failed messages are retried up to ``max_handler_retries`` times, then
  dead-lettered and acknowledged so they don't block the stream.
- Messages of one read batch are handled concurrently.
- ``unsubscribe`` lets the consumer loop finish its current batch instead
  of cancelling it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

import redis.asyncio as aioredis

from spider_stats.core.interfaces import ErrorCallback, MessageHandler
from spider_stats.core.models import StatisticsMessage

logger = logging.getLogger(__name__)


@dataclass
class DeadLetter:
    """Record of a message that exhausted its retry budget."""

    topic: str
    group: str
    msg_id: str
    kind: str
    error: str
    attempts: int
    timestamp: float = field(default_factory=time.monotonic)


@dataclass
class _Subscription:
    topic: str
    group: str
    handler: MessageHandler
    active: bool = True
    task: asyncio.Task | None = None


class RedisStreamsBus:
    """Statistics channel shared by every crawler process through Redis.

    One stream per topic; each subscription is a consumer group whose loop
    runs as its own task.  ``on_handler_error(topic, group, msg_id, exc)``
    is called for every failed handler attempt.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        max_stream_length: int = 10_000,
        block_ms: int = 1000,
        batch_size: int = 10,
        max_handler_retries: int = 3,
        retry_delay: float = 1.0,
        consumer_name: str | None = None,
        on_handler_error: ErrorCallback | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self._max_len = max_stream_length
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._max_retries = max_handler_retries
        self._retry_delay = retry_delay
        self._consumer_name = consumer_name
        self._on_handler_error = on_handler_error
        self._subscriptions: dict[tuple[str, str], _Subscription] = {}
        self._running = False

        self._error_counts: Counter[str] = Counter()
        # "topic/group/msg_id" -> failed attempts so far
        self._attempts: Counter[str] = Counter()
        self._dead_letters: list[DeadLetter] = []
        self._messages_processed: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the client and launch a loop per registered subscription."""
        self._redis = aioredis.from_url(
            self._redis_url, decode_responses=True
        )
        self._running = True

        for sub in self._subscriptions.values():
            await self._launch(sub)

    async def stop(self) -> None:
        """Cancel every consumer loop and close the client.

        Use ``unsubscribe`` first for a graceful drain.
        """
        self._running = False
        tasks = [
            sub.task for sub in self._subscriptions.values()
            if sub.task is not None
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for sub in self._subscriptions.values():
            sub.task = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Publish / Subscribe
    # ------------------------------------------------------------------

    async def publish(self, topic: str, message: StatisticsMessage) -> None:
        """XADD the message to the topic stream, trimming it approximately."""
        if not self._redis:
            raise RuntimeError("RedisStreamsBus not started")

        await self._redis.xadd(
            topic,
            self._serialize(message),
            maxlen=self._max_len,
            approximate=True,
        )

    async def subscribe(
        self,
        topic: str,
        group: str,
        handler: MessageHandler,
    ) -> None:
        """Register ``handler`` for ``group`` on ``topic``.

        Before ``start()`` the loop is launched when the bus starts; after
        it, the group is created and the loop launched right away.
        """
        sub = _Subscription(topic=topic, group=group, handler=handler)
        self._subscriptions[(topic, group)] = sub

        if self._running and self._redis is not None:
            await self._launch(sub)

    async def unsubscribe(self, topic: str, group: str) -> None:
        """Stop reading new messages for ``group`` on ``topic``.

        Waits for the consumer loop to finish the batch it is handling.
        Unread and un-acked messages stay in the stream for the next
        consumer of the group.
        """
        sub = self._subscriptions.pop((topic, group), None)
        if sub is None:
            return
        sub.active = False
        if sub.task is not None:
            await asyncio.gather(sub.task, return_exceptions=True)
            sub.task = None

    # ------------------------------------------------------------------
    # Consumer loop
    # ------------------------------------------------------------------

    async def _launch(self, sub: _Subscription) -> None:
        await self._ensure_group(sub.topic, sub.group)
        sub.task = asyncio.create_task(
            self._consume_loop(sub),
            name=f"consumer-{sub.topic}-{sub.group}",
        )

    def _worker_name(self, group: str) -> str:
        if self._consumer_name:
            return self._consumer_name
        return f"{group}-{socket.gethostname()}-{os.getpid()}"

    async def _consume_loop(self, sub: _Subscription) -> None:
        """Read a batch, handle its entries concurrently, repeat.

        Cursor ``"0"`` replays this consumer's pending entries (failed
        attempts, or entries read before a restart but never acked);
        ``">"`` asks for new ones.  The loop goes back to the pending list
        whenever an entry of the last batch was left un-acked.
        """
        consumer_name = self._worker_name(sub.group)
        assert self._redis is not None
        error_key = f"{sub.topic}/{sub.group}"
        cursor = "0"

        while self._running and sub.active:
            try:
                entries = await self._redis.xreadgroup(
                    groupname=sub.group,
                    consumername=consumer_name,
                    streams={sub.topic: cursor},
                    count=self._batch_size,
                    block=self._block_ms,
                )
                batch = [
                    (msg_id, fields)
                    for _stream, messages in entries or ()
                    for msg_id, fields in messages
                ]
                if not batch:
                    cursor = ">"
                    continue
                if not sub.active:
                    # Unsubscribed while blocked in XREADGROUP: leave the
                    # batch pending for the next consumer of the group.
                    logger.debug(
                        "Leaving %d entries pending on %s", len(batch), error_key,
                    )
                    break

                acked = await asyncio.gather(*(
                    self._process_message(sub, msg_id, fields or {}, error_key)
                    for msg_id, fields in batch
                ))
                if all(acked):
                    cursor = ">"
                elif sub.active:
                    cursor = "0"
                    await asyncio.sleep(self._retry_delay)

            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(
                    "Consumer loop error for %s/%s", sub.topic, sub.group,
                )
                self._error_counts[error_key] += 1
                await asyncio.sleep(1)

    async def _process_message(
        self,
        sub: _Subscription,
        msg_id: str,
        fields: dict[str, str],
        error_key: str,
    ) -> bool:
        """Hand one stream entry to the subscriber; ``True`` once acked.

        The entry is acked when the handler returns.  A failing entry stays
        pending so the group redelivers it, until it has failed
        ``max_handler_retries`` times; then it is dead-lettered and acked.
        Entries reached after ``unsubscribe`` are left pending, unhandled.
        """
        assert self._redis is not None
        if not sub.active:
            return False
        message = self._deserialize(fields)
        if message is None:
            # Retrying cannot fix an entry without a kind.
            await self._dead_letter(sub, msg_id, fields, "deserialization_failed", 1)
            return True

        attempt_key = f"{error_key}/{msg_id}"
        try:
            await sub.handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error_counts[error_key] += 1
            self._attempts[attempt_key] += 1
            attempts = self._attempts[attempt_key]
            logger.exception(
                "Statistics handler failed on %s msg=%s (attempt %d/%d)",
                error_key,
                msg_id,
                attempts,
                self._max_retries,
            )
            self._notify_error(sub, msg_id, exc)
            if attempts >= self._max_retries:
                del self._attempts[attempt_key]
                await self._dead_letter(sub, msg_id, fields, str(exc), attempts)
                return True
            return False

        await self._redis.xack(sub.topic, sub.group, msg_id)
        self._attempts.pop(attempt_key, None)
        self._messages_processed += 1
        return True

    async def _dead_letter(
        self,
        sub: _Subscription,
        msg_id: str,
        fields: dict[str, str],
        error: str,
        attempts: int,
    ) -> None:
        assert self._redis is not None
        logger.error(
            "Dead-lettering %s on %s/%s after %d attempt(s): %s",
            msg_id,
            sub.topic,
            sub.group,
            attempts,
            error,
        )
        self._dead_letters.append(
            DeadLetter(
                topic=sub.topic,
                group=sub.group,
                msg_id=str(msg_id),
                kind=fields.get("kind", "unknown"),
                error=error,
                attempts=attempts,
            )
        )
        await self._redis.xack(sub.topic, sub.group, msg_id)

    def _notify_error(self, sub: _Subscription, msg_id: str, exc: Exception) -> None:
        if self._on_handler_error is None:
            return
        try:
            self._on_handler_error(sub.topic, sub.group, str(msg_id), exc)
        except Exception:
            logger.warning("on_handler_error callback raised", exc_info=True)

    # -- introspection ---------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Handler and loop failures keyed by ``"topic/group"``."""
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        """Entries acked after their handler returned."""
        return self._messages_processed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_group(self, topic: str, group: str) -> None:
        """Create consumer group, ignoring BUSYGROUP if it already exists."""
        assert self._redis is not None
        try:
            await self._redis.xgroup_create(
                topic, group, id="0", mkstream=True,
            )
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    @staticmethod
    def _serialize(message: StatisticsMessage) -> dict[str, str]:
        """Flatten a message into stream fields.

        A ``None`` payload is encoded by omitting the field.
        """
        fields = {
            "kind": message.kind,
            "message_id": message.message_id,
            "timestamp": message.timestamp.isoformat(),
        }
        if message.payload is not None:
            fields["payload"] = message.payload
        return fields

    @staticmethod
    def _deserialize(fields: dict[str, str]) -> StatisticsMessage | None:
        """Rebuild a message from stream fields."""
        kind = fields.get("kind")
        if not kind:
            logger.warning("Malformed stream entry: %s", fields)
            return None

        extra: dict[str, object] = {}
        if fields.get("message_id"):
            extra["message_id"] = fields["message_id"]
        if fields.get("timestamp"):
            try:
                extra["timestamp"] = datetime.fromisoformat(fields["timestamp"])
            except ValueError:
                logger.debug("Ignoring bad timestamp %r", fields["timestamp"])
        return StatisticsMessage(kind=kind, payload=fields.get("payload"), **extra)
