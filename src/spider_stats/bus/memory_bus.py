"""In-process statistics channel.

Used by the test suite and by single-process deployments where crawl tasks
and the statistics center share an event loop.  ``publish`` runs every
subscribed handler as part of the caller's task, in subscription order;
callers that want concurrent delivery fan out with ``asyncio.gather``.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import NamedTuple

from spider_stats.core.interfaces import ErrorCallback, MessageHandler
from spider_stats.core.models import StatisticsMessage

logger = logging.getLogger(__name__)


@dataclass
class MemoryDeadLetter:
    """A delivery whose handler raised."""

    topic: str
    group: str
    kind: str
    error: str
    message_id: str = ""
    timestamp: float = field(default_factory=time.monotonic)


class _Subscriber(NamedTuple):
    group: str
    handler: MessageHandler


class MemoryEventBus:
    """Topic → consumer group fan-out inside one event loop.

    Each consumer group sees every message published on its topic, same as
    a Redis Streams consumer group with a single consumer.  A handler that
    raises is logged, counted and dead-lettered; the remaining groups still
    receive the message.
    """

    def __init__(self, on_handler_error: ErrorCallback | None = None) -> None:
        self._subscribers: dict[str, list[_Subscriber]] = defaultdict(list)
        self._published: list[tuple[str, StatisticsMessage]] = []
        self._on_handler_error = on_handler_error
        self._running = False

        self._failures: Counter[str] = Counter()
        self._dead_letters: list[MemoryDeadLetter] = []
        self._delivered = 0

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    # -- subscriptions ---------------------------------------------------

    async def subscribe(
        self, topic: str, group: str, handler: MessageHandler
    ) -> None:
        self._subscribers[topic].append(_Subscriber(group, handler))

    async def unsubscribe(self, topic: str, group: str) -> None:
        """Drop every handler ``group`` registered on ``topic``."""
        kept = [s for s in self._subscribers.get(topic, ()) if s.group != group]
        if kept:
            self._subscribers[topic] = kept
        else:
            self._subscribers.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    # -- delivery --------------------------------------------------------

    async def publish(self, topic: str, message: StatisticsMessage) -> None:
        self._published.append((topic, message))
        # Copy: a handler may unsubscribe while we iterate.
        for subscriber in tuple(self._subscribers.get(topic, ())):
            await self._deliver(topic, subscriber, message)

    async def _deliver(
        self, topic: str, subscriber: _Subscriber, message: StatisticsMessage
    ) -> None:
        try:
            await subscriber.handler(message)
        except Exception as exc:
            self._record_failure(topic, subscriber.group, message, exc)
        else:
            self._delivered += 1

    def _record_failure(
        self,
        topic: str,
        group: str,
        message: StatisticsMessage,
        exc: Exception,
    ) -> None:
        self._failures[f"{topic}/{group}"] += 1
        self._dead_letters.append(
            MemoryDeadLetter(
                topic=topic,
                group=group,
                kind=message.kind,
                error=str(exc),
                message_id=message.message_id,
            )
        )
        logger.exception(
            "Statistics handler failed (topic=%s group=%s kind=%s)",
            topic,
            group,
            message.kind,
        )
        if self._on_handler_error is None:
            return
        try:
            self._on_handler_error(topic, group, message.message_id, exc)
        except Exception:
            logger.warning("on_handler_error callback raised", exc_info=True)

    # -- introspection ---------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Handler failures keyed by ``"topic/group"``."""
        return dict(self._failures)

    @property
    def dead_letters(self) -> list[MemoryDeadLetter]:
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        """Deliveries whose handler returned normally."""
        return self._delivered

    def get_history(
        self, topic: str | None = None
    ) -> list[tuple[str, StatisticsMessage]]:
        """Everything published so far, optionally for one topic only."""
        if topic is None:
            return list(self._published)
        return [entry for entry in self._published if entry[0] == topic]

    def clear_history(self) -> None:
        self._published.clear()
