"""Protocol interfaces for the statistics service.

The event channel and the counter store are external collaborators; the
aggregation core only ever talks to them through these protocols.
"""

from __future__ import annotations

from typing import Any, Callable, Coroutine, Protocol, runtime_checkable

from .models import OwnerStatistics, StatisticsMessage

MessageHandler = Callable[[StatisticsMessage], Coroutine[Any, Any, None]]

# (topic, group, message_id, exc), called after a handler raises
ErrorCallback = Callable[[str, str, str, Exception], None]


# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe event channel."""

    async def publish(self, topic: str, message: StatisticsMessage) -> None: ...

    async def subscribe(
        self,
        topic: str,
        group: str,
        handler: MessageHandler,
    ) -> None: ...

    async def unsubscribe(self, topic: str, group: str) -> None: ...

    async def start(self) -> None: ...
    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# Counter Store
# ---------------------------------------------------------------------------

@runtime_checkable
class ICounterStore(Protocol):
    """Per-owner counters with atomic, upserting increments.

    Every mutator creates the owner record when it does not exist yet.
    ``start``/``exit`` only set their timestamp when it is still absent.
    """

    async def ensure_ready(self) -> None: ...

    async def increment_success(self, owner_id: str) -> None: ...

    async def increment_failed(self, owner_id: str, count: int) -> None: ...

    async def increment_total(self, owner_id: str, count: int) -> None: ...

    async def start(self, owner_id: str) -> None: ...

    async def exit(self, owner_id: str) -> None: ...

    async def increment_download_success(
        self, owner_id: str, count: int, bytes_: int
    ) -> None: ...

    async def increment_download_failed(
        self, owner_id: str, count: int, bytes_: int
    ) -> None: ...

    async def get_snapshot(self, owner_id: str) -> OwnerStatistics | None: ...

    async def close(self) -> None: ...
