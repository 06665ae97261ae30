"""Statistics service lifecycle controller.

State machine::

    STOPPED -> INITIALIZING -> RUNNING -> DRAINING -> STOPPED

``start()`` readies the counter store and subscribes the decode/apply
pipeline to the statistics topic.  ``stop()`` unsubscribes and waits for
handlers already in flight; it never cancels them, so no counter is left
half-updated.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from spider_stats.core.enums import DropReason, EventKind, ServiceState
from spider_stats.core.errors import (
    InvalidOwnerId,
    InvalidQuantity,
    MalformedPayload,
    StartupFailure,
    StoreUnavailable,
)
from spider_stats.core.interfaces import ICounterStore, IEventBus
from spider_stats.core.models import StatisticsMessage
from spider_stats.observability import metrics
from spider_stats.observability.logger import reset_trace_id, set_trace_id

from .decoder import decode_message
from .engine import AggregationEngine

logger = logging.getLogger(__name__)

_KNOWN_KINDS = {kind.value for kind in EventKind}


class StatisticsService:
    """Consumes statistics messages and aggregates them per owner.

    Args:
        bus: Event channel to subscribe to.
        store: Counter store shared by every handler.
        topic: Statistics topic name.
        group: Consumer group name on the topic.
        engine: Aggregation engine; built on ``store`` when omitted.
        drain_timeout: Seconds ``stop()`` waits for in-flight handlers
            before giving up waiting.  ``None`` waits until they finish.
    """

    def __init__(
        self,
        bus: IEventBus,
        store: ICounterStore,
        *,
        topic: str = "statistics-service",
        group: str = "statistics-center",
        engine: AggregationEngine | None = None,
        drain_timeout: float | None = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._topic = topic
        self._group = group
        self._engine = engine or AggregationEngine(store)
        self._drain_timeout = drain_timeout
        self._state = ServiceState.STOPPED
        # handler sequence number -> message being handled
        self._in_flight: dict[int, StatisticsMessage | None] = {}
        self._sequence = itertools.count()
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServiceState.RUNNING

    @property
    def in_flight(self) -> int:
        """Number of messages currently being handled."""
        return len(self._in_flight)

    @property
    def engine(self) -> AggregationEngine:
        return self._engine

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def group(self) -> str:
        return self._group

    @property
    def drain_timeout(self) -> float | None:
        return self._drain_timeout

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Ready the store and begin consuming the statistics topic.

        Raises:
            StartupFailure: the store (or the subscription) could not be
                set up.  The service stays ``STOPPED``.
        """
        if self._state is not ServiceState.STOPPED:
            logger.warning("Statistics center start ignored in state %s", self._state.value)
            return

        self._state = ServiceState.INITIALIZING
        try:
            await self._store.ensure_ready()
        except Exception as exc:
            self._state = ServiceState.STOPPED
            logger.error("Statistics store initialization failed: %s", exc)
            raise StartupFailure(f"Counter store not ready: {exc}") from exc
        logger.info("Initialize statistics center database success")

        self._state = ServiceState.RUNNING
        try:
            await self._bus.subscribe(self._topic, self._group, self.handle_message)
        except Exception as exc:
            self._state = ServiceState.STOPPED
            raise StartupFailure(
                f"Subscription to {self._topic!r} failed: {exc}"
            ) from exc
        logger.info(
            "Statistics center started",
            extra={"topic": self._topic, "group": self._group},
        )

    async def stop(self) -> None:
        """Unsubscribe and wait for in-flight handlers to finish."""
        if self._state is not ServiceState.RUNNING:
            return

        self._state = ServiceState.DRAINING
        try:
            await self._bus.unsubscribe(self._topic, self._group)
        except Exception:
            logger.exception("Unsubscribe from %s failed", self._topic)

        if not await self.wait_idle(self._drain_timeout):
            abandoned = self.in_flight_messages()
            logger.warning(
                "Statistics center stopped with %d handlers still running: %s",
                len(abandoned),
                ", ".join(abandoned),
                extra={"abandoned": abandoned},
            )
        self._state = ServiceState.STOPPED
        logger.info("Statistics center exited")

    def in_flight_messages(self) -> list[str]:
        """``"<kind> <payload> (<message_id>)"`` for every running handler."""
        return [
            f"{m.kind} {m.payload!r} ({m.message_id})" if m is not None else "<empty>"
            for m in self._in_flight.values()
        ]

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no handler is running.  Returns ``False`` on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Per-message pipeline
    # ------------------------------------------------------------------

    async def handle_message(self, message: StatisticsMessage | None) -> None:
        """Decode and apply one message.  Never raises for bad input."""
        if self._state is not ServiceState.RUNNING:
            logger.debug("Dropping statistics message while %s", self._state.value)
            metrics.record_dropped(DropReason.NOT_RUNNING.value)
            return

        seq = next(self._sequence)
        self._in_flight[seq] = message
        self._idle.clear()
        metrics.update_in_flight(len(self._in_flight))
        try:
            await self._process(message)
        finally:
            del self._in_flight[seq]
            metrics.update_in_flight(len(self._in_flight))
            if not self._in_flight:
                self._idle.set()

    async def _process(self, message: StatisticsMessage | None) -> None:
        if message is None:
            await self._decode_and_apply(None)
            return
        # The memory bus runs handlers in the publisher's task; restore its
        # trace id on the way out.
        token = set_trace_id(message.message_id)
        try:
            kind = message.kind if message.kind in _KNOWN_KINDS else "unknown"
            metrics.record_received(kind)
            await self._decode_and_apply(message)
        finally:
            reset_trace_id(token)

    async def _decode_and_apply(self, message: StatisticsMessage | None) -> None:
        try:
            command = decode_message(message)
        except MalformedPayload as exc:
            logger.error("Dropping malformed statistics message: %s", exc)
            metrics.record_dropped(DropReason.MALFORMED.value)
            return

        if command is None:
            if message is None or message.kind in _KNOWN_KINDS:
                metrics.record_dropped(DropReason.EMPTY.value)
            return

        try:
            await self._engine.apply(command)
        except InvalidOwnerId as exc:
            logger.warning("Dropping statistics message: %s", exc)
            metrics.record_dropped(DropReason.INVALID_OWNER.value)
        except InvalidQuantity as exc:
            logger.warning("Dropping statistics message: %s", exc)
            metrics.record_dropped(DropReason.INVALID_QUANTITY.value)
        except StoreUnavailable as exc:
            logger.error("Statistics store call failed, message dropped: %s", exc)
            metrics.record_dropped(DropReason.STORE_UNAVAILABLE.value)
        else:
            metrics.record_applied(message.kind)
