"""Shared fixtures for the spider-stats test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone

import pytest

from spider_stats.aggregation.client import StatisticsClient
from spider_stats.aggregation.engine import AggregationEngine
from spider_stats.aggregation.service import StatisticsService
from spider_stats.bus.memory_bus import MemoryEventBus
from spider_stats.core.clock import SimClock
from spider_stats.storage.memory_store import InMemoryCounterStore

TOPIC = "statistics-service"
GROUP = "statistics-center"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Return a SimClock starting at 2024-06-01 00:00 UTC."""
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Store / bus / engine
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_store(sim_clock: SimClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=sim_clock)


@pytest.fixture
def memory_bus() -> MemoryEventBus:
    return MemoryEventBus()


@pytest.fixture
def engine(memory_store: InMemoryCounterStore) -> AggregationEngine:
    return AggregationEngine(memory_store)


@pytest.fixture
async def service(
    memory_bus: MemoryEventBus, memory_store: InMemoryCounterStore
) -> AsyncIterator[StatisticsService]:
    """A running StatisticsService on the memory bus and store."""
    svc = StatisticsService(memory_bus, memory_store, topic=TOPIC, group=GROUP)
    await memory_bus.start()
    await svc.start()
    yield svc
    await svc.stop()
    await memory_bus.stop()


@pytest.fixture
def client(memory_bus: MemoryEventBus) -> StatisticsClient:
    return StatisticsClient(memory_bus, topic=TOPIC)

