"""Application bootstrap.

Loads settings, wires the event bus, counter store and statistics service,
and runs until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from .aggregation.service import StatisticsService
from .bus.bus import create_event_bus
from .core.config import Settings, load_settings
from .core.interfaces import ICounterStore, IEventBus
from .observability.logger import setup_logging
from .storage.factory import create_counter_store

logger = logging.getLogger(__name__)


def build_service(
    settings: Settings,
    bus: IEventBus,
    store: ICounterStore,
) -> StatisticsService:
    return StatisticsService(
        bus,
        store,
        topic=settings.statistics.topic,
        group=settings.statistics.consumer_group,
        drain_timeout=settings.statistics.drain_timeout_seconds,
    )


def build_bus(settings: Settings) -> IEventBus:
    return create_event_bus(
        settings.bus,
        redis_url=settings.redis_url,
        redis_config=settings.redis_bus,
    )


async def run(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """Main entry point. Load config, wire modules, serve until signalled."""

    settings = load_settings(config_path=config_path, overrides=overrides)
    settings.validate_backends()

    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    logger.info(
        "Starting spider-stats",
        extra={"bus": settings.bus.value, "store": settings.store.value},
    )

    if settings.observability.metrics_enabled:
        try:
            from .observability.metrics import start_metrics_server

            start_metrics_server(port=settings.observability.metrics_port)
            logger.info(
                "Prometheus metrics server started on port %d",
                settings.observability.metrics_port,
            )
        except Exception:
            logger.warning("Failed to start metrics server", exc_info=True)

    bus = build_bus(settings)
    store = create_counter_store(settings)
    service = build_service(settings, bus, store)

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    await bus.start()
    try:
        await service.start()
        await stop_event.wait()
        await service.stop()
    finally:
        if service.in_flight:
            logger.warning(
                "Closing counter store under running handlers: %s",
                ", ".join(service.in_flight_messages()),
            )
        await bus.stop()
        await store.close()
    logger.info("spider-stats stopped")
