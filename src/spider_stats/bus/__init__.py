"""Event channel transports: in-memory and Redis Streams."""

from spider_stats.bus.bus import create_event_bus

__all__ = ["create_event_bus"]
