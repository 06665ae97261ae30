"""Counter store backends: in-memory, Redis hashes, PostgreSQL upserts."""

from spider_stats.storage.factory import create_counter_store

__all__ = ["create_counter_store"]
