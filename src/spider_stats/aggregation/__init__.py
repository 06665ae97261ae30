"""Message decoding, counter aggregation and the service lifecycle."""

from spider_stats.aggregation.client import StatisticsClient
from spider_stats.aggregation.decoder import decode_message, parse_command
from spider_stats.aggregation.engine import AggregationEngine
from spider_stats.aggregation.service import StatisticsService

__all__ = [
    "AggregationEngine",
    "StatisticsClient",
    "StatisticsService",
    "decode_message",
    "parse_command",
]
