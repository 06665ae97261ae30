"""Prometheus metrics endpoint.

Exposes statistics-service health for monitoring via Grafana.
"""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Info,
    start_http_server,
)

from spider_stats import __version__

SYSTEM_INFO = Info("spider_stats", "Statistics service information")

MESSAGES_RECEIVED = Counter(
    "spider_stats_messages_received_total",
    "Statistics messages received by kind",
    ["kind"],
)

MESSAGES_APPLIED = Counter(
    "spider_stats_messages_applied_total",
    "Statistics messages applied to the counter store",
    ["kind"],
)

MESSAGES_DROPPED = Counter(
    "spider_stats_messages_dropped_total",
    "Statistics messages discarded without mutation",
    ["reason"],
)

HANDLERS_IN_FLIGHT = Gauge(
    "spider_stats_handlers_in_flight",
    "Statistics messages currently being handled",
)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server in a background thread."""
    SYSTEM_INFO.info({"version": __version__})
    start_http_server(port)


def record_received(kind: str) -> None:
    MESSAGES_RECEIVED.labels(kind=kind).inc()


def record_applied(kind: str) -> None:
    MESSAGES_APPLIED.labels(kind=kind).inc()


def record_dropped(reason: str) -> None:
    MESSAGES_DROPPED.labels(reason=reason).inc()


def update_in_flight(count: int) -> None:
    HANDLERS_IN_FLIGHT.set(count)
