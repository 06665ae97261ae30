"""Statistics aggregation service for distributed crawl tasks."""

__version__ = "0.1.0"
