"""Ingestor de logs: stream Redis (consumer group) → Elasticsearch _bulk."""

__version__ = "0.1.0"
