"""Sources: metrics sources polling RabbitMQ servers."""

from rabbitwatch.sources.management import ManagementApiSource

__all__ = [
    "ManagementApiSource",
]
