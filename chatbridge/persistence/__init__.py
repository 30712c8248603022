"""Cache and notification backends (in-memory and Redis)."""

from .cache_factory import create_cache, create_publisher
from .memory_cache import MemoryCache
from .notifications import InMemoryNotificationPublisher, RedisNotificationPublisher
from .redis_cache import RedisCache

__all__ = [
    "InMemoryNotificationPublisher",
    "MemoryCache",
    "RedisCache",
    "RedisNotificationPublisher",
    "create_cache",
    "create_publisher",
]
