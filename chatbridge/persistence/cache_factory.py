"""
Backend selection for the cache and notification publisher.

Redis is used for both when ``REDIS_URL`` is configured, otherwise the in-process
implementations.
"""

from chatbridge.core.config.settings import Settings
from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.interfaces.cache_interface import ICache
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.persistence.memory_cache import MemoryCache
from chatbridge.persistence.notifications import (
    InMemoryNotificationPublisher,
    RedisNotificationPublisher,
)
from chatbridge.persistence.redis_cache import RedisCache
from chatbridge.persistence.redis_client import RedisClient

logger = get_logger(__name__)


def setup_redis(config: Settings) -> bool:
    if not config.has_redis:
        return False
    RedisClient.setup(config.redis_url, max_connections=config.redis_max_connections)
    return True


def create_cache(config: Settings) -> ICache:
    if config.has_redis:
        setup_redis(config)
        logger.info("Using Redis read cache")
        return RedisCache(prefix=config.redis_key_prefix)
    logger.info("Using in-memory read cache")
    return MemoryCache()


def create_publisher(config: Settings) -> INotificationPublisher:
    if config.has_redis:
        setup_redis(config)
        return RedisNotificationPublisher(prefix=config.redis_key_prefix)
    return InMemoryNotificationPublisher()
