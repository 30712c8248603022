"""
Redis-backed ICache.

Entries are JSON strings under ``{prefix}:cache:{namespace}:{key}``. Each namespace keeps an
index set of its keys so a whole namespace can be dropped without scanning the keyspace.
"""

import json
from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.interfaces.cache_interface import ICache
from chatbridge.persistence.redis_client import RedisClient

logger = get_logger(__name__)


class RedisCache(ICache):
    def __init__(self, prefix: str = "chatbridge"):
        self.prefix = prefix

    def _key(self, namespace: str, key: str) -> str:
        return f"{self.prefix}:cache:{namespace}:{key}"

    def _index(self, namespace: str) -> str:
        return f"{self.prefix}:cache-index:{namespace}"

    async def get(self, namespace: str, key: str) -> Any | None:
        async with RedisClient.connection() as redis:
            raw = await redis.get(self._key(namespace, key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding undecodable cache entry {namespace}/{key}")
            return None

    async def set(self, namespace: str, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            return
        full_key = self._key(namespace, key)
        index = self._index(namespace)
        async with RedisClient.connection() as redis:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.set(full_key, json.dumps(value, default=str), ex=ttl)
                pipe.sadd(index, full_key)
                # the index outlives its longest entry by one TTL at most
                pipe.expire(index, ttl * 2)
                await pipe.execute()

    async def invalidate(self, namespace: str, key: str | None = None) -> int:
        index = self._index(namespace)
        async with RedisClient.connection() as redis:
            if key is not None:
                full_key = self._key(namespace, key)
                async with redis.pipeline(transaction=True) as pipe:
                    pipe.delete(full_key)
                    pipe.srem(index, full_key)
                    removed, _ = await pipe.execute()
                return int(removed)

            members = await redis.smembers(index)
            if not members:
                return 0
            removed = await redis.delete(*members)
            await redis.delete(index)
            return int(removed)
