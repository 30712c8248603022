"""
In-memory TTL cache.

Single-process implementation of ICache: namespaces map to ``{key: (value, expires_at)}``
dicts guarded by one asyncio lock, with a periodic task sweeping expired entries.
"""

import asyncio
import time
from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.interfaces.cache_interface import ICache

logger = get_logger(__name__)


class MemoryCache(ICache):
    """Namespaced in-memory cache with lazy expiry and a background sweeper."""

    def __init__(self, cleanup_interval: float = 300.0, clock=time.monotonic):
        self._store: dict[str, dict[str, tuple[Any, float]]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._cleanup_task: asyncio.Task | None = None

    def start_cleanup_task(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_entries())
            logger.debug("Started memory cache TTL cleanup task")

    async def get(self, namespace: str, key: str) -> Any | None:
        async with self._lock:
            entries = self._store.get(namespace)
            if not entries or key not in entries:
                return None
            value, expires_at = entries[key]
            if self._clock() >= expires_at:
                del entries[key]
                return None
            return value

    async def set(self, namespace: str, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            return
        async with self._lock:
            self._store.setdefault(namespace, {})[key] = (value, self._clock() + ttl)
        self.start_cleanup_task()

    async def invalidate(self, namespace: str, key: str | None = None) -> int:
        async with self._lock:
            entries = self._store.get(namespace)
            if not entries:
                return 0
            if key is None:
                removed = len(entries)
                del self._store[namespace]
                return removed
            return 1 if entries.pop(key, None) is not None else 0

    async def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        async with self._lock:
            for namespace in list(self._store):
                entries = self._store[namespace]
                for key in [k for k, (_, exp) in entries.items() if now >= exp]:
                    del entries[key]
                    removed += 1
                if not entries:
                    del self._store[namespace]
        return removed

    async def _cleanup_expired_entries(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                removed = await self.purge_expired()
                if removed:
                    logger.debug(f"Purged {removed} expired cache entries")
            except Exception as e:
                logger.error(f"Memory cache cleanup failed: {e}")

    async def close(self) -> None:
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            self._store.clear()
