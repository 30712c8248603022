"""
Cache interface for the read-side caches.

Entries live in a namespace (e.g. one tenant's conversation list) and are addressed by a key
inside it, so a write can drop every page of a namespace at once. Values must be JSON-compatible
because the Redis implementation serializes them.
"""

from abc import ABC, abstractmethod
from typing import Any


class ICache(ABC):
    """Namespaced TTL cache used by the conversation and message read paths."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Any | None:
        """
        Get a cached value.

        Args:
            namespace: Cache namespace (e.g. ``conversations:42``)
            key: Entry key inside the namespace

        Returns:
            Cached value or None if missing or expired
        """

    @abstractmethod
    async def set(self, namespace: str, key: str, value: Any, ttl: int) -> None:
        """
        Store a value with an explicit TTL in seconds.

        A TTL of 0 disables caching for the call (the value is not stored).
        """

    @abstractmethod
    async def invalidate(self, namespace: str, key: str | None = None) -> int:
        """
        Drop one entry, or the whole namespace when ``key`` is None.

        Returns:
            Number of entries removed
        """

    async def close(self) -> None:
        """Release backend resources."""
        return None
