"""
Read-side caches for conversation lists and message history.

Namespaces:
- ``conversations:{tenant_id}`` holds one entry per filter/page signature
- ``messages:{tenant_id}:{conversation_id}`` holds one entry per history page

Every namespace carries a generation number that invalidation bumps. A background refresh reads
the generation before it starts and only writes back if it is unchanged, so a refresh that
raced a message write never restores stale data.

The cache is disposable: backend failures are logged and treated as misses.
"""

from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.interfaces.cache_interface import ICache

logger = get_logger(__name__)


def conversations_namespace(tenant_id: int) -> str:
    return f"conversations:{tenant_id}"


def messages_namespace(tenant_id: int, conversation_id: str) -> str:
    return f"messages:{tenant_id}:{conversation_id}"


class ConversationCacheService:
    def __init__(self, cache: ICache, conversation_ttl: int = 60, message_ttl: int = 10):
        self.cache = cache
        self.conversation_ttl = conversation_ttl
        self.message_ttl = message_ttl
        self._generations: dict[str, int] = {}

    def generation(self, namespace: str) -> int:
        return self._generations.get(namespace, 0)

    async def _get(self, namespace: str, key: str) -> Any | None:
        try:
            return await self.cache.get(namespace, key)
        except Exception as e:
            logger.warning(f"Cache read failed for {namespace}/{key}: {e}")
            return None

    async def _set(
        self, namespace: str, key: str, value: Any, ttl: int, generation: int | None
    ) -> bool:
        if generation is not None and generation != self.generation(namespace):
            logger.debug(f"Skipping stale cache write for {namespace}/{key}")
            return False
        try:
            await self.cache.set(namespace, key, value, ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache write failed for {namespace}/{key}: {e}")
            return False

    async def _invalidate(self, namespace: str) -> None:
        self._generations[namespace] = self.generation(namespace) + 1
        try:
            await self.cache.invalidate(namespace)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {namespace}: {e}")

    # Conversation lists

    async def get_conversations(self, tenant_id: int, signature: str) -> Any | None:
        return await self._get(conversations_namespace(tenant_id), signature)

    async def set_conversations(
        self, tenant_id: int, signature: str, value: Any, generation: int | None = None
    ) -> bool:
        return await self._set(
            conversations_namespace(tenant_id),
            signature,
            value,
            self.conversation_ttl,
            generation,
        )

    def conversations_generation(self, tenant_id: int) -> int:
        return self.generation(conversations_namespace(tenant_id))

    async def invalidate_conversations(self, tenant_id: int) -> None:
        await self._invalidate(conversations_namespace(tenant_id))

    # Message history

    async def get_messages(self, tenant_id: int, conversation_id: str, key: str) -> Any | None:
        return await self._get(messages_namespace(tenant_id, conversation_id), key)

    async def set_messages(
        self,
        tenant_id: int,
        conversation_id: str,
        key: str,
        value: Any,
        generation: int | None = None,
    ) -> bool:
        return await self._set(
            messages_namespace(tenant_id, conversation_id),
            key,
            value,
            self.message_ttl,
            generation,
        )

    def messages_generation(self, tenant_id: int, conversation_id: str) -> int:
        return self.generation(messages_namespace(tenant_id, conversation_id))

    async def invalidate_conversation(self, tenant_id: int, conversation_id: str) -> None:
        """Drop the conversation's history and the tenant's conversation lists."""
        await self._invalidate(messages_namespace(tenant_id, conversation_id))
        await self._invalidate(conversations_namespace(tenant_id))
