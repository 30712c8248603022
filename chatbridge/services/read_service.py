"""
Cached read path for conversation lists and message history.

A cache hit is returned as is. On a miss the store answers immediately, the page is cached, and
a background task asks the live provider for newer data, imports it into the store and rewrites
the cache entry. Callers never wait for the provider.
"""

import asyncio
from collections.abc import Awaitable, Callable

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import ConversationSource
from chatbridge.domain.errors import ChatBridgeError, ConfigurationError
from chatbridge.domain.factories.provider_factory import ProviderFactory
from chatbridge.domain.models import (
    ConversationFilter,
    ConversationPage,
    ConversationRead,
    CustomerProfile,
    MessageRead,
)
from chatbridge.services.background import BackgroundTasks
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import ConversationStore
from chatbridge.utils.phone import normalize_phone

logger = get_logger(__name__)


class ConversationReadService:
    def __init__(
        self,
        store: ConversationStore,
        cache: ConversationCacheService,
        factory: ProviderFactory,
        tasks: BackgroundTasks,
        refresh_timeout: float = 5.0,
        refresh_limit: int = 100,
    ):
        self.store = store
        self.cache = cache
        self.factory = factory
        self.tasks = tasks
        self.refresh_timeout = refresh_timeout
        self.refresh_limit = refresh_limit
        self._inflight: set[str] = set()

    async def get_conversation(self, tenant_id: int, conversation_id: str) -> ConversationRead:
        conversation = await self.store.get_conversation(tenant_id, conversation_id)
        return ConversationRead.model_validate(conversation)

    async def list_conversations(
        self, tenant_id: int, filters: ConversationFilter
    ) -> ConversationPage:
        signature = filters.signature()
        cached = await self.cache.get_conversations(tenant_id, signature)
        if cached is not None:
            return ConversationPage.model_validate(cached)

        generation = self.cache.conversations_generation(tenant_id)
        page = await self.store.list_conversations(tenant_id, filters)
        await self.cache.set_conversations(
            tenant_id, signature, page.model_dump(mode="json"), generation
        )

        if filters.source != ConversationSource.WIDGET:
            self._schedule(
                f"conversations:{tenant_id}",
                lambda: self._refresh_conversations(tenant_id, filters, generation),
            )
        return page

    async def list_messages(
        self,
        tenant_id: int,
        conversation_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> list[MessageRead]:
        key = f"{page}:{page_size}"
        cached = await self.cache.get_messages(tenant_id, conversation_id, key)
        if cached is not None:
            return [MessageRead.model_validate(item) for item in cached]

        generation = self.cache.messages_generation(tenant_id, conversation_id)
        rows = await self.store.list_messages(tenant_id, conversation_id, page, page_size)
        messages = [MessageRead.model_validate(row) for row in rows]
        await self.cache.set_messages(
            tenant_id,
            conversation_id,
            key,
            [m.model_dump(mode="json") for m in messages],
            generation,
        )

        if page == 1:
            self._schedule(
                f"messages:{tenant_id}:{conversation_id}",
                lambda: self._refresh_messages(
                    tenant_id, conversation_id, key, page_size, generation
                ),
            )
        return messages

    # ================================================================
    # Background refresh
    # ================================================================

    def _schedule(self, key: str, factory: Callable[[], Awaitable[None]]) -> None:
        if key in self._inflight:
            return
        self._inflight.add(key)
        self.tasks.spawn(self._run_refresh(key, factory), name=f"refresh:{key}")

    async def _run_refresh(self, key: str, factory: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.wait_for(factory(), timeout=self.refresh_timeout)
        except TimeoutError:
            logger.warning(f"Background refresh {key} timed out after {self.refresh_timeout}s")
        except ConfigurationError as e:
            logger.debug(f"Background refresh {key} skipped: {e.message}")
        except ChatBridgeError as e:
            logger.warning(f"Background refresh {key} failed: {e.message}")
        except Exception:
            logger.exception(f"Background refresh {key} crashed")
        finally:
            self._inflight.discard(key)

    async def _refresh_conversations(
        self, tenant_id: int, filters: ConversationFilter, generation: int
    ) -> None:
        client = await self.factory.resolve(tenant_id)
        business = client.get_config().business_address
        if not business:
            return
        business = normalize_phone(business)

        remote = await client.list_conversations(limit=self.refresh_limit)
        for item in remote:
            conversation = await self.store.get_or_create(
                tenant_id,
                item.customer_address,
                business,
                provider=client.provider_name,
                customer_name=item.customer_name,
            )
            if item.avatar_url and not conversation.customer_avatar_url:
                await self.store.apply_profile(
                    conversation.id,
                    CustomerProfile(name=item.customer_name, avatar_url=item.avatar_url),
                    overwrite=False,
                )

        page = await self.store.list_conversations(tenant_id, filters)
        await self.cache.set_conversations(
            tenant_id, filters.signature(), page.model_dump(mode="json"), generation
        )
        logger.debug(f"Refreshed {len(remote)} conversation(s) from {client.provider_name}")

    async def _refresh_messages(
        self,
        tenant_id: int,
        conversation_id: str,
        key: str,
        page_size: int,
        generation: int,
    ) -> None:
        conversation = await self.store.get_conversation(tenant_id, conversation_id)
        if conversation.source != ConversationSource.PROVIDER:
            return

        client = await self.factory.resolve(tenant_id)
        if conversation.provider and conversation.provider != client.provider_name:
            return

        remote = await client.list_messages(conversation.customer_address, limit=page_size)
        inserted = await self.store.import_messages(
            conversation, client.provider_name, remote
        )
        if not inserted:
            return

        await self.cache.invalidate_conversations(tenant_id)
        rows = await self.store.list_messages(tenant_id, conversation_id, 1, page_size)
        await self.cache.set_messages(
            tenant_id,
            conversation_id,
            key,
            [MessageRead.model_validate(r).model_dump(mode="json") for r in rows],
            generation,
        )

