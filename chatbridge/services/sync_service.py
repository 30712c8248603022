"""
Provider sync operations.

Only providers implementing ``SyncableProvider`` can list their chats, enrich contacts and
replay history. Capability is probed with ``isinstance`` against the protocol, so adding a
syncable provider needs no change here.
"""

from pydantic import BaseModel

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import ConversationSource
from chatbridge.domain.errors import CapabilityNotSupportedError, ChatBridgeError
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.domain.interfaces.provider_interface import SyncableProvider
from chatbridge.domain.models import ConversationRead, CustomerProfile
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import ConversationStore
from chatbridge.services.outbound_service import OutboundService, call_provider
from chatbridge.utils.phone import normalize_phone

logger = get_logger(__name__)


class SyncResult(BaseModel):
    conversations: int = 0
    created: int = 0
    messages_imported: int = 0
    failed: int = 0


class SyncService:
    def __init__(
        self,
        outbound: OutboundService,
        store: ConversationStore,
        cache: ConversationCacheService,
        publisher: INotificationPublisher,
        timeout: float = 30.0,
        chat_limit: int = 1000,
        history_limit: int = 100,
    ):
        self.outbound = outbound
        self.store = store
        self.cache = cache
        self.publisher = publisher
        self.timeout = timeout
        self.chat_limit = chat_limit
        self.history_limit = history_limit

    async def _syncable(self, tenant_id: int, capability: str) -> SyncableProvider:
        client = await self.outbound.resolve_client(tenant_id)
        if not isinstance(client, SyncableProvider):
            raise CapabilityNotSupportedError(client.provider_name, capability)
        return client

    async def refresh(self, tenant_id: int) -> SyncResult:
        """Mirror the provider's chat list into local conversations."""
        client = await self._syncable(tenant_id, "conversation sync")
        business = client.get_config().business_address
        if not business:
            raise CapabilityNotSupportedError(
                client.provider_name, "conversation sync without a business address"
            )
        business = normalize_phone(business)

        chats = await call_provider(
            client.refresh_chats(self.chat_limit), client.provider_name, self.timeout
        )
        known = {
            c.customer_address
            for c in await self.store.list_tenant_conversations(
                tenant_id, ConversationSource.PROVIDER
            )
        }

        result = SyncResult(conversations=len(chats))
        for chat in chats:
            conversation = await self.store.get_or_create(
                tenant_id,
                chat.customer_address,
                business,
                provider=client.provider_name,
                customer_name=chat.customer_name,
            )
            if chat.customer_address not in known:
                result.created += 1
            if chat.avatar_url:
                await self.store.apply_profile(
                    conversation.id,
                    CustomerProfile(name=chat.customer_name, avatar_url=chat.avatar_url),
                    overwrite=False,
                )

        await self.cache.invalidate_conversations(tenant_id)
        await self.publisher.publish(
            "conversation_updated", tenant_id, {"sync": "refresh", "count": len(chats)}
        )
        logger.info(
            f"Synced {len(chats)} chat(s) for tenant {tenant_id}, {result.created} new"
        )
        return result

    async def enrich(self, tenant_id: int, conversation_id: str) -> ConversationRead:
        """Fetch the customer's profile (name, avatar) from the provider."""
        client = await self._syncable(tenant_id, "contact enrichment")
        conversation = await self.store.get_conversation(tenant_id, conversation_id)
        if conversation.source != ConversationSource.PROVIDER:
            raise CapabilityNotSupportedError(client.provider_name, "widget enrichment")

        profile = await call_provider(
            client.enrich_contact(conversation.customer_address),
            client.provider_name,
            self.timeout,
        )
        if profile is not None:
            conversation = await self.store.apply_profile(conversation.id, profile)
            await self.cache.invalidate_conversations(tenant_id)
            await self.publisher.publish(
                "conversation_updated", tenant_id, {"conversation_id": conversation.id}
            )
        return ConversationRead.model_validate(conversation)

    async def rebuild(self, tenant_id: int) -> SyncResult:
        """
        Replay provider history into every provider conversation, then recompute all snapshots.

        A failure on one conversation is logged and counted; the rest still run.
        """
        client = await self._syncable(tenant_id, "rebuild from messages")
        conversations = await self.store.list_tenant_conversations(
            tenant_id, ConversationSource.PROVIDER
        )

        result = SyncResult(conversations=len(conversations))
        for conversation in conversations:
            try:
                history = await call_provider(
                    client.fetch_history(conversation.customer_address, self.history_limit),
                    client.provider_name,
                    self.timeout,
                )
                result.messages_imported += await self.store.import_messages(
                    conversation, client.provider_name, history
                )
            except ChatBridgeError as e:
                result.failed += 1
                logger.warning(
                    f"History replay failed for conversation {conversation.id}: {e.message}"
                )

        await self.store.rebuild_snapshots(tenant_id)
        for conversation in conversations:
            await self.cache.invalidate_conversation(tenant_id, conversation.id)
        await self.cache.invalidate_conversations(tenant_id)
        await self.publisher.publish(
            "conversation_updated", tenant_id, {"sync": "rebuild", "count": len(conversations)}
        )
        return result
