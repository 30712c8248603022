"""Agent-side conversation management: edits, close/archive and read state."""

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import ConversationSource, ConversationStatus, MessageDirection
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.domain.models import ConversationRead, ConversationUpdate, MessageRead
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import ConversationStore
from chatbridge.services.outbound_service import OutboundService

logger = get_logger(__name__)


class ConversationService:
    def __init__(
        self,
        store: ConversationStore,
        outbound: OutboundService,
        cache: ConversationCacheService,
        publisher: INotificationPublisher,
    ):
        self.store = store
        self.outbound = outbound
        self.cache = cache
        self.publisher = publisher

    async def _changed(self, tenant_id: int, conversation_id: str, **data) -> None:
        await self.cache.invalidate_conversation(tenant_id, conversation_id)
        await self.publisher.publish(
            "conversation_updated",
            tenant_id,
            {"conversation_id": conversation_id, **data},
        )

    async def update(
        self, tenant_id: int, conversation_id: str, update: ConversationUpdate
    ) -> ConversationRead:
        conversation = await self.store.update_conversation(tenant_id, conversation_id, update)
        await self._changed(
            tenant_id, conversation_id, fields=sorted(update.model_fields_set)
        )
        return ConversationRead.model_validate(conversation)

    async def set_status(
        self, tenant_id: int, conversation_id: str, status: ConversationStatus
    ) -> ConversationRead:
        conversation = await self.store.set_status(tenant_id, conversation_id, status)
        await self._changed(tenant_id, conversation_id, status=status.value)
        logger.info(f"Conversation {conversation_id} is now {status.value}")
        return ConversationRead.model_validate(conversation)

    async def close(self, tenant_id: int, conversation_id: str) -> ConversationRead:
        return await self.set_status(tenant_id, conversation_id, ConversationStatus.CLOSED)

    async def archive(self, tenant_id: int, conversation_id: str) -> ConversationRead:
        return await self.set_status(tenant_id, conversation_id, ConversationStatus.ARCHIVED)

    async def mark_conversation_read(
        self, tenant_id: int, conversation_id: str
    ) -> ConversationRead:
        """
        Mark the conversation read locally, then send the provider receipt.

        The local update is authoritative; the receipt is best-effort and bounded by the
        provider timeout.
        """
        conversation, latest_inbound = await self.store.mark_conversation_read(
            tenant_id, conversation_id
        )
        await self._changed(tenant_id, conversation_id, unread_count=0)

        if conversation.source == ConversationSource.PROVIDER:
            await self.outbound.send_read_receipt(
                tenant_id,
                conversation.customer_address,
                latest_inbound.external_id if latest_inbound is not None else None,
            )
        return ConversationRead.model_validate(conversation)

    async def mark_message_read(self, tenant_id: int, message_id: str) -> MessageRead:
        message = await self.store.mark_message_read(tenant_id, message_id)
        await self._changed(tenant_id, message.conversation_id, message_id=message_id)

        if (
            message.source == ConversationSource.PROVIDER
            and message.direction == MessageDirection.INBOUND
        ):
            await self.outbound.send_read_receipt(
                tenant_id, message.from_address, message.external_id
            )
        return MessageRead.model_validate(message)
