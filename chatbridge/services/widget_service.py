"""
Website chat widget bridge.

The widget behaves like one more provider: conversations are keyed by the browser session id,
use the ``widget`` business address, and messages are stored with provider ``widget``. Widgets
resend on flaky connections, so both directions are idempotent on the client message id, and
without one an identical body inside the dedup window is treated as a resend.
"""

import hashlib
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel

from chatbridge.core.logging.logger import get_logger
from chatbridge.database.models import Conversation, Message, utc_now
from chatbridge.domain.enums import (
    WIDGET_BUSINESS_ADDRESS,
    WIDGET_PROVIDER,
    ConversationSource,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from chatbridge.domain.errors import NotFoundError, ValidationError
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.domain.models import ConversationRead, MessageRead
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import ConversationStore

logger = get_logger(__name__)


class WidgetMessageResult(BaseModel):
    message: MessageRead
    conversation_id: str
    session_id: str | None = None
    duplicate: bool = False


class WidgetPollResult(BaseModel):
    conversation_id: str | None = None
    messages: list[MessageRead]
    server_time: datetime


def widget_customer_address(session_id: str, customer_email: str | None = None) -> str:
    """Stable pseudo-address for a widget visitor, derived from e-mail or session."""
    seed = (customer_email or "").strip().lower() or f"session:{session_id}"
    return "w-" + hashlib.sha1(seed.encode("utf-8")).hexdigest()[:20]


def widget_external_id(
    conversation_id: str, direction: MessageDirection, client_message_id: str | None
) -> str:
    if client_message_id:
        return f"widget:{conversation_id}:{direction.value}:{client_message_id}"
    return f"widget:{uuid4().hex}"


class WidgetService:
    def __init__(
        self,
        store: ConversationStore,
        cache: ConversationCacheService,
        publisher: INotificationPublisher,
        dedup_window_seconds: int = 120,
    ):
        self.store = store
        self.cache = cache
        self.publisher = publisher
        self.dedup_window_seconds = dedup_window_seconds

    async def _resolve_conversation(
        self,
        tenant_id: int,
        session_id: str,
        customer_name: str | None,
        customer_email: str | None,
    ) -> Conversation:
        conversation = await self.store.find_widget_conversation(
            tenant_id, session_id, customer_email
        )
        if conversation is None:
            return await self.store.create_widget_conversation(
                tenant_id,
                session_id,
                widget_customer_address(session_id, customer_email),
                customer_name=customer_name,
                customer_email=customer_email,
            )
        if conversation.session_id != session_id or (
            customer_name and not conversation.customer_name
        ):
            conversation = await self.store.bind_session(
                conversation.id, session_id, customer_name, customer_email
            )
        return conversation

    async def _find_duplicate(
        self,
        conversation_id: str,
        direction: MessageDirection,
        body: str,
        client_message_id: str | None,
    ) -> Message | None:
        if client_message_id:
            return await self.store.find_by_client_id(
                conversation_id, direction, client_message_id
            )
        return await self.store.find_recent_duplicate(
            conversation_id, direction, body, self.dedup_window_seconds
        )

    async def _append(
        self,
        conversation: Conversation,
        direction: MessageDirection,
        body: str,
        client_message_id: str | None,
        agent_name: str | None = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> tuple[Message, bool]:
        inbound = direction == MessageDirection.INBOUND
        message, created = await self.store.append_message(
            Message(
                tenant_id=conversation.tenant_id,
                conversation_id=conversation.id,
                provider=WIDGET_PROVIDER,
                external_id=widget_external_id(conversation.id, direction, client_message_id),
                client_message_id=client_message_id,
                from_address=conversation.customer_address
                if inbound
                else WIDGET_BUSINESS_ADDRESS,
                to_address=WIDGET_BUSINESS_ADDRESS
                if inbound
                else conversation.customer_address,
                body=body,
                message_type=message_type,
                direction=direction,
                status=MessageStatus.RECEIVED if inbound else MessageStatus.SENT,
                source=ConversationSource.WIDGET,
                session_id=conversation.session_id,
                agent_name=agent_name,
            )
        )
        if created:
            await self.cache.invalidate_conversation(conversation.tenant_id, conversation.id)
            await self.publisher.publish(
                "incoming_message" if inbound else "outgoing_message",
                conversation.tenant_id,
                {
                    "conversation_id": conversation.id,
                    "message_id": message.id,
                    "session_id": conversation.session_id,
                    "source": ConversationSource.WIDGET.value,
                },
            )
        return message, created

    async def receive(
        self,
        tenant_id: int,
        session_id: str,
        body: str,
        client_message_id: str | None = None,
        customer_name: str | None = None,
        customer_email: str | None = None,
    ) -> WidgetMessageResult:
        """Customer to business message from the widget."""
        if not body.strip():
            raise ValidationError("Message cannot be empty")

        conversation = await self._resolve_conversation(
            tenant_id, session_id, customer_name, customer_email
        )
        duplicate = await self._find_duplicate(
            conversation.id, MessageDirection.INBOUND, body, client_message_id
        )
        if duplicate is not None:
            logger.info(f"Widget resend suppressed for session {session_id}")
            return WidgetMessageResult(
                message=MessageRead.model_validate(duplicate),
                conversation_id=conversation.id,
                session_id=conversation.session_id,
                duplicate=True,
            )

        message, created = await self._append(
            conversation, MessageDirection.INBOUND, body, client_message_id
        )
        return WidgetMessageResult(
            message=MessageRead.model_validate(message),
            conversation_id=conversation.id,
            session_id=conversation.session_id,
            duplicate=not created,
        )

    async def _widget_conversation(self, tenant_id: int, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(tenant_id, conversation_id)
        if conversation.source != ConversationSource.WIDGET:
            raise ValidationError(f"Conversation {conversation_id} is not a widget conversation")
        return conversation

    async def respond(
        self,
        tenant_id: int,
        conversation_id: str,
        body: str,
        client_message_id: str | None = None,
        session_id: str | None = None,
        agent_name: str | None = None,
    ) -> WidgetMessageResult:
        """Business to customer reply, picked up by the widget's poll."""
        if not body.strip():
            raise ValidationError("Message cannot be empty")

        conversation = await self._widget_conversation(tenant_id, conversation_id)
        if session_id and session_id != conversation.session_id:
            conversation = await self.store.bind_session(conversation.id, session_id)

        duplicate = await self._find_duplicate(
            conversation.id, MessageDirection.OUTBOUND, body, client_message_id
        )
        if duplicate is not None:
            return WidgetMessageResult(
                message=MessageRead.model_validate(duplicate),
                conversation_id=conversation.id,
                session_id=conversation.session_id,
                duplicate=True,
            )

        message, created = await self._append(
            conversation,
            MessageDirection.OUTBOUND,
            body,
            client_message_id,
            agent_name=agent_name,
        )
        return WidgetMessageResult(
            message=MessageRead.model_validate(message),
            conversation_id=conversation.id,
            session_id=conversation.session_id,
            duplicate=not created,
        )

    async def poll(
        self,
        tenant_id: int,
        session_id: str,
        since: datetime | None = None,
        conversation_id: str | None = None,
    ) -> WidgetPollResult:
        """Outbound messages for the widget after ``since``, oldest first."""
        conversation = None
        if conversation_id:
            try:
                conversation = await self._widget_conversation(tenant_id, conversation_id)
            except (NotFoundError, ValidationError):
                logger.debug(f"Poll ignored unknown conversation {conversation_id}")
        if conversation is None:
            conversation = await self.store.find_widget_conversation(tenant_id, session_id)

        if conversation is None:
            return WidgetPollResult(messages=[], server_time=utc_now())

        rows = await self.store.list_outbound_since(conversation.id, since)
        return WidgetPollResult(
            conversation_id=conversation.id,
            messages=[MessageRead.model_validate(row) for row in rows],
            server_time=utc_now(),
        )

    async def close(
        self,
        tenant_id: int,
        conversation_id: str,
        status: ConversationStatus = ConversationStatus.CLOSED,
        closing_message: str | None = None,
    ) -> ConversationRead:
        if status not in (ConversationStatus.CLOSED, ConversationStatus.ARCHIVED):
            raise ValidationError("Widget conversations can only be closed or archived")

        conversation = await self._widget_conversation(tenant_id, conversation_id)
        if closing_message and closing_message.strip():
            await self._append(
                conversation,
                MessageDirection.OUTBOUND,
                closing_message.strip(),
                client_message_id=None,
                message_type=MessageType.SYSTEM,
            )

        conversation = await self.store.set_status(tenant_id, conversation_id, status)
        await self.cache.invalidate_conversation(tenant_id, conversation_id)
        await self.publisher.publish(
            "conversation_updated",
            tenant_id,
            {"conversation_id": conversation_id, "status": status.value},
        )
        return ConversationRead.model_validate(conversation)
