"""
Durable mirror of conversations and messages.

The database is the system of record. Uniqueness constraints arbitrate every race: conversation
creation and message insertion both attempt the insert and, on a constraint violation, re-read
the row the winning writer created.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from chatbridge.core.logging.logger import get_logger
from chatbridge.database.adapter import SessionFactory
from chatbridge.database.models import (
    BlacklistEntry,
    Conversation,
    Message,
    WebhookEvent,
    utc_now,
)
from chatbridge.domain.enums import (
    WIDGET_BUSINESS_ADDRESS,
    ConversationSource,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
    SenderRole,
)
from chatbridge.domain.errors import NotFoundError
from chatbridge.domain.models import (
    ConversationFilter,
    ConversationPage,
    ConversationRead,
    ConversationUpdate,
    CustomerProfile,
    NormalizedMessage,
)
from chatbridge.utils.media import build_preview

logger = get_logger(__name__)

# Delivery progression; a late "sent" callback never overwrites "read"
_STATUS_RANK = {
    MessageStatus.QUEUED: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
    MessageStatus.RECEIVED: 3,
    MessageStatus.FAILED: 4,
}


def sender_role(message: Message) -> SenderRole:
    if message.message_type == MessageType.SYSTEM:
        return SenderRole.SYSTEM
    if message.direction == MessageDirection.INBOUND:
        return SenderRole.CUSTOMER
    return SenderRole.AGENT


async def recompute_snapshot(session: AsyncSession, conversation_id: str) -> Conversation:
    """
    Recompute a conversation's derived fields from its messages.

    Message count, unread count (inbound without ``read_at``), and the last message's preview,
    timestamp and sender. This is the only place these fields are written.
    """
    conversation = await session.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")

    message_count = (
        await session.exec(
            select(func.count())
            .select_from(Message)
            .where(Message.conversation_id == conversation_id)
        )
    ).one()
    unread_count = (
        await session.exec(
            select(func.count())
            .select_from(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.direction == MessageDirection.INBOUND,
                Message.read_at.is_(None),
            )
        )
    ).one()
    last = (
        await session.exec(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc(), Message.created_at.desc())
            .limit(1)
        )
    ).first()

    conversation.message_count = message_count
    conversation.unread_count = unread_count
    if last is not None:
        conversation.last_message_preview = build_preview(last.body, last.message_type)
        conversation.last_message_at = last.timestamp
        conversation.last_message_sender = sender_role(last).value
    else:
        conversation.last_message_preview = None
        conversation.last_message_at = None
        conversation.last_message_sender = None
    conversation.updated_at = utc_now()
    session.add(conversation)
    return conversation


class ConversationStore:
    """Conversation resolver plus message, webhook-ledger and blacklist persistence."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    # ================================================================
    # Conversation resolution
    # ================================================================

    async def _find_by_pair(
        self, session: AsyncSession, tenant_id: int, customer: str, business: str
    ) -> Conversation | None:
        return (
            await session.exec(
                select(Conversation).where(
                    Conversation.tenant_id == tenant_id,
                    Conversation.customer_address == customer,
                    Conversation.business_address == business,
                )
            )
        ).first()

    async def get_or_create(
        self,
        tenant_id: int,
        customer_address: str,
        business_address: str,
        provider: str | None = None,
        customer_name: str | None = None,
    ) -> Conversation:
        """
        Return the conversation for a normalized (customer, business) pair, creating it if needed.

        Safe under concurrent calls: the losing insert hits the unique constraint and re-reads
        the winner's row.
        """
        async with self._session_factory() as session:
            existing = await self._find_by_pair(
                session, tenant_id, customer_address, business_address
            )
            if existing is not None:
                if customer_name and not existing.customer_name:
                    existing.customer_name = customer_name
                    session.add(existing)
                return existing

        try:
            async with self._session_factory() as session:
                conversation = Conversation(
                    tenant_id=tenant_id,
                    customer_address=customer_address,
                    business_address=business_address,
                    source=ConversationSource.PROVIDER,
                    provider=provider,
                    customer_name=customer_name,
                )
                session.add(conversation)
                await session.flush()
                logger.info(
                    f"Created conversation {conversation.id} for {customer_address}"
                )
                return conversation
        except IntegrityError:
            logger.debug(
                f"Concurrent create for {customer_address}/{business_address}, re-reading"
            )

        async with self._session_factory() as session:
            existing = await self._find_by_pair(
                session, tenant_id, customer_address, business_address
            )
            if existing is None:
                raise RuntimeError(
                    f"Conversation for {customer_address} vanished after a unique conflict"
                )
            return existing

    async def find_widget_conversation(
        self,
        tenant_id: int,
        session_id: str | None = None,
        customer_email: str | None = None,
    ) -> Conversation | None:
        """Look up a widget conversation by session id, then by customer e-mail."""
        async with self._session_factory() as session:
            if session_id:
                found = (
                    await session.exec(
                        select(Conversation).where(
                            Conversation.tenant_id == tenant_id,
                            Conversation.session_id == session_id,
                        )
                    )
                ).first()
                if found is not None:
                    return found
            if customer_email:
                return (
                    await session.exec(
                        select(Conversation)
                        .where(
                            Conversation.tenant_id == tenant_id,
                            Conversation.source == ConversationSource.WIDGET,
                            func.lower(Conversation.customer_email)
                            == customer_email.lower(),
                        )
                        .order_by(Conversation.updated_at.desc())
                    )
                ).first()
            return None

    async def create_widget_conversation(
        self,
        tenant_id: int,
        session_id: str,
        customer_address: str,
        customer_name: str | None = None,
        customer_email: str | None = None,
    ) -> Conversation:
        try:
            async with self._session_factory() as session:
                conversation = Conversation(
                    tenant_id=tenant_id,
                    customer_address=customer_address,
                    business_address=WIDGET_BUSINESS_ADDRESS,
                    source=ConversationSource.WIDGET,
                    session_id=session_id,
                    customer_name=customer_name,
                    customer_email=customer_email,
                )
                session.add(conversation)
                await session.flush()
                logger.info(f"Created widget conversation {conversation.id} ({session_id})")
                return conversation
        except IntegrityError:
            logger.debug(f"Concurrent widget create for session {session_id}, re-reading")

        existing = await self.find_widget_conversation(tenant_id, session_id, customer_email)
        if existing is None:
            raise RuntimeError(f"Widget conversation for {session_id} vanished after a conflict")
        return existing

    async def bind_session(
        self,
        conversation_id: str,
        session_id: str | None = None,
        customer_name: str | None = None,
        customer_email: str | None = None,
    ) -> Conversation:
        """Point a widget conversation at a (new) session and fill in missing customer fields."""
        async with self._session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if session_id and conversation.session_id != session_id:
                taken = (
                    await session.exec(
                        select(Conversation.id).where(
                            Conversation.tenant_id == conversation.tenant_id,
                            Conversation.session_id == session_id,
                        )
                    )
                ).first()
                if taken is None:
                    conversation.session_id = session_id
            if customer_name and not conversation.customer_name:
                conversation.customer_name = customer_name
            if customer_email and not conversation.customer_email:
                conversation.customer_email = customer_email
            conversation.updated_at = utc_now()
            session.add(conversation)
            return conversation

    # ================================================================
    # Messages
    # ================================================================

    async def _find_message(
        self, session: AsyncSession, tenant_id: int, provider: str, external_id: str
    ) -> Message | None:
        return (
            await session.exec(
                select(Message).where(
                    Message.tenant_id == tenant_id,
                    Message.provider == provider,
                    Message.external_id == external_id,
                )
            )
        ).first()

    async def append_message(
        self, message: Message, reopen: bool = True
    ) -> tuple[Message, bool]:
        """
        Insert a message unless one with the same (tenant, provider, external id) exists.

        On insert the conversation snapshot is recomputed in the same transaction, and an
        inbound message reopens a closed or archived conversation unless ``reopen`` is False.

        Returns:
            (message, created): the stored row and whether this call inserted it
        """
        try:
            async with self._session_factory() as session:
                existing = await self._find_message(
                    session, message.tenant_id, message.provider, message.external_id
                )
                if existing is not None:
                    return existing, False

                session.add(message)
                await session.flush()

                conversation = await session.get(Conversation, message.conversation_id)
                if (
                    reopen
                    and conversation is not None
                    and message.direction == MessageDirection.INBOUND
                    and conversation.status != ConversationStatus.ACTIVE
                ):
                    logger.info(f"Reopening conversation {conversation.id} on inbound message")
                    conversation.status = ConversationStatus.ACTIVE
                    conversation.closed_at = None
                    conversation.archived_at = None
                await recompute_snapshot(session, message.conversation_id)
                return message, True
        except IntegrityError:
            logger.debug(f"Message {message.external_id} inserted concurrently, re-reading")

        async with self._session_factory() as session:
            existing = await self._find_message(
                session, message.tenant_id, message.provider, message.external_id
            )
            if existing is None:
                raise RuntimeError(
                    f"Message {message.external_id} vanished after a unique conflict"
                )
            return existing, False

    async def import_messages(
        self,
        conversation: Conversation,
        provider: str,
        messages: Iterable[NormalizedMessage],
    ) -> int:
        """
        Mirror provider history into a conversation, skipping known external ids.

        Inbound messages no newer than the conversation's last known message are backfill:
        they are stored as read and never reopen the conversation.

        Returns:
            Number of messages inserted
        """
        cutoff = conversation.last_message_at
        inserted = 0
        for normalized in messages:
            message = message_from_normalized(conversation, provider, normalized)
            backfill = cutoff is not None and message.timestamp <= cutoff
            if backfill and message.direction == MessageDirection.INBOUND:
                message.read_at = message.timestamp
            _, created = await self.append_message(message, reopen=not backfill)
            inserted += int(created)
        if inserted:
            logger.info(f"Imported {inserted} message(s) into conversation {conversation.id}")
        return inserted

    async def update_message_status(
        self,
        tenant_id: int,
        provider: str,
        external_id: str,
        status: MessageStatus,
        at: datetime | None = None,
    ) -> Message | None:
        """Apply a delivery status; returns None when the message is unknown."""
        async with self._session_factory() as session:
            message = await self._find_message(session, tenant_id, provider, external_id)
            if message is None:
                return None
            if _STATUS_RANK.get(status, 0) < _STATUS_RANK.get(message.status, 0):
                logger.debug(
                    f"Ignoring {status.value} for {external_id}, already {message.status.value}"
                )
                return message
            message.status = status
            if status == MessageStatus.READ and message.read_at is None:
                message.read_at = at or utc_now()
            message.updated_at = utc_now()
            session.add(message)
            return message

    async def get_message(self, tenant_id: int, message_id: str) -> Message:
        async with self._session_factory() as session:
            message = await session.get(Message, message_id)
            if message is None or message.tenant_id != tenant_id:
                raise NotFoundError(f"Message {message_id} not found")
            return message

    async def mark_message_read(self, tenant_id: int, message_id: str) -> Message:
        async with self._session_factory() as session:
            message = await session.get(Message, message_id)
            if message is None or message.tenant_id != tenant_id:
                raise NotFoundError(f"Message {message_id} not found")
            if message.read_at is None:
                message.read_at = utc_now()
                message.updated_at = message.read_at
                session.add(message)
                await session.flush()
                await recompute_snapshot(session, message.conversation_id)
            return message

    async def mark_conversation_read(
        self, tenant_id: int, conversation_id: str
    ) -> tuple[Conversation, Message | None]:
        """
        Mark every unread inbound message of a conversation as read.

        Returns:
            The refreshed conversation and the latest inbound message (for provider receipts)
        """
        async with self._session_factory() as session:
            conversation = await self._get_conversation(session, tenant_id, conversation_id)
            unread = (
                await session.exec(
                    select(Message).where(
                        Message.conversation_id == conversation_id,
                        Message.direction == MessageDirection.INBOUND,
                        Message.read_at.is_(None),
                    )
                )
            ).all()
            now = utc_now()
            for message in unread:
                message.read_at = now
                message.updated_at = now
                session.add(message)
            await session.flush()

            latest_inbound = (
                await session.exec(
                    select(Message)
                    .where(
                        Message.conversation_id == conversation_id,
                        Message.direction == MessageDirection.INBOUND,
                    )
                    .order_by(Message.timestamp.desc())
                    .limit(1)
                )
            ).first()
            conversation = await recompute_snapshot(session, conversation.id)
            return conversation, latest_inbound

    async def list_messages(
        self,
        tenant_id: int,
        conversation_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> list[Message]:
        """Page ``page`` counted from the newest message, returned oldest first."""
        async with self._session_factory() as session:
            await self._get_conversation(session, tenant_id, conversation_id)
            rows = (
                await session.exec(
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.timestamp.desc(), Message.created_at.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).all()
        return sorted(rows, key=lambda m: (m.timestamp, m.created_at))

    # ================================================================
    # Widget lookups
    # ================================================================

    async def find_by_client_id(
        self,
        conversation_id: str,
        direction: MessageDirection,
        client_message_id: str,
    ) -> Message | None:
        async with self._session_factory() as session:
            return (
                await session.exec(
                    select(Message).where(
                        Message.conversation_id == conversation_id,
                        Message.direction == direction,
                        Message.source == ConversationSource.WIDGET,
                        Message.client_message_id == client_message_id,
                    )
                )
            ).first()

    async def find_recent_duplicate(
        self,
        conversation_id: str,
        direction: MessageDirection,
        body: str,
        window_seconds: int,
    ) -> Message | None:
        """Same body, same conversation and direction, within the last ``window_seconds``."""
        since = utc_now() - timedelta(seconds=window_seconds)
        async with self._session_factory() as session:
            return (
                await session.exec(
                    select(Message)
                    .where(
                        Message.conversation_id == conversation_id,
                        Message.direction == direction,
                        Message.body == body,
                        Message.timestamp >= since,
                    )
                    .order_by(Message.timestamp.desc())
                )
            ).first()

    async def list_outbound_since(
        self,
        conversation_id: str,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[Message]:
        async with self._session_factory() as session:
            query = select(Message).where(
                Message.conversation_id == conversation_id,
                Message.direction == MessageDirection.OUTBOUND,
            )
            if since is not None:
                query = query.where(Message.timestamp > since)
            rows = (
                await session.exec(
                    query.order_by(Message.timestamp, Message.created_at).limit(limit)
                )
            ).all()
            return list(rows)

    # ================================================================
    # Conversation management
    # ================================================================

    async def _get_conversation(
        self, session: AsyncSession, tenant_id: int, conversation_id: str
    ) -> Conversation:
        conversation = await session.get(Conversation, conversation_id)
        if conversation is None or conversation.tenant_id != tenant_id:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def get_conversation(self, tenant_id: int, conversation_id: str) -> Conversation:
        async with self._session_factory() as session:
            return await self._get_conversation(session, tenant_id, conversation_id)

    async def list_conversations(
        self, tenant_id: int, filters: ConversationFilter
    ) -> ConversationPage:
        conditions = [Conversation.tenant_id == tenant_id]
        if filters.status is not None:
            conditions.append(Conversation.status == filters.status)
        if filters.source is not None:
            conditions.append(Conversation.source == filters.source)
        if filters.customer_address:
            conditions.append(Conversation.customer_address.contains(filters.customer_address))
        if filters.customer_name:
            conditions.append(
                func.lower(Conversation.customer_name).contains(filters.customer_name.lower())
            )

        async with self._session_factory() as session:
            total = (
                await session.exec(
                    select(func.count()).select_from(Conversation).where(*conditions)
                )
            ).one()
            rows = (
                await session.exec(
                    select(Conversation)
                    .where(*conditions)
                    .order_by(
                        Conversation.last_message_at.desc().nulls_last(),
                        Conversation.created_at.desc(),
                    )
                    .offset((filters.page - 1) * filters.page_size)
                    .limit(filters.page_size)
                )
            ).all()

        return ConversationPage(
            items=[ConversationRead.model_validate(row) for row in rows],
            total=total,
            page=filters.page,
            page_size=filters.page_size,
        )

    async def list_tenant_conversations(
        self, tenant_id: int, source: ConversationSource | None = None
    ) -> list[Conversation]:
        async with self._session_factory() as session:
            query = select(Conversation).where(Conversation.tenant_id == tenant_id)
            if source is not None:
                query = query.where(Conversation.source == source)
            return list((await session.exec(query)).all())

    async def update_conversation(
        self, tenant_id: int, conversation_id: str, update: ConversationUpdate
    ) -> Conversation:
        changes = update.model_dump(exclude_unset=True)
        async with self._session_factory() as session:
            conversation = await self._get_conversation(session, tenant_id, conversation_id)
            status = changes.pop("status", None)
            for field, value in changes.items():
                setattr(conversation, field, value)
            if status is not None:
                _apply_status(conversation, status)
            conversation.updated_at = utc_now()
            session.add(conversation)
            return conversation

    async def set_status(
        self, tenant_id: int, conversation_id: str, status: ConversationStatus
    ) -> Conversation:
        async with self._session_factory() as session:
            conversation = await self._get_conversation(session, tenant_id, conversation_id)
            _apply_status(conversation, status)
            conversation.updated_at = utc_now()
            session.add(conversation)
            return conversation

    async def touch_last_event(self, conversation_id: str, at: datetime) -> None:
        async with self._session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.last_event_at = at
                session.add(conversation)

    async def apply_profile(
        self, conversation_id: str, profile: CustomerProfile, overwrite: bool = True
    ) -> Conversation:
        async with self._session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if profile.name and (overwrite or not conversation.customer_name):
                conversation.customer_name = profile.name[:100]
            if profile.avatar_url and (overwrite or not conversation.customer_avatar_url):
                conversation.customer_avatar_url = profile.avatar_url
            conversation.updated_at = utc_now()
            session.add(conversation)
            return conversation

    async def rebuild_snapshots(self, tenant_id: int) -> int:
        """Recompute the snapshot of every conversation of a tenant."""
        async with self._session_factory() as session:
            ids = (
                await session.exec(
                    select(Conversation.id).where(Conversation.tenant_id == tenant_id)
                )
            ).all()
            for conversation_id in ids:
                await recompute_snapshot(session, conversation_id)
        logger.info(f"Rebuilt {len(ids)} conversation snapshot(s) for tenant {tenant_id}")
        return len(ids)

    # ================================================================
    # Webhook event ledger
    # ================================================================

    async def record_webhook_event(
        self,
        tenant_id: int,
        provider: str,
        event_id: str,
        event_type: str | None = None,
        payload: dict | None = None,
    ) -> bool:
        """
        Insert an event into the dedup ledger.

        Returns:
            True if this is the first delivery, False if the event was already recorded
        """
        try:
            async with self._session_factory() as session:
                duplicate = (
                    await session.exec(
                        select(WebhookEvent.id).where(
                            WebhookEvent.tenant_id == tenant_id,
                            WebhookEvent.event_id == event_id,
                        )
                    )
                ).first()
                if duplicate is not None:
                    return False
                session.add(
                    WebhookEvent(
                        tenant_id=tenant_id,
                        provider=provider,
                        event_id=event_id,
                        event_type=event_type,
                        payload=payload,
                    )
                )
                await session.flush()
                return True
        except IntegrityError:
            return False

    # ================================================================
    # Blacklist
    # ================================================================

    async def is_blacklisted(self, tenant_id: int, address: str) -> bool:
        async with self._session_factory() as session:
            found = (
                await session.exec(
                    select(BlacklistEntry.id).where(
                        BlacklistEntry.tenant_id == tenant_id,
                        BlacklistEntry.address == address,
                    )
                )
            ).first()
            return found is not None

    async def add_to_blacklist(
        self, tenant_id: int, address: str, reason: str | None = None
    ) -> BlacklistEntry:
        try:
            async with self._session_factory() as session:
                existing = (
                    await session.exec(
                        select(BlacklistEntry).where(
                            BlacklistEntry.tenant_id == tenant_id,
                            BlacklistEntry.address == address,
                        )
                    )
                ).first()
                if existing is not None:
                    return existing
                entry = BlacklistEntry(tenant_id=tenant_id, address=address, reason=reason)
                session.add(entry)
                await session.flush()
                logger.info(f"Blacklisted {address} for tenant {tenant_id}")
                return entry
        except IntegrityError:
            async with self._session_factory() as session:
                return (
                    await session.exec(
                        select(BlacklistEntry).where(
                            BlacklistEntry.tenant_id == tenant_id,
                            BlacklistEntry.address == address,
                        )
                    )
                ).one()

    async def remove_from_blacklist(self, tenant_id: int, address: str) -> bool:
        async with self._session_factory() as session:
            entry = (
                await session.exec(
                    select(BlacklistEntry).where(
                        BlacklistEntry.tenant_id == tenant_id,
                        BlacklistEntry.address == address,
                    )
                )
            ).first()
            if entry is None:
                return False
            await session.delete(entry)
            return True

    async def list_blacklist(self, tenant_id: int) -> list[BlacklistEntry]:
        async with self._session_factory() as session:
            rows = await session.exec(
                select(BlacklistEntry)
                .where(BlacklistEntry.tenant_id == tenant_id)
                .order_by(BlacklistEntry.created_at.desc())
            )
            return list(rows.all())


def _apply_status(conversation: Conversation, status: ConversationStatus) -> None:
    now = utc_now()
    conversation.status = status
    if status == ConversationStatus.CLOSED:
        conversation.closed_at = conversation.closed_at or now
    elif status == ConversationStatus.ARCHIVED:
        conversation.archived_at = conversation.archived_at or now
    else:
        conversation.closed_at = None
        conversation.archived_at = None


def message_from_normalized(
    conversation: Conversation, provider: str, normalized: NormalizedMessage
) -> Message:
    return Message(
        tenant_id=conversation.tenant_id,
        conversation_id=conversation.id,
        provider=provider,
        external_id=normalized.external_id,
        from_address=normalized.from_address,
        to_address=normalized.to_address,
        body=normalized.body,
        message_type=normalized.message_type,
        media_url=normalized.media_url,
        media_content_type=normalized.media_content_type,
        direction=normalized.direction,
        status=normalized.status,
        source=ConversationSource.PROVIDER,
        timestamp=normalized.timestamp,
    )

