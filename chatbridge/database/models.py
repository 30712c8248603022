"""
Database models for the messaging mirror.

SQLModel tables for conversations, messages, the webhook event ledger, the per-tenant blacklist
and provider configuration. Column types stay portable between SQLite (aiosqlite) and
PostgreSQL (asyncpg): string UUID keys, generic JSON, non-native enums, and a UTC-normalizing
datetime type.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from chatbridge.domain.enums import (
    ConversationPriority,
    ConversationSource,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)

# =============================================================================
# SQL Utilities
# =============================================================================


def enum_values(enum_cls: type[Enum]) -> list:
    """
    Extract enum values for SQLAlchemy enum configuration.

    Top-level function (not lambda) so it can be pickled.
    """
    return [member.value for member in enum_cls]


def get_enum_column(enum_cls: type[Enum], column_name: str, nullable: bool = False):
    """
    Create a Column for enum fields stored as their string values.

    Non-native enums keep the schema identical on SQLite and PostgreSQL.
    """
    return Column(
        SAEnum(
            enum_cls,
            name=column_name,
            values_callable=enum_values,
            native_enum=False,
            create_constraint=False,
            length=20,
        ),
        nullable=nullable,
    )


class UTCDateTime(TypeDecorator):
    """Stores datetimes in UTC and always returns timezone-aware values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        # SQLite has no timezone support; store naive UTC there
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def new_id() -> str:
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


def _ts(nullable: bool = True) -> Column:
    return Column(UTCDateTime(), nullable=nullable)


# =============================================================================
# Provider configuration (owned by the tenant-configuration collaborator)
# =============================================================================


class ProviderConfigRecord(SQLModel, table=True):
    """Decrypted provider configuration row for one tenant/provider pair."""

    __tablename__ = "provider_configs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", name="uq_provider_configs_tenant_provider"),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(sa_column=Column(Integer, nullable=False, index=True))
    provider: str = Field(sa_column=Column(String(50), nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False))
    business_address: str | None = Field(default=None, sa_column=Column(String(32)))
    credentials: dict = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )

    webhook_token: str | None = Field(default=None, sa_column=Column(String(200)))
    webhook_secret: str | None = Field(default=None, sa_column=Column(String(500)))
    header_name: str | None = Field(default=None, sa_column=Column(String(100)))
    header_value_template: str | None = Field(
        default=None, sa_column=Column(String(500))
    )

    rate_limit_enabled: bool = Field(default=True, sa_column=Column(Boolean, nullable=False))
    rate_limit_window_minutes: float = Field(
        default=1.0, sa_column=Column(Float, nullable=False)
    )
    rate_limit_max_messages: int = Field(
        default=60, sa_column=Column(Integer, nullable=False)
    )
    default_country_code: str | None = Field(default=None, sa_column=Column(String(5)))

    last_webhook_event_at: datetime | None = Field(default=None, sa_column=_ts())
    created_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))


# =============================================================================
# Conversation Model
# =============================================================================


class Conversation(SQLModel, table=True):
    """
    A thread between one customer and one business address, or one widget session.

    Counter and last-message fields are a snapshot derived from the messages table and are
    recomputed by the store after every message write.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "customer_address",
            "business_address",
            name="uq_conversations_tenant_customer_business",
        ),
        UniqueConstraint("tenant_id", "session_id", name="uq_conversations_tenant_session"),
        Index("ix_conversations_tenant_last_message", "tenant_id", "last_message_at"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    tenant_id: int = Field(sa_column=Column(Integer, nullable=False, index=True))
    customer_address: str = Field(sa_column=Column(String(64), nullable=False))
    business_address: str = Field(sa_column=Column(String(64), nullable=False))
    source: ConversationSource = Field(
        default=ConversationSource.PROVIDER,
        sa_column=get_enum_column(ConversationSource, "conversation_source_t"),
    )
    provider: str | None = Field(default=None, sa_column=Column(String(50)))
    session_id: str | None = Field(default=None, sa_column=Column(String(100)))

    status: ConversationStatus = Field(
        default=ConversationStatus.ACTIVE,
        sa_column=get_enum_column(ConversationStatus, "conversation_status_t"),
    )
    priority: ConversationPriority = Field(
        default=ConversationPriority.NORMAL,
        sa_column=get_enum_column(ConversationPriority, "conversation_priority_t"),
    )

    # Snapshot fields
    unread_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    message_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    last_message_preview: str | None = Field(default=None, sa_column=Column(String(120)))
    last_message_at: datetime | None = Field(default=None, sa_column=_ts())
    last_message_sender: str | None = Field(default=None, sa_column=Column(String(20)))
    last_event_at: datetime | None = Field(default=None, sa_column=_ts())

    # Agent-managed fields
    assigned_agent_id: str | None = Field(default=None, sa_column=Column(String(100)))
    tags: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text))

    # Customer profile
    customer_name: str | None = Field(default=None, sa_column=Column(String(100)))
    customer_email: str | None = Field(default=None, sa_column=Column(String(255)))
    customer_avatar_url: str | None = Field(default=None, sa_column=Column(String(500)))

    started_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
    closed_at: datetime | None = Field(default=None, sa_column=_ts())
    archived_at: datetime | None = Field(default=None, sa_column=_ts())
    created_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))


# =============================================================================
# Message Model
# =============================================================================


class Message(SQLModel, table=True):
    """One message in either direction. ``external_id`` is the idempotency key."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "provider", "external_id", name="uq_messages_tenant_provider_external"
        ),
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_messages_tenant_session", "tenant_id", "session_id"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    tenant_id: int = Field(sa_column=Column(Integer, nullable=False))
    conversation_id: str = Field(
        sa_column=Column(
            String(32), ForeignKey("conversations.id"), nullable=False, index=True
        )
    )
    provider: str = Field(sa_column=Column(String(50), nullable=False))
    external_id: str = Field(sa_column=Column(String(200), nullable=False))
    client_message_id: str | None = Field(default=None, sa_column=Column(String(100)))

    from_address: str = Field(sa_column=Column(String(255), nullable=False))
    to_address: str = Field(sa_column=Column(String(255), nullable=False))
    body: str = Field(default="", sa_column=Column(Text, nullable=False))
    message_type: MessageType = Field(
        default=MessageType.TEXT, sa_column=get_enum_column(MessageType, "message_type_t")
    )
    media_url: str | None = Field(default=None, sa_column=Column(String(1000)))
    media_content_type: str | None = Field(default=None, sa_column=Column(String(100)))

    direction: MessageDirection = Field(
        sa_column=get_enum_column(MessageDirection, "message_direction_t")
    )
    status: MessageStatus = Field(
        default=MessageStatus.SENT,
        sa_column=get_enum_column(MessageStatus, "message_status_t"),
    )
    source: ConversationSource = Field(
        default=ConversationSource.PROVIDER,
        sa_column=get_enum_column(ConversationSource, "message_source_t"),
    )
    session_id: str | None = Field(default=None, sa_column=Column(String(100)))
    agent_name: str | None = Field(default=None, sa_column=Column(String(100)))

    timestamp: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
    read_at: datetime | None = Field(default=None, sa_column=_ts())
    created_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
    updated_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))


# =============================================================================
# Webhook ledger & blacklist
# =============================================================================


class WebhookEvent(SQLModel, table=True):
    """Durable dedup ledger for inbound provider notifications."""

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("tenant_id", "event_id", name="uq_webhook_events_tenant_event"),
        Index("ix_webhook_events_tenant_provider", "tenant_id", "provider"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(32), primary_key=True))
    tenant_id: int = Field(sa_column=Column(Integer, nullable=False))
    provider: str = Field(sa_column=Column(String(50), nullable=False))
    event_id: str | None = Field(default=None, sa_column=Column(String(200)))
    event_type: str | None = Field(default=None, sa_column=Column(String(100)))
    payload: dict | None = Field(default=None, sa_column=Column(JSON))
    received_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))


class BlacklistEntry(SQLModel, table=True):
    __tablename__ = "blacklist_entries"
    __table_args__ = (
        UniqueConstraint("tenant_id", "address", name="uq_blacklist_tenant_address"),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(sa_column=Column(Integer, nullable=False, index=True))
    address: str = Field(sa_column=Column(String(32), nullable=False))
    reason: str | None = Field(default=None, sa_column=Column(String(255)))
    created_at: datetime = Field(default_factory=utc_now, sa_column=_ts(False))
