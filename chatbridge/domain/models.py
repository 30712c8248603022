"""
Canonical message and conversation shapes.

Provider decoders produce the ``Normalized*`` models, services return the ``*Read`` models, and
``ProviderConfig`` is what the external configuration store hands to this core.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from chatbridge.domain.enums import (
    ConversationPriority,
    ConversationSource,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from chatbridge.domain.errors import ConfigurationError


def utc_now() -> datetime:
    return datetime.now(UTC)


class ProviderConfig(BaseModel):
    """Decrypted per-tenant provider configuration supplied by the config store."""

    tenant_id: int
    provider: str
    is_active: bool = True
    business_address: str | None = None
    credentials: dict[str, str] = Field(default_factory=dict)

    # Webhook authentication
    webhook_token: str | None = None
    webhook_secret: str | None = None
    header_name: str | None = None
    header_value_template: str | None = None

    # Outbound throttling
    rate_limit_enabled: bool = True
    rate_limit_window_minutes: float = 1.0
    rate_limit_max_messages: int = 60

    # Country code prepended to bare 10-digit numbers; None disables it
    default_country_code: str | None = None

    last_webhook_event_at: datetime | None = None

    @property
    def effective_header_name(self) -> str:
        return self.header_name or "Authorization"

    @property
    def effective_header_template(self) -> str:
        return self.header_value_template or "Bearer {secret}"

    def credential(self, key: str) -> str:
        """Return a credential value or raise if missing."""
        value = self.credentials.get(key)
        if not value:
            raise ConfigurationError(
                f"Missing credential '{key}' for provider '{self.provider}'"
            )
        return value


class ProviderConfigView(BaseModel):
    """Redacted config returned by ``get_config``; never includes secrets."""

    tenant_id: int
    provider: str
    is_active: bool
    business_address: str | None = None
    credential_keys: list[str] = Field(default_factory=list)
    webhook_configured: bool = False
    header_auth_configured: bool = False
    rate_limit_enabled: bool = True
    rate_limit_window_minutes: float = 1.0
    rate_limit_max_messages: int = 60
    last_webhook_event_at: datetime | None = None

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ProviderConfigView":
        return cls(
            tenant_id=config.tenant_id,
            provider=config.provider,
            is_active=config.is_active,
            business_address=config.business_address,
            credential_keys=sorted(config.credentials),
            webhook_configured=bool(config.webhook_token),
            header_auth_configured=bool(config.webhook_secret),
            rate_limit_enabled=config.rate_limit_enabled,
            rate_limit_window_minutes=config.rate_limit_window_minutes,
            rate_limit_max_messages=config.rate_limit_max_messages,
            last_webhook_event_at=config.last_webhook_event_at,
        )


# ================================================================
# Provider boundary models
# ================================================================


class OutboundMessage(BaseModel):
    """A message ready for dispatch; ``to`` is already normalized (+digits)."""

    to: str
    body: str = ""
    media_url: str | None = None
    media_content_type: str | None = None


class ProviderSendResult(BaseModel):
    external_id: str
    status: MessageStatus = MessageStatus.SENT
    timestamp: datetime = Field(default_factory=utc_now)


class NormalizedMessage(BaseModel):
    """Provider message after decoding, independent of the provider's JSON shape."""

    external_id: str
    direction: MessageDirection
    from_address: str
    to_address: str
    body: str = ""
    message_type: MessageType = MessageType.TEXT
    media_url: str | None = None
    media_content_type: str | None = None
    status: MessageStatus = MessageStatus.RECEIVED
    timestamp: datetime = Field(default_factory=utc_now)
    sender_name: str | None = None

    @property
    def customer_address(self) -> str:
        if self.direction == MessageDirection.INBOUND:
            return self.from_address
        return self.to_address

    @property
    def business_address(self) -> str:
        if self.direction == MessageDirection.INBOUND:
            return self.to_address
        return self.from_address


class NormalizedConversation(BaseModel):
    customer_address: str
    customer_name: str | None = None
    avatar_url: str | None = None
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    unread_count: int = 0


class StatusUpdate(BaseModel):
    external_id: str
    status: MessageStatus
    timestamp: datetime = Field(default_factory=utc_now)


class InboundEvent(BaseModel):
    """Result of decoding one webhook payload."""

    event_id: str | None = None
    event_type: str | None = None
    message: NormalizedMessage | None = None
    status_update: StatusUpdate | None = None


class CustomerProfile(BaseModel):
    name: str | None = None
    avatar_url: str | None = None


class ConnectionTestResult(BaseModel):
    success: bool
    provider: str
    state: str | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    tested_at: datetime = Field(default_factory=utc_now)


# ================================================================
# Read models
# ================================================================


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: int
    conversation_id: str
    provider: str
    external_id: str
    client_message_id: str | None = None
    from_address: str
    to_address: str
    body: str
    message_type: MessageType
    media_url: str | None = None
    media_content_type: str | None = None
    direction: MessageDirection
    status: MessageStatus
    source: ConversationSource
    session_id: str | None = None
    agent_name: str | None = None
    timestamp: datetime
    read_at: datetime | None = None


class ConversationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: int
    customer_address: str
    business_address: str
    source: ConversationSource
    provider: str | None = None
    session_id: str | None = None
    status: ConversationStatus
    priority: ConversationPriority
    unread_count: int = 0
    message_count: int = 0
    last_message_preview: str | None = None
    last_message_at: datetime | None = None
    last_message_sender: str | None = None
    last_event_at: datetime | None = None
    assigned_agent_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    customer_avatar_url: str | None = None
    started_at: datetime
    closed_at: datetime | None = None
    archived_at: datetime | None = None


class ConversationFilter(BaseModel):
    status: ConversationStatus | None = None
    source: ConversationSource | None = None
    customer_address: str | None = None
    customer_name: str | None = None
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)

    def signature(self) -> str:
        """Stable cache key for this filter/page combination."""
        return "|".join(
            [
                self.status.value if self.status else "",
                self.source.value if self.source else "",
                self.customer_address or "",
                self.customer_name or "",
                str(self.page),
                str(self.page_size),
            ]
        )


class ConversationPage(BaseModel):
    items: list[ConversationRead]
    total: int
    page: int
    page_size: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


class ConversationUpdate(BaseModel):
    """Agent-editable conversation fields; unset fields are left alone."""

    assigned_agent_id: str | None = None
    priority: ConversationPriority | None = None
    status: ConversationStatus | None = None
    tags: list[str] | None = None
    notes: str | None = Field(None, max_length=2000)
    customer_name: str | None = Field(None, max_length=100)


class BulkSendFailure(BaseModel):
    to: str
    error_code: str
    error: str


class BulkSendResult(BaseModel):
    sent: list[MessageRead] = Field(default_factory=list)
    failed: list[BulkSendFailure] = Field(default_factory=list)
