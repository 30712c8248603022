"""
Shared enums for conversations, messages and providers.

Values are persisted as plain strings, so renaming a member value is a data migration.
"""

from enum import Enum


class ProviderName(str, Enum):
    """Third-party messaging backends supported by the provider factory."""

    GREENAPI = "greenapi"
    TWILIO = "twilio"


class ConversationSource(str, Enum):
    """Where a conversation's messages come from."""

    PROVIDER = "provider"
    WIDGET = "widget"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class ConversationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MessageType(str, Enum):
    """Normalized message types across providers."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    SYSTEM = "system"  # Widget closing notices


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    """Delivery status, ordered roughly by lifecycle."""

    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    RECEIVED = "received"


class SenderRole(str, Enum):
    """Who sent the last message of a conversation."""

    CUSTOMER = "customer"
    AGENT = "agent"
    SYSTEM = "system"


# Business address used for every widget conversation
WIDGET_BUSINESS_ADDRESS = "widget"
WIDGET_PROVIDER = "widget"
