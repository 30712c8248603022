"""
Provider client interface for multi-backend messaging.

Every messaging backend (GreenAPI, Twilio, ...) implements ``IProviderClient`` so callers never
branch on which provider a tenant uses. Provider-specific extras are exposed through optional
capability protocols such as ``SyncableProvider``; callers probe them with ``isinstance`` against
the protocol, never against a concrete client class.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from chatbridge.domain.models import (
    ConnectionTestResult,
    CustomerProfile,
    InboundEvent,
    NormalizedConversation,
    NormalizedMessage,
    OutboundMessage,
    ProviderConfig,
    ProviderConfigView,
    ProviderSendResult,
)


class IProviderClient(ABC):
    """
    Uniform contract for a third-party messaging backend bound to one tenant.

    Key Design Decisions:
    - Addresses crossing this boundary are normalized (``+<digits>``); each client converts
      to its native identifier via ``to_native_address``
    - Transport failures raise ``ProviderError``; timeouts are applied by the caller
    - ``decode_webhook`` is the only place raw provider JSON is interpreted
    """

    def __init__(self, config: ProviderConfig):
        self._config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Normalized provider name (``ProviderName`` value)."""

    @property
    def tenant_id(self) -> int:
        return self._config.tenant_id

    def get_config(self) -> ProviderConfigView:
        """Return the tenant's configuration with secrets removed."""
        return ProviderConfigView.from_config(self._config)

    @abstractmethod
    def to_native_address(self, address: str) -> str:
        """Translate a normalized address into the provider's identifier format."""

    @abstractmethod
    async def send_message(self, message: OutboundMessage) -> ProviderSendResult:
        """Send one text or media message.

        Args:
            message: Outbound message with a normalized recipient

        Returns:
            ProviderSendResult with the provider-assigned message id

        Raises:
            ProviderError: If the provider rejects the message or is unreachable
        """

    async def send_bulk(
        self, messages: list[OutboundMessage]
    ) -> list[ProviderSendResult | Exception]:
        """Send several messages concurrently.

        Returns one entry per input, in order: the send result or the exception raised for
        that recipient. One failure never cancels the others.
        """
        return await asyncio.gather(
            *(self.send_message(m) for m in messages), return_exceptions=True
        )

    @abstractmethod
    async def list_conversations(self, limit: int = 100) -> list[NormalizedConversation]:
        """List the tenant's most recent chats as seen by the provider."""

    @abstractmethod
    async def list_messages(
        self, customer_address: str, limit: int = 50
    ) -> list[NormalizedMessage]:
        """List recent messages exchanged with one customer."""

    @abstractmethod
    async def mark_read(
        self, customer_address: str, external_id: str | None = None
    ) -> bool:
        """Send a read receipt for one message or a whole chat.

        Returns:
            True if the provider acknowledged the receipt, False if unsupported
        """

    @abstractmethod
    async def test_connection(self, test_address: str | None = None) -> ConnectionTestResult:
        """Check credentials and account state; optionally send a test message."""

    @abstractmethod
    def decode_webhook(self, payload: dict[str, Any]) -> InboundEvent:
        """Normalize a raw webhook payload into an ``InboundEvent``."""


@runtime_checkable
class SyncableProvider(Protocol):
    """
    Optional capability: providers that can be used to rebuild the local mirror.

    Implemented by providers that expose their chat list, contact profiles and full chat
    history. Probe with ``isinstance(client, SyncableProvider)``.
    """

    async def refresh_chats(self, limit: int = 1000) -> list[NormalizedConversation]: ...

    async def enrich_contact(self, customer_address: str) -> CustomerProfile | None: ...

    async def fetch_history(
        self, customer_address: str, limit: int = 100
    ) -> list[NormalizedMessage]: ...
