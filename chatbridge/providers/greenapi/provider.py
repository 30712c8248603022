"""
GreenAPI implementation of the provider contract.

Also implements the syncable capability (``refresh_chats``, ``enrich_contact``,
``fetch_history``) because GreenAPI exposes the phone's chat list and full history.
"""

from typing import Any

import aiohttp

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.errors import ConfigurationError, ProviderError
from chatbridge.domain.interfaces.provider_interface import IProviderClient
from chatbridge.domain.models import (
    ConnectionTestResult,
    CustomerProfile,
    InboundEvent,
    NormalizedConversation,
    NormalizedMessage,
    OutboundMessage,
    ProviderConfig,
    ProviderSendResult,
)
from chatbridge.providers.greenapi import decoder
from chatbridge.providers.greenapi.client import GreenApiClient
from chatbridge.utils.media import file_name_from_url
from chatbridge.utils.phone import digits_only


class GreenApiProvider(IProviderClient):
    """GreenAPI (WhatsApp via a linked phone) provider client."""

    def __init__(
        self,
        config: ProviderConfig,
        session: aiohttp.ClientSession,
        client: GreenApiClient | None = None,
    ):
        super().__init__(config)
        self.logger = get_logger(__name__)
        self._client = client or GreenApiClient(
            session=session,
            instance_id=config.credential("instance_id"),
            api_token=config.credential("api_token"),
            base_url=config.credentials.get("api_base_url"),
            logger=self.logger,
        )

    @property
    def provider_name(self) -> str:
        return ProviderName.GREENAPI.value

    def to_native_address(self, address: str) -> str:
        return f"{digits_only(address)}@c.us"

    def _business_address(self) -> str:
        if not self._config.business_address:
            raise ConfigurationError(
                f"Tenant {self.tenant_id} has no business address configured"
            )
        return self._config.business_address

    async def send_message(self, message: OutboundMessage) -> ProviderSendResult:
        chat_id = self.to_native_address(message.to)

        if message.media_url:
            response = await self._client.send_file_by_url(
                chat_id,
                message.media_url,
                file_name_from_url(message.media_url),
                caption=message.body or None,
            )
        else:
            response = await self._client.send_message(chat_id, message.body)

        id_message = response.get("idMessage") if isinstance(response, dict) else None
        if not id_message:
            raise ProviderError(
                "GreenAPI accepted the request but returned no idMessage",
                provider_name=self.provider_name,
            )
        self.logger.info(f"GreenAPI message {id_message} sent to {chat_id}")
        return ProviderSendResult(external_id=id_message)

    async def list_conversations(self, limit: int = 100) -> list[NormalizedConversation]:
        chats = await self._client.get_chats()
        conversations = []
        for chat in chats:
            decoded = decoder.decode_chat(chat)
            if decoded is not None:
                conversations.append(decoded)
            if len(conversations) >= limit:
                break
        return conversations

    async def list_messages(
        self, customer_address: str, limit: int = 50
    ) -> list[NormalizedMessage]:
        items = await self._client.get_chat_history(
            self.to_native_address(customer_address), limit
        )
        business = self._business_address()
        messages = []
        for item in items:
            decoded = decoder.decode_history_item(item, customer_address, business)
            if decoded is not None:
                messages.append(decoded)
        messages.sort(key=lambda m: m.timestamp)
        return messages

    async def mark_read(
        self, customer_address: str, external_id: str | None = None
    ) -> bool:
        return await self._client.read_chat(
            self.to_native_address(customer_address), external_id
        )

    async def test_connection(self, test_address: str | None = None) -> ConnectionTestResult:
        try:
            state = await self._client.get_state_instance()
            state_instance = state.get("stateInstance")
            details: dict[str, Any] = {"state": state_instance}

            if state_instance == "authorized":
                wa_settings = await self._client.get_wa_settings()
                details["phone"] = wa_settings.get("phone")

            if test_address and state_instance == "authorized":
                result = await self.send_message(
                    OutboundMessage(
                        to=test_address, body="Test message: connection verified."
                    )
                )
                details["test_message_id"] = result.external_id

            return ConnectionTestResult(
                success=state_instance == "authorized",
                provider=self.provider_name,
                state=state_instance,
                details=details,
                error=None
                if state_instance == "authorized"
                else f"Instance state is {state_instance!r}",
            )
        except ProviderError as exc:
            return ConnectionTestResult(
                success=False, provider=self.provider_name, error=exc.message
            )

    def decode_webhook(self, payload: dict[str, Any]) -> InboundEvent:
        return decoder.decode_webhook(payload, self._config.business_address)

    # ================================================================
    # Syncable capability
    # ================================================================

    async def refresh_chats(self, limit: int = 1000) -> list[NormalizedConversation]:
        return await self.list_conversations(limit=limit)

    async def enrich_contact(self, customer_address: str) -> CustomerProfile | None:
        info = await self._client.get_contact_info(
            self.to_native_address(customer_address)
        )
        return decoder.decode_contact(info)

    async def fetch_history(
        self, customer_address: str, limit: int = 100
    ) -> list[NormalizedMessage]:
        return await self.list_messages(customer_address, limit=limit)

