"""
Twilio implementation of the provider contract.

Twilio keeps a flat message log rather than chats, so conversations are derived by grouping
messages by the customer's number. It does not implement the syncable capability.
"""

import asyncio
from typing import Any

import aiohttp

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import MessageStatus, ProviderName
from chatbridge.domain.errors import ConfigurationError, ProviderError
from chatbridge.domain.interfaces.provider_interface import IProviderClient
from chatbridge.domain.models import (
    ConnectionTestResult,
    InboundEvent,
    NormalizedConversation,
    NormalizedMessage,
    OutboundMessage,
    ProviderConfig,
    ProviderSendResult,
)
from chatbridge.providers.twilio import decoder
from chatbridge.providers.twilio.client import TwilioClient
from chatbridge.utils.media import build_preview


class TwilioProvider(IProviderClient):
    """Twilio WhatsApp sender provider client."""

    def __init__(
        self,
        config: ProviderConfig,
        session: aiohttp.ClientSession,
        client: TwilioClient | None = None,
    ):
        super().__init__(config)
        self.logger = get_logger(__name__)
        self._client = client or TwilioClient(
            session=session,
            account_sid=config.credential("account_sid"),
            auth_token=config.credential("auth_token"),
            base_url=config.credentials.get("api_base_url"),
            logger=self.logger,
        )

    @property
    def provider_name(self) -> str:
        return ProviderName.TWILIO.value

    def to_native_address(self, address: str) -> str:
        return f"whatsapp:{address}"

    def _sender(self) -> str:
        if not self._config.business_address:
            raise ConfigurationError(
                f"Tenant {self.tenant_id} has no Twilio sender number configured"
            )
        return self.to_native_address(self._config.business_address)

    async def send_message(self, message: OutboundMessage) -> ProviderSendResult:
        response = await self._client.create_message(
            from_=self._sender(),
            to=self.to_native_address(message.to),
            body=message.body or None,
            media_url=message.media_url,
        )
        sid = response.get("sid")
        if not sid:
            raise ProviderError(
                "Twilio accepted the request but returned no sid",
                provider_name=self.provider_name,
            )
        status = decoder.map_status(response.get("status")) or MessageStatus.QUEUED
        self.logger.info(f"Twilio message {sid} created with status {status.value}")
        return ProviderSendResult(
            external_id=sid,
            status=status,
            timestamp=decoder.parse_twilio_date(response.get("date_created")),
        )

    async def _message_log(
        self, to: str | None = None, from_: str | None = None, limit: int = 50
    ) -> list[NormalizedMessage]:
        items = await self._client.list_messages(to=to, from_=from_, page_size=limit)
        decoded = (decoder.decode_resource(item) for item in items)
        return [m for m in decoded if m is not None]

    async def list_conversations(self, limit: int = 100) -> list[NormalizedConversation]:
        sender = self._sender()
        received, sent = await asyncio.gather(
            self._message_log(to=sender, limit=limit),
            self._message_log(from_=sender, limit=limit),
        )

        latest: dict[str, NormalizedMessage] = {}
        for message in [*received, *sent]:
            customer = message.customer_address
            current = latest.get(customer)
            if current is None or message.timestamp > current.timestamp:
                latest[customer] = message

        ordered = sorted(latest.values(), key=lambda m: m.timestamp, reverse=True)
        return [
            NormalizedConversation(
                customer_address=m.customer_address,
                last_message_at=m.timestamp,
                last_message_preview=build_preview(m.body, m.message_type),
            )
            for m in ordered[:limit]
        ]

    async def list_messages(
        self, customer_address: str, limit: int = 50
    ) -> list[NormalizedMessage]:
        native = self.to_native_address(customer_address)
        inbound, outbound = await asyncio.gather(
            self._message_log(from_=native, limit=limit),
            self._message_log(to=native, limit=limit),
        )
        messages = sorted([*inbound, *outbound], key=lambda m: m.timestamp)
        return messages[-limit:]

    async def mark_read(
        self, customer_address: str, external_id: str | None = None
    ) -> bool:
        # Twilio exposes no read-receipt endpoint for WhatsApp senders
        self.logger.debug(f"Twilio mark_read is a no-op for {customer_address}")
        return False

    async def test_connection(self, test_address: str | None = None) -> ConnectionTestResult:
        try:
            account = await self._client.fetch_account()
            status = account.get("status")
            details: dict[str, Any] = {
                "account_status": status,
                "friendly_name": account.get("friendly_name"),
            }
            if test_address and status == "active":
                result = await self.send_message(
                    OutboundMessage(
                        to=test_address, body="Test message: connection verified."
                    )
                )
                details["test_message_id"] = result.external_id

            return ConnectionTestResult(
                success=status == "active",
                provider=self.provider_name,
                state=status,
                details=details,
                error=None if status == "active" else f"Account status is {status!r}",
            )
        except ProviderError as exc:
            return ConnectionTestResult(
                success=False, provider=self.provider_name, error=exc.message
            )

    def decode_webhook(self, payload: dict[str, Any]) -> InboundEvent:
        return decoder.decode_webhook(payload)
