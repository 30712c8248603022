"""
Outbound send pipeline.

config -> address validation -> blacklist -> rate limit -> provider dispatch (bounded timeout)
-> persist -> cache invalidation -> notification.

Every step before dispatch fails fast with a typed error, and nothing is persisted unless the
provider accepted the message.
"""

import asyncio

import aiohttp

from chatbridge.core.config.settings import settings
from chatbridge.core.logging.logger import get_logger
from chatbridge.database.models import BlacklistEntry, Message
from chatbridge.domain.enums import (
    ConversationSource,
    MessageDirection,
    MessageType,
)
from chatbridge.domain.errors import (
    BlacklistedError,
    ChatBridgeError,
    ConfigurationError,
    ProviderError,
    ValidationError,
)
from chatbridge.domain.factories.provider_factory import ProviderFactory
from chatbridge.domain.interfaces.config_store import ProviderConfigStore
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.domain.interfaces.provider_interface import IProviderClient
from chatbridge.domain.models import (
    BulkSendFailure,
    BulkSendResult,
    ConnectionTestResult,
    MessageRead,
    OutboundMessage,
    ProviderConfig,
    ProviderConfigView,
    ProviderSendResult,
)
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import ConversationStore
from chatbridge.services.rate_limiter import RateLimiter
from chatbridge.utils.media import guess_content_type, message_type_for_media
from chatbridge.utils.phone import normalize_phone

logger = get_logger(__name__)


def country_code_for(config: ProviderConfig | None) -> str | None:
    """Tenant override first, then the deployment default. An empty string disables it."""
    if config is not None and config.default_country_code is not None:
        return config.default_country_code or None
    return settings.default_country_code


async def call_provider(coro, provider_name: str, timeout: float):
    """
    Await one provider call under a timeout.

    Raises:
        ProviderError: On timeout or transport failure
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as err:
        logger.error(f"{provider_name} did not answer within {timeout}s")
        raise ProviderError(
            f"Provider timed out after {timeout:g}s", provider_name=provider_name
        ) from err
    except aiohttp.ClientError as err:
        logger.error(f"{provider_name} transport error: {err}")
        raise ProviderError(
            f"Provider request failed: {err}", provider_name=provider_name
        ) from err


class OutboundService:
    def __init__(
        self,
        config_store: ProviderConfigStore,
        factory: ProviderFactory,
        store: ConversationStore,
        rate_limiter: RateLimiter,
        cache: ConversationCacheService,
        publisher: INotificationPublisher,
        provider_timeout: float = 5.0,
    ):
        self.config_store = config_store
        self.factory = factory
        self.store = store
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.publisher = publisher
        self.provider_timeout = provider_timeout

    async def _config(self, tenant_id: int) -> ProviderConfig:
        config = await self.config_store.get_active(tenant_id)
        if config is None:
            raise ConfigurationError(
                f"No active messaging provider configured for tenant {tenant_id}"
            )
        return config

    async def resolve_client(self, tenant_id: int) -> IProviderClient:
        return self.factory.create(await self._config(tenant_id))

    async def send_message(
        self,
        tenant_id: int,
        to: str,
        body: str = "",
        media_url: str | None = None,
        media_content_type: str | None = None,
        agent_name: str | None = None,
    ) -> MessageRead:
        """
        Send one message and mirror it.

        Raises:
            ConfigurationError: No active provider for the tenant
            InvalidAddressError: Destination is not a plausible phone number
            BlacklistedError: Destination is blacklisted for the tenant
            RateLimitError: Tenant exhausted its window
            ProviderError: Provider rejected the message, failed or timed out
        """
        config = await self._config(tenant_id)
        return await self._send(config, to, body, media_url, media_content_type, agent_name)

    async def _send(
        self,
        config: ProviderConfig,
        to: str,
        body: str,
        media_url: str | None,
        media_content_type: str | None,
        agent_name: str | None,
    ) -> MessageRead:
        tenant_id = config.tenant_id
        if not config.business_address:
            raise ConfigurationError(
                f"Tenant {tenant_id} has no business address configured"
            )
        business = normalize_phone(config.business_address)
        address = normalize_phone(to, country_code_for(config))
        if not (body or "").strip() and not media_url:
            raise ValidationError("Message body or media URL is required")

        if await self.store.is_blacklisted(tenant_id, address):
            raise BlacklistedError(address)

        self.rate_limiter.acquire(config)

        client = self.factory.create(config)

        content_type = media_content_type or guess_content_type(media_url)
        outbound = OutboundMessage(
            to=address,
            body=body or "",
            media_url=media_url,
            media_content_type=content_type,
        )
        result: ProviderSendResult = await call_provider(
            client.send_message(outbound), client.provider_name, self.provider_timeout
        )

        conversation = await self.store.get_or_create(
            tenant_id, address, business, provider=client.provider_name
        )
        message, _ = await self.store.append_message(
            Message(
                tenant_id=tenant_id,
                conversation_id=conversation.id,
                provider=client.provider_name,
                external_id=result.external_id,
                from_address=business,
                to_address=address,
                body=outbound.body,
                message_type=message_type_for_media(media_url, content_type)
                if media_url
                else MessageType.TEXT,
                media_url=media_url,
                media_content_type=content_type,
                direction=MessageDirection.OUTBOUND,
                status=result.status,
                source=ConversationSource.PROVIDER,
                agent_name=agent_name,
                timestamp=result.timestamp,
            )
        )
        await self.cache.invalidate_conversation(tenant_id, conversation.id)
        await self.publisher.publish(
            "outgoing_message",
            tenant_id,
            {
                "conversation_id": conversation.id,
                "message_id": message.id,
                "external_id": message.external_id,
                "to": address,
            },
        )
        logger.info(f"Sent {result.external_id} to {address} via {client.provider_name}")
        return MessageRead.model_validate(message)

    async def send_bulk(
        self,
        tenant_id: int,
        recipients: list[str],
        body: str = "",
        media_url: str | None = None,
        agent_name: str | None = None,
    ) -> BulkSendResult:
        """
        Send one body to many recipients.

        Recipients go through the full pipeline independently, in order, so rate limiting
        applies per message. One failure never stops the rest.
        """
        config = await self._config(tenant_id)
        result = BulkSendResult()
        for to in recipients:
            try:
                sent = await self._send(config, to, body, media_url, None, agent_name)
                result.sent.append(sent)
            except ChatBridgeError as e:
                logger.warning(f"Bulk send to {to} failed: {e.error_code}")
                result.failed.append(
                    BulkSendFailure(to=to, error_code=e.error_code, error=e.message)
                )
        return result

    async def send_read_receipt(
        self, tenant_id: int, customer_address: str, external_id: str | None
    ) -> bool:
        """Best-effort provider read receipt; failures are logged and reported as False."""
        try:
            client = await self.resolve_client(tenant_id)
            return bool(
                await call_provider(
                    client.mark_read(customer_address, external_id),
                    client.provider_name,
                    self.provider_timeout,
                )
            )
        except ChatBridgeError as e:
            logger.warning(f"Read receipt for {customer_address} not sent: {e.message}")
            return False

    async def test_connection(
        self, tenant_id: int, test_address: str | None = None
    ) -> ConnectionTestResult:
        config = await self._config(tenant_id)
        client = self.factory.create(config)
        address = normalize_phone(test_address, country_code_for(config)) if test_address else None
        return await call_provider(
            client.test_connection(address), client.provider_name, self.provider_timeout * 2
        )

    async def provider_info(self, tenant_id: int) -> ProviderConfigView:
        return (await self.resolve_client(tenant_id)).get_config()

    # ================================================================
    # Blacklist
    # ================================================================

    async def _normalize(self, tenant_id: int, address: str) -> str:
        config = await self.config_store.get_active(tenant_id)
        return normalize_phone(address, country_code_for(config))

    async def add_to_blacklist(
        self, tenant_id: int, address: str, reason: str | None = None
    ) -> BlacklistEntry:
        return await self.store.add_to_blacklist(
            tenant_id, await self._normalize(tenant_id, address), reason
        )

    async def remove_from_blacklist(self, tenant_id: int, address: str) -> bool:
        return await self.store.remove_from_blacklist(
            tenant_id, await self._normalize(tenant_id, address)
        )

    async def list_blacklist(self, tenant_id: int) -> list[BlacklistEntry]:
        return await self.store.list_blacklist(tenant_id)
