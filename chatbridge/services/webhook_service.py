"""
Inbound webhook ingestion.

received -> token-checked -> header-checked -> deduplicated -> persisted -> acknowledged

Authentication failures propagate as ``AuthError`` so the route answers 401/403 and nothing is
stored. Once authentication passed, every downstream failure is logged and the delivery is still
acknowledged: providers retry on non-2xx and a retry would not fix a bug on this side.
"""

import hmac
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel

from chatbridge.core.logging.context import set_request_context
from chatbridge.core.logging.logger import get_logger
from chatbridge.database.models import Conversation, Message, utc_now
from chatbridge.domain.enums import MessageDirection
from chatbridge.domain.errors import AuthError, ConfigurationError
from chatbridge.domain.factories.provider_factory import (
    ProviderFactory,
    normalize_provider_name,
)
from chatbridge.domain.interfaces.config_store import ProviderConfigStore
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.domain.models import InboundEvent, ProviderConfig
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.conversation_store import (
    ConversationStore,
    message_from_normalized,
)

logger = get_logger(__name__)


class WebhookResult(BaseModel):
    status: Literal["processed", "duplicate", "ignored", "error"]
    event_id: str | None = None
    event_type: str | None = None
    conversation_id: str | None = None
    message_id: str | None = None


def _matches(expected: str, actual: str | None) -> bool:
    if actual is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


class WebhookService:
    def __init__(
        self,
        config_store: ProviderConfigStore,
        factory: ProviderFactory,
        store: ConversationStore,
        cache: ConversationCacheService,
        publisher: INotificationPublisher,
    ):
        self.config_store = config_store
        self.factory = factory
        self.store = store
        self.cache = cache
        self.publisher = publisher

    async def authenticate(
        self,
        tenant_id: int,
        provider_name: str,
        token: str,
        headers: Mapping[str, str],
    ) -> ProviderConfig:
        """
        Resolve the tenant's config for this provider and check token and auth header.

        Raises:
            UnknownProviderError: Path names no registered provider (404)
            ConfigurationError: Tenant has no active config for this provider (404)
            AuthError: Token mismatch (401) or auth header mismatch (403)
        """
        provider = normalize_provider_name(provider_name)
        config = await self.config_store.get_active(tenant_id, provider.value)
        if config is None:
            raise ConfigurationError(
                f"No active {provider.value} configuration for tenant {tenant_id}"
            )

        if not config.webhook_token or not _matches(config.webhook_token, token):
            logger.warning(
                f"SECURITY: webhook token mismatch for tenant {tenant_id} ({provider.value})"
            )
            raise AuthError("Invalid webhook token", status_code=401)

        if config.webhook_secret:
            expected = config.effective_header_template.replace(
                "{secret}", config.webhook_secret
            )
            if not _matches(expected, headers.get(config.effective_header_name)):
                logger.warning(
                    f"SECURITY: webhook header {config.effective_header_name} mismatch "
                    f"for tenant {tenant_id} ({provider.value})"
                )
                raise AuthError("Invalid webhook authorization header", status_code=403)

        return config

    async def handle(
        self,
        tenant_id: int,
        provider_name: str,
        token: str,
        headers: Mapping[str, str],
        payload: dict[str, Any],
    ) -> WebhookResult:
        """Authenticate a delivery, then process it. Only authentication errors propagate."""
        set_request_context(tenant_id=tenant_id)
        config = await self.authenticate(tenant_id, provider_name, token, headers)
        return await self.process(config, payload)

    async def process(self, config: ProviderConfig, payload: dict[str, Any]) -> WebhookResult:
        """Decode, deduplicate and persist an authenticated delivery. Never raises."""
        try:
            return await self._process(config, payload)
        except Exception as e:
            logger.error(f"Webhook processing failed after authentication: {e}", exc_info=True)
            return WebhookResult(status="error")

    async def _process(self, config: ProviderConfig, payload: dict[str, Any]) -> WebhookResult:
        client = self.factory.create(config)
        event = client.decode_webhook(payload)
        now = utc_now()
        result = WebhookResult(
            status="ignored", event_id=event.event_id, event_type=event.event_type
        )

        if event.event_id:
            first = await self.store.record_webhook_event(
                config.tenant_id,
                client.provider_name,
                event.event_id,
                event.event_type,
                payload,
            )
            if not first:
                logger.info(f"Duplicate webhook event {event.event_id}, already processed")
                result.status = "duplicate"
                return result
        else:
            logger.debug(f"Webhook {event.event_type} carries no event id, skipping dedup")

        if event.message is not None:
            conversation, message = await self._persist_message(
                config, client.provider_name, event
            )
            result.conversation_id = conversation.id
            result.message_id = message.id
            result.status = "processed"
            await self.store.touch_last_event(conversation.id, now)
        elif event.status_update is not None:
            update = event.status_update
            message = await self.store.update_message_status(
                config.tenant_id,
                client.provider_name,
                update.external_id,
                update.status,
                update.timestamp,
            )
            if message is not None:
                await self.cache.invalidate_conversation(
                    config.tenant_id, message.conversation_id
                )
                await self.publisher.publish(
                    "status_change",
                    config.tenant_id,
                    {
                        "conversation_id": message.conversation_id,
                        "message_id": message.id,
                        "external_id": message.external_id,
                        "status": message.status.value,
                    },
                )
                await self.store.touch_last_event(message.conversation_id, now)
                result.conversation_id = message.conversation_id
                result.message_id = message.id
                result.status = "processed"
            else:
                logger.debug(f"Status for unknown message {update.external_id} ignored")
        else:
            logger.debug(f"Webhook event type {event.event_type} has nothing to persist")

        await self.config_store.touch_last_event(config.tenant_id, config.provider, now)
        return result

    async def _persist_message(
        self, config: ProviderConfig, provider: str, event: InboundEvent
    ) -> tuple[Conversation, Message]:
        normalized = event.message
        conversation = await self.store.get_or_create(
            config.tenant_id,
            normalized.customer_address,
            normalized.business_address,
            provider=provider,
            customer_name=normalized.sender_name
            if normalized.direction == MessageDirection.INBOUND
            else None,
        )
        message, created = await self.store.append_message(
            message_from_normalized(conversation, provider, normalized)
        )
        if not created:
            logger.debug(f"Message {normalized.external_id} already mirrored")
            return conversation, message

        await self.cache.invalidate_conversation(config.tenant_id, conversation.id)
        event_type = (
            "incoming_message"
            if normalized.direction == MessageDirection.INBOUND
            else "outgoing_message"
        )
        await self.publisher.publish(
            event_type,
            config.tenant_id,
            {
                "conversation_id": conversation.id,
                "message_id": message.id,
                "external_id": message.external_id,
                "from": message.from_address,
            },
        )
        logger.info(
            f"Stored {normalized.direction.value} message {normalized.external_id} "
            f"in conversation {conversation.id}"
        )
        return conversation, message
