"""Tests for the outbound send pipeline."""

import asyncio

import aiohttp
import pytest

from chatbridge.domain.enums import MessageDirection
from chatbridge.domain.errors import (
    BlacklistedError,
    ConfigurationError,
    InvalidAddressError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from chatbridge.domain.models import ConversationFilter
from chatbridge.services.outbound_service import country_code_for
from tests.conftest import BUSINESS_ADDRESS, TENANT_ID, make_config


@pytest.fixture
def outbound(services):
    return services.outbound


class TestCountryCode:
    def test_tenant_setting_wins(self):
        assert country_code_for(make_config(default_country_code="44")) == "44"

    def test_empty_tenant_setting_disables_prefix(self):
        assert country_code_for(make_config(default_country_code="")) is None

    def test_falls_back_to_deployment_default(self):
        assert country_code_for(make_config(default_country_code=None)) == "1"


class TestSendMessage:
    async def test_send_mirrors_message(self, services, outbound, backend, greenapi_tenant):
        message = await outbound.send_message(TENANT_ID, "8095551234", body="Hi Ana")

        assert backend.sent[0].to == "+18095551234"
        assert message.external_id == "FAKE0001"
        assert message.direction == MessageDirection.OUTBOUND
        assert message.from_address == BUSINESS_ADDRESS
        conversation = await services.store.get_conversation(
            TENANT_ID, message.conversation_id
        )
        assert conversation.customer_address == "+18095551234"
        assert conversation.message_count == 1
        assert conversation.unread_count == 0

    async def test_send_publishes_and_invalidates_cache(
        self, services, outbound, publisher, greenapi_tenant
    ):
        filters = ConversationFilter()
        await services.reads.list_conversations(TENANT_ID, filters)
        assert await services.cache.get_conversations(TENANT_ID, filters.signature()) is not None

        await outbound.send_message(TENANT_ID, "+18095551234", body="Hi")

        assert await services.cache.get_conversations(TENANT_ID, filters.signature()) is None
        events = publisher.events("outgoing_message")
        assert len(events) == 1
        assert events[0]["tenant_id"] == TENANT_ID

    async def test_media_message(self, outbound, backend, greenapi_tenant):
        message = await outbound.send_message(
            TENANT_ID, "+18095551234", media_url="https://cdn.example.com/menu.pdf"
        )

        assert backend.sent[0].media_content_type == "application/pdf"
        assert message.message_type.value == "document"

    async def test_empty_message_is_rejected(self, outbound, backend, greenapi_tenant):
        with pytest.raises(ValidationError):
            await outbound.send_message(TENANT_ID, "+18095551234", body="   ")
        assert backend.sent == []

    async def test_invalid_address(self, outbound, greenapi_tenant):
        with pytest.raises(InvalidAddressError):
            await outbound.send_message(TENANT_ID, "12", body="Hi")

    async def test_blacklisted_recipient(self, outbound, backend, greenapi_tenant):
        await outbound.add_to_blacklist(TENANT_ID, "8095551234", "opted out")

        with pytest.raises(BlacklistedError):
            await outbound.send_message(TENANT_ID, "+1 809 555 1234", body="Hi")
        assert backend.sent == []

    async def test_unconfigured_tenant(self, outbound):
        with pytest.raises(ConfigurationError):
            await outbound.send_message(999, "+18095551234", body="Hi")

    async def test_rate_limit(self, config_store, outbound, backend):
        await config_store.save(make_config(rate_limit_max_messages=2))

        await outbound.send_message(TENANT_ID, "+18095551234", body="1")
        await outbound.send_message(TENANT_ID, "+18095551234", body="2")
        with pytest.raises(RateLimitError):
            await outbound.send_message(TENANT_ID, "+18095551234", body="3")
        assert len(backend.sent) == 2

    async def test_provider_failure_stores_nothing(
        self, services, outbound, backend, greenapi_tenant
    ):
        backend.fail_with = aiohttp.ClientConnectionError("connection reset")

        with pytest.raises(ProviderError):
            await outbound.send_message(TENANT_ID, "+18095551234", body="Hi")
        assert await services.store.list_tenant_conversations(TENANT_ID) == []

    async def test_provider_timeout(self, services, outbound, backend, greenapi_tenant):
        outbound.provider_timeout = 0.05
        backend.delay = 1

        with pytest.raises(ProviderError):
            await outbound.send_message(TENANT_ID, "+18095551234", body="Hi")


class TestBulkSend:
    async def test_failures_do_not_stop_the_batch(self, outbound, backend, greenapi_tenant):
        result = await outbound.send_bulk(
            TENANT_ID, ["+18095551111", "nope", "+18095552222"], body="Promo"
        )

        assert len(result.sent) == 2
        assert [f.to for f in result.failed] == ["nope"]
        assert result.failed[0].error_code == "invalid_address"
        assert len(backend.sent) == 2


class TestProviderOperations:
    async def test_connection_test(self, outbound, greenapi_tenant):
        result = await outbound.test_connection(TENANT_ID)
        assert result.success
        assert result.provider == "greenapi"

    async def test_provider_info(self, outbound, greenapi_tenant):
        info = await outbound.provider_info(TENANT_ID)
        assert info.provider == "greenapi"
        assert info.webhook_configured

    async def test_concurrent_sends_respect_limit(self, config_store, outbound):
        await config_store.save(make_config(rate_limit_max_messages=3))

        results = await asyncio.gather(
            *(outbound.send_message(TENANT_ID, "+18095551234", body=str(i)) for i in range(5)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, RateLimitError) for r in results) == 2
