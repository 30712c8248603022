"""Tests for webhook authentication, deduplication and persistence."""

import pytest

from chatbridge.domain.enums import MessageStatus
from chatbridge.domain.errors import AuthError, ConfigurationError, UnknownProviderError
from tests.conftest import TENANT_ID, WEBHOOK_TOKEN, make_config

CUSTOMER = "+18095551234"
BUSINESS = "+14155550000"


def greenapi_text(id_message="abc1", text="hello"):
    return {
        "typeWebhook": "incomingMessageReceived",
        "instanceData": {"idInstance": 1101, "wid": "14155550000@c.us"},
        "timestamp": 1700000000,
        "idMessage": id_message,
        "senderData": {"chatId": "18095551234@c.us", "senderName": "Ana"},
        "messageData": {
            "typeMessage": "textMessage",
            "textMessageData": {"textMessage": text},
        },
    }


@pytest.fixture
def webhooks(services):
    return services.webhooks


class TestWebhookAuthentication:
    async def test_valid_token(self, webhooks, greenapi_tenant):
        config = await webhooks.authenticate(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {})
        assert config.tenant_id == TENANT_ID

    async def test_wrong_token(self, webhooks, greenapi_tenant):
        with pytest.raises(AuthError) as exc_info:
            await webhooks.authenticate(TENANT_ID, "greenapi", "guess", {})
        assert exc_info.value.status_code == 401

    async def test_header_secret(self, config_store, webhooks):
        await config_store.save(
            make_config(webhook_secret="s3cret", header_name="X-Webhook-Auth")
        )

        with pytest.raises(AuthError) as exc_info:
            await webhooks.authenticate(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {})
        assert exc_info.value.status_code == 403

        config = await webhooks.authenticate(
            TENANT_ID, "greenapi", WEBHOOK_TOKEN, {"X-Webhook-Auth": "Bearer s3cret"}
        )
        assert config.webhook_secret == "s3cret"

    async def test_both_providers_active(self, webhooks, greenapi_tenant, twilio_tenant):
        greenapi = await webhooks.authenticate(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {})
        twilio = await webhooks.authenticate(TENANT_ID, "twilio", WEBHOOK_TOKEN, {})

        assert greenapi.provider == "greenapi"
        assert twilio.provider == "twilio"

    async def test_stored_name_spelling_is_ignored(self, config_store, webhooks):
        await config_store.save(make_config("Green-API"))

        config = await webhooks.authenticate(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {})
        assert config.provider == "Green-API"

    async def test_provider_mismatch(self, webhooks, greenapi_tenant):
        with pytest.raises(ConfigurationError):
            await webhooks.authenticate(TENANT_ID, "twilio", WEBHOOK_TOKEN, {})

    async def test_unknown_provider(self, webhooks, greenapi_tenant):
        with pytest.raises(UnknownProviderError):
            await webhooks.authenticate(TENANT_ID, "telegram", WEBHOOK_TOKEN, {})


class TestWebhookProcessing:
    async def test_duplicate_delivery_is_stored_once(
        self, services, webhooks, publisher, greenapi_tenant
    ):
        first = await webhooks.handle(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, greenapi_text())
        second = await webhooks.handle(
            TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, greenapi_text()
        )

        assert first.status == "processed"
        assert second.status == "duplicate"
        conversation = await services.store.get_conversation(TENANT_ID, first.conversation_id)
        assert conversation.customer_address == CUSTOMER
        assert conversation.business_address == BUSINESS
        assert conversation.customer_name == "Ana"
        assert conversation.message_count == 1
        assert conversation.unread_count == 1
        assert conversation.last_message_preview == "hello"
        assert conversation.last_event_at is not None
        assert len(publisher.events("incoming_message")) == 1

    async def test_status_callback_updates_message(self, services, webhooks, greenapi_tenant):
        await webhooks.handle(
            TENANT_ID,
            "greenapi",
            WEBHOOK_TOKEN,
            {},
            {**greenapi_text("out1"), "typeWebhook": "outgoingAPIMessageReceived"},
        )

        result = await webhooks.handle(
            TENANT_ID,
            "greenapi",
            WEBHOOK_TOKEN,
            {},
            {"typeWebhook": "outgoingMessageStatus", "idMessage": "out1", "status": "read"},
        )

        message = await services.store.get_message(TENANT_ID, result.message_id)
        assert result.status == "processed"
        assert message.status == MessageStatus.READ

    async def test_ignored_event_still_acknowledged(self, webhooks, greenapi_tenant):
        result = await webhooks.handle(
            TENANT_ID,
            "greenapi",
            WEBHOOK_TOKEN,
            {},
            {"typeWebhook": "stateInstanceChanged", "stateInstance": "authorized"},
        )
        assert result.status == "ignored"

    async def test_records_last_webhook_time(self, config_store, webhooks, greenapi_tenant):
        await webhooks.handle(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, greenapi_text())

        config = await config_store.get_active(TENANT_ID)
        assert config.last_webhook_event_at is not None

    async def test_last_webhook_time_per_provider(
        self, config_store, webhooks, greenapi_tenant
    ):
        await config_store.save(
            make_config(
                "Twilio",
                credentials={"account_sid": "AC123", "auth_token": "twilio-secret"},
            )
        )

        await webhooks.handle(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, greenapi_text())

        greenapi = await config_store.get_active(TENANT_ID, "greenapi")
        twilio = await config_store.get_active(TENANT_ID, "twilio")
        assert greenapi.last_webhook_event_at is not None
        assert twilio.provider == "Twilio"
        assert twilio.last_webhook_event_at is None

    async def test_twilio_inbound(self, services, webhooks, twilio_tenant):
        result = await webhooks.handle(
            TENANT_ID,
            "twilio",
            WEBHOOK_TOKEN,
            {},
            {
                "MessageSid": "SM1",
                "From": "whatsapp:+18095551234",
                "To": "whatsapp:+18095550000",
                "Body": "Hola",
                "SmsStatus": "received",
            },
        )

        message = await services.store.get_message(TENANT_ID, result.message_id)
        assert message.provider == "twilio"
        assert message.body == "Hola"
