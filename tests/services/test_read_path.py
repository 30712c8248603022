"""Tests for the cached read path, cache service and conversation management."""

from datetime import timedelta

import pytest

from chatbridge.database.models import utc_now
from chatbridge.domain.enums import (
    ConversationPriority,
    ConversationSource,
    ConversationStatus,
    MessageDirection,
)
from chatbridge.domain.errors import CapabilityNotSupportedError
from chatbridge.domain.models import (
    ConversationFilter,
    ConversationUpdate,
    CustomerProfile,
    NormalizedConversation,
    NormalizedMessage,
)
from chatbridge.persistence.memory_cache import MemoryCache
from chatbridge.services.cache_service import ConversationCacheService
from tests.conftest import BUSINESS_ADDRESS, TENANT_ID, WEBHOOK_TOKEN
from tests.services.test_webhook_service import greenapi_text

CUSTOMER = "+18095551234"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestMemoryCache:
    async def test_ttl_expiry(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set("ns", "k", {"v": 1}, ttl=10)

        assert await cache.get("ns", "k") == {"v": 1}
        clock.now = 10
        assert await cache.get("ns", "k") is None
        await cache.close()

    async def test_namespace_invalidation(self):
        cache = MemoryCache()
        await cache.set("ns", "a", 1, ttl=60)
        await cache.set("ns", "b", 2, ttl=60)
        await cache.set("other", "a", 3, ttl=60)

        assert await cache.invalidate("ns") == 2
        assert await cache.get("ns", "a") is None
        assert await cache.get("other", "a") == 3
        await cache.close()

    async def test_zero_ttl_is_not_stored(self):
        cache = MemoryCache()
        await cache.set("ns", "k", 1, ttl=0)
        assert await cache.get("ns", "k") is None
        await cache.close()


class TestConversationCacheService:
    async def test_stale_write_is_dropped_after_invalidation(self):
        cache = ConversationCacheService(MemoryCache())
        generation = cache.conversations_generation(TENANT_ID)

        await cache.invalidate_conversations(TENANT_ID)
        written = await cache.set_conversations(TENANT_ID, "sig", {"items": []}, generation)

        assert written is False
        assert await cache.get_conversations(TENANT_ID, "sig") is None

    async def test_cache_failures_are_misses(self):
        class BrokenCache(MemoryCache):
            async def get(self, namespace, key):
                raise ConnectionError("redis down")

        cache = ConversationCacheService(BrokenCache())
        assert await cache.get_conversations(TENANT_ID, "sig") is None


class TestConversationReads:
    async def test_miss_serves_store_and_refreshes_in_background(
        self, services, backend, greenapi_tenant
    ):
        backend.conversations = [
            NormalizedConversation(customer_address="+18095557777", customer_name="Remote")
        ]

        page = await services.reads.list_conversations(TENANT_ID, ConversationFilter())
        assert page.total == 0

        await services.tasks.drain(timeout=5)
        refreshed = await services.reads.list_conversations(TENANT_ID, ConversationFilter())
        assert refreshed.total == 1
        assert refreshed.items[0].customer_name == "Remote"

    async def test_unconfigured_tenant_still_reads_local_data(self, services):
        page = await services.reads.list_conversations(999, ConversationFilter())
        await services.tasks.drain(timeout=5)
        assert page.total == 0

    async def test_message_history_imports_newer_provider_messages(
        self, services, backend, greenapi_tenant
    ):
        conversation = await services.store.get_or_create(
            TENANT_ID, CUSTOMER, BUSINESS_ADDRESS, "greenapi"
        )
        backend.history[CUSTOMER] = [
            NormalizedMessage(
                external_id="remote1",
                direction=MessageDirection.INBOUND,
                from_address=CUSTOMER,
                to_address=BUSINESS_ADDRESS,
                body="sent while we were offline",
                timestamp=utc_now() - timedelta(minutes=1),
            )
        ]

        first = await services.reads.list_messages(TENANT_ID, conversation.id)
        assert first == []

        await services.tasks.drain(timeout=5)
        second = await services.reads.list_messages(TENANT_ID, conversation.id)
        assert [m.external_id for m in second] == ["remote1"]

    async def test_ingested_webhook_is_visible_on_next_read(self, services, greenapi_tenant):
        first = await services.webhooks.handle(
            TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, greenapi_text("in1", "hello")
        )
        conversation_id = first.conversation_id
        warm = await services.reads.list_messages(TENANT_ID, conversation_id)
        assert [m.external_id for m in warm] == ["in1"]

        later = greenapi_text("in2", "are you there?")
        later["timestamp"] += 60
        await services.webhooks.handle(TENANT_ID, "greenapi", WEBHOOK_TOKEN, {}, later)

        after = await services.reads.list_messages(TENANT_ID, conversation_id)
        assert [m.external_id for m in after] == ["in1", "in2"]
        page = await services.reads.list_conversations(TENANT_ID, ConversationFilter())
        assert page.items[0].last_message_preview == "are you there?"

    async def test_widget_message_is_visible_on_next_read(self, services):
        first = await services.widget.receive(TENANT_ID, "sess-9", "Hi", "c1")
        warm = await services.reads.list_messages(TENANT_ID, first.conversation_id)
        assert [m.body for m in warm] == ["Hi"]

        await services.widget.receive(TENANT_ID, "sess-9", "Anyone?", "c2")

        after = await services.reads.list_messages(TENANT_ID, first.conversation_id)
        assert [m.body for m in after] == ["Hi", "Anyone?"]


class TestConversationManagement:
    async def test_update_and_status(self, services, publisher, greenapi_tenant):
        conversation = await services.store.get_or_create(
            TENANT_ID, CUSTOMER, BUSINESS_ADDRESS, "greenapi"
        )

        updated = await services.conversations.update(
            TENANT_ID,
            conversation.id,
            ConversationUpdate(
                assigned_agent_id="agent-7",
                priority=ConversationPriority.HIGH,
                tags=["vip"],
            ),
        )
        archived = await services.conversations.archive(TENANT_ID, conversation.id)

        assert updated.assigned_agent_id == "agent-7"
        assert updated.tags == ["vip"]
        assert archived.status == ConversationStatus.ARCHIVED
        assert archived.archived_at is not None
        assert len(publisher.events("conversation_updated")) == 2

    async def test_mark_read_sends_receipt(self, services, backend, greenapi_tenant):
        await services.webhooks.handle(
            TENANT_ID,
            "greenapi",
            "hook-token",
            {},
            {
                "typeWebhook": "incomingMessageReceived",
                "instanceData": {"wid": "18095550000@c.us"},
                "timestamp": 1700000000,
                "idMessage": "in1",
                "senderData": {"chatId": "18095551234@c.us"},
                "messageData": {
                    "typeMessage": "textMessage",
                    "textMessageData": {"textMessage": "unread"},
                },
            },
        )
        conversation = (await services.store.list_tenant_conversations(TENANT_ID))[0]

        read = await services.conversations.mark_conversation_read(TENANT_ID, conversation.id)

        assert read.unread_count == 0
        assert backend.read_receipts == [(CUSTOMER, "in1")]


class TestSync:
    async def test_refresh_and_enrich(self, services, backend, greenapi_tenant):
        backend.conversations = [
            NormalizedConversation(customer_address="+18095551111", customer_name="One"),
            NormalizedConversation(customer_address="+18095552222"),
        ]
        backend.profiles["+18095552222"] = CustomerProfile(
            name="Two", avatar_url="https://pps.example.com/two.jpg"
        )

        result = await services.sync.refresh(TENANT_ID)
        assert result.conversations == 2
        assert result.created == 2

        target = next(
            c
            for c in await services.store.list_tenant_conversations(TENANT_ID)
            if c.customer_address == "+18095552222"
        )
        enriched = await services.sync.enrich(TENANT_ID, target.id)
        assert enriched.customer_name == "Two"
        assert enriched.customer_avatar_url == "https://pps.example.com/two.jpg"

    async def test_rebuild_replays_history(self, services, backend, greenapi_tenant):
        conversation = await services.store.get_or_create(
            TENANT_ID, CUSTOMER, BUSINESS_ADDRESS, "greenapi"
        )
        backend.history[CUSTOMER] = [
            NormalizedMessage(
                external_id=f"h{i}",
                direction=MessageDirection.OUTBOUND,
                from_address=BUSINESS_ADDRESS,
                to_address=CUSTOMER,
                body=f"history {i}",
                timestamp=utc_now() - timedelta(hours=3 - i),
            )
            for i in range(3)
        ]

        result = await services.sync.rebuild(TENANT_ID)

        refreshed = await services.store.get_conversation(TENANT_ID, conversation.id)
        assert result.messages_imported == 3
        assert refreshed.message_count == 3
        assert refreshed.last_message_preview == "history 2"

    async def test_non_syncable_provider_is_rejected(self, services, twilio_tenant):
        with pytest.raises(CapabilityNotSupportedError):
            await services.sync.refresh(TENANT_ID)

    async def test_widget_conversations_are_never_refreshed(
        self, services, backend, greenapi_tenant
    ):
        await services.widget.receive(TENANT_ID, "sess-1", "hi")

        page = await services.reads.list_conversations(
            TENANT_ID, ConversationFilter(source=ConversationSource.WIDGET)
        )

        assert page.total == 1
        assert len(services.tasks) == 0
