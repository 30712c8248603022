"""Tests for the change-notification publishers."""

from unittest.mock import AsyncMock, patch

from chatbridge.persistence.notifications import (
    InMemoryNotificationPublisher,
    RedisNotificationPublisher,
)
from chatbridge.persistence.redis_client import RedisClient
from tests.conftest import TENANT_ID


class TestInMemoryNotificationPublisher:
    async def test_fans_out_to_subscribers(self):
        publisher = InMemoryNotificationPublisher()
        first = publisher.subscribe()
        second = publisher.subscribe()

        delivered = await publisher.publish(
            "incoming_message", TENANT_ID, {"conversation_id": "c1"}
        )

        assert delivered == 2
        payload = first.get_nowait()
        assert payload["event"] == "incoming_message"
        assert payload["tenant_id"] == TENANT_ID
        assert payload["data"] == {"conversation_id": "c1"}
        assert second.get_nowait() == payload

    async def test_unsubscribed_queue_receives_nothing(self):
        publisher = InMemoryNotificationPublisher()
        queue = publisher.subscribe()
        publisher.unsubscribe(queue)

        assert await publisher.publish("status_change", TENANT_ID, {}) == 0
        assert queue.empty()
        assert len(publisher.events("status_change")) == 1

    async def test_slow_subscriber_is_skipped(self):
        publisher = InMemoryNotificationPublisher()
        full = publisher.subscribe(maxsize=1)
        await publisher.publish("outgoing_message", TENANT_ID, {"n": 1})

        delivered = await publisher.publish("outgoing_message", TENANT_ID, {"n": 2})

        assert delivered == 0
        assert full.get_nowait()["data"] == {"n": 1}

    async def test_history_is_bounded(self):
        publisher = InMemoryNotificationPublisher(history_size=3)
        for n in range(5):
            await publisher.publish("conversation_updated", TENANT_ID, {"n": n})

        assert [p["data"]["n"] for p in publisher.events()] == [2, 3, 4]


class TestRedisNotificationPublisher:
    def test_channel_layout(self):
        publisher = RedisNotificationPublisher(prefix="cb")
        assert publisher.get_channel(7, "incoming_message") == "cb:notify:7:incoming_message"

    async def test_publishes_json_payload(self):
        redis = AsyncMock()
        redis.publish.return_value = 3

        with patch.object(RedisClient, "get", return_value=redis):
            delivered = await RedisNotificationPublisher().publish(
                "incoming_message", TENANT_ID, {"conversation_id": "c1"}
            )

        assert delivered == 3
        channel, body = redis.publish.await_args.args
        assert channel == f"chatbridge:notify:{TENANT_ID}:incoming_message"
        assert '"conversation_id": "c1"' in body

    async def test_failure_is_reported_as_zero_deliveries(self):
        with patch.object(RedisClient, "get", side_effect=RuntimeError("not configured")):
            delivered = await RedisNotificationPublisher().publish(
                "incoming_message", TENANT_ID, {}
            )

        assert delivered == 0
