"""
Change-notification publishers.

Notifications are signals: subscribers receive identifiers and fetch the data through the read
API. Publishing never raises; a failed publish is logged and reported as zero deliveries.

Channel pattern: ``{prefix}:notify:{tenant_id}:{event_type}``
"""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.interfaces.notification_interface import (
    INotificationPublisher,
    NotificationEventType,
)
from chatbridge.persistence.redis_client import RedisClient

logger = get_logger(__name__)


def build_payload(
    event_type: NotificationEventType, tenant_id: int, data: dict[str, Any]
) -> dict[str, Any]:
    return {
        "event": event_type,
        "tenant_id": tenant_id,
        "data": data,
        "timestamp": datetime.now(UTC).isoformat(),
        "v": "1",
    }


class RedisNotificationPublisher(INotificationPublisher):
    """Redis pub/sub publisher."""

    def __init__(self, prefix: str = "chatbridge"):
        self.prefix = prefix

    def get_channel(self, tenant_id: int, event_type: NotificationEventType) -> str:
        return f"{self.prefix}:notify:{tenant_id}:{event_type}"

    async def publish(
        self,
        event_type: NotificationEventType,
        tenant_id: int,
        data: dict[str, Any],
    ) -> int:
        channel = self.get_channel(tenant_id, event_type)
        payload = build_payload(event_type, tenant_id, data)
        try:
            async with RedisClient.connection() as redis:
                subscribers = await redis.publish(channel, json.dumps(payload, default=str))
                logger.debug(
                    f"Published {event_type} to {channel}: {subscribers} subscriber(s)"
                )
                return subscribers
        except Exception as e:
            logger.error(f"Failed to publish to {channel}: {e}", exc_info=True)
            return 0


class InMemoryNotificationPublisher(INotificationPublisher):
    """
    Process-local publisher.

    Keeps a bounded history of published payloads and fans them out to subscriber queues.
    Used when Redis is not configured and in tests.
    """

    def __init__(self, history_size: int = 500):
        self.history: list[dict[str, Any]] = []
        self._history_size = history_size
        self._subscribers: list[asyncio.Queue] = []

    def subscribe(self, maxsize: int = 100) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def events(self, event_type: NotificationEventType | None = None) -> list[dict[str, Any]]:
        if event_type is None:
            return list(self.history)
        return [p for p in self.history if p["event"] == event_type]

    async def publish(
        self,
        event_type: NotificationEventType,
        tenant_id: int,
        data: dict[str, Any],
    ) -> int:
        payload = build_payload(event_type, tenant_id, data)
        self.history.append(payload)
        if len(self.history) > self._history_size:
            del self.history[: len(self.history) - self._history_size]

        delivered = 0
        for queue in self._subscribers:
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event_type} notification for a slow subscriber")
        return delivered
