"""Notification publisher interface for real-time change events."""

from abc import ABC, abstractmethod
from typing import Any, Literal

NotificationEventType = Literal[
    "incoming_message",  # Customer → provider/widget → chatbridge
    "outgoing_message",  # Agent/API → provider/widget
    "status_change",  # Provider delivery/read receipts
    "conversation_updated",  # Close, archive, read, agent edits, sync
]


class INotificationPublisher(ABC):
    """
    Publishes lightweight change notifications for UI and notification collaborators.

    Notifications are signals carrying identifiers; subscribers fetch the actual data through
    the read API. Implementations must never raise: failures are logged and reported as zero
    deliveries.
    """

    @abstractmethod
    async def publish(
        self,
        event_type: NotificationEventType,
        tenant_id: int,
        data: dict[str, Any],
    ) -> int:
        """
        Publish one notification.

        Returns:
            Number of subscribers that received it (0 on failure)
        """

    async def close(self) -> None:
        return None
