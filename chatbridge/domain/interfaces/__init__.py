"""Domain interfaces implemented by providers, caches and stores."""

from .cache_interface import ICache
from .config_store import ProviderConfigStore
from .notification_interface import INotificationPublisher, NotificationEventType
from .provider_interface import IProviderClient, SyncableProvider

__all__ = [
    "ICache",
    "INotificationPublisher",
    "IProviderClient",
    "NotificationEventType",
    "ProviderConfigStore",
    "SyncableProvider",
]
