"""
Service wiring.

Builds every service from the shared infrastructure (session factory, HTTP session, cache,
publisher). The app factory builds one container per process; tests build their own with fakes.
"""

from dataclasses import dataclass

import aiohttp

from chatbridge.core.config.settings import Settings
from chatbridge.database.adapter import SessionFactory
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.factories.provider_factory import ProviderBuilder, ProviderFactory
from chatbridge.domain.interfaces.cache_interface import ICache
from chatbridge.domain.interfaces.config_store import ProviderConfigStore
from chatbridge.domain.interfaces.notification_interface import INotificationPublisher
from chatbridge.services.background import BackgroundTasks
from chatbridge.services.cache_service import ConversationCacheService
from chatbridge.services.config_store import DatabaseProviderConfigStore
from chatbridge.services.conversation_service import ConversationService
from chatbridge.services.conversation_store import ConversationStore
from chatbridge.services.outbound_service import OutboundService
from chatbridge.services.rate_limiter import RateLimiter
from chatbridge.services.read_service import ConversationReadService
from chatbridge.services.sync_service import SyncService
from chatbridge.services.webhook_service import WebhookService
from chatbridge.services.widget_service import WidgetService


@dataclass
class ServiceContainer:
    config_store: ProviderConfigStore
    factory: ProviderFactory
    store: ConversationStore
    cache: ConversationCacheService
    publisher: INotificationPublisher
    rate_limiter: RateLimiter
    tasks: BackgroundTasks
    outbound: OutboundService
    reads: ConversationReadService
    conversations: ConversationService
    webhooks: WebhookService
    widget: WidgetService
    sync: SyncService


def build_services(
    config: Settings,
    session_factory: SessionFactory,
    http_session: aiohttp.ClientSession,
    cache: ICache,
    publisher: INotificationPublisher,
    config_store: ProviderConfigStore | None = None,
    registry: dict[ProviderName, ProviderBuilder] | None = None,
    rate_limiter: RateLimiter | None = None,
) -> ServiceContainer:
    config_store = config_store or DatabaseProviderConfigStore(session_factory)
    factory = ProviderFactory(config_store, http_session, registry=registry)
    store = ConversationStore(session_factory)
    cache_service = ConversationCacheService(
        cache,
        conversation_ttl=config.conversation_cache_ttl,
        message_ttl=config.message_cache_ttl,
    )
    rate_limiter = rate_limiter or RateLimiter()
    tasks = BackgroundTasks()

    outbound = OutboundService(
        config_store,
        factory,
        store,
        rate_limiter,
        cache_service,
        publisher,
        provider_timeout=config.provider_timeout_seconds,
    )
    return ServiceContainer(
        config_store=config_store,
        factory=factory,
        store=store,
        cache=cache_service,
        publisher=publisher,
        rate_limiter=rate_limiter,
        tasks=tasks,
        outbound=outbound,
        reads=ConversationReadService(
            store,
            cache_service,
            factory,
            tasks,
            refresh_timeout=config.provider_timeout_seconds,
        ),
        conversations=ConversationService(store, outbound, cache_service, publisher),
        webhooks=WebhookService(config_store, factory, store, cache_service, publisher),
        widget=WidgetService(
            store,
            cache_service,
            publisher,
            dedup_window_seconds=config.widget_dedup_window_seconds,
        ),
        sync=SyncService(
            outbound,
            store,
            cache_service,
            publisher,
            timeout=config.http_total_timeout_seconds,
        ),
    )
