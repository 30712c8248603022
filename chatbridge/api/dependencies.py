"""
Dependency injection for API routes.

Services are built once in the app lifespan and stored on ``app.state.services``; these
functions hand them to route handlers.
"""

from fastapi import Request

from chatbridge.services.container import ServiceContainer
from chatbridge.services.conversation_service import ConversationService
from chatbridge.services.outbound_service import OutboundService
from chatbridge.services.read_service import ConversationReadService
from chatbridge.services.sync_service import SyncService
from chatbridge.services.webhook_service import WebhookService
from chatbridge.services.widget_service import WidgetService


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services are not initialized; is the app lifespan running?")
    return services


async def get_outbound_service(request: Request) -> OutboundService:
    return get_services(request).outbound


async def get_read_service(request: Request) -> ConversationReadService:
    return get_services(request).reads


async def get_conversation_service(request: Request) -> ConversationService:
    return get_services(request).conversations


async def get_webhook_service(request: Request) -> WebhookService:
    return get_services(request).webhooks


async def get_widget_service(request: Request) -> WidgetService:
    return get_services(request).widget


async def get_sync_service(request: Request) -> SyncService:
    return get_services(request).sync
