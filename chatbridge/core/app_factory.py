"""
FastAPI application factory.

Startup order: logging, HTTP session, database, cache and publisher, services. Shutdown runs
in reverse and first waits for in-flight background refreshes.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp
from fastapi import FastAPI

from chatbridge.api.errors import register_exception_handlers
from chatbridge.api.middleware.error_handler import ErrorHandlerMiddleware
from chatbridge.api.middleware.tenant_context import TenantContextMiddleware
from chatbridge.api.routes import conversations, health, messages, provider, webhooks, widget
from chatbridge.core.config.settings import Settings, settings
from chatbridge.core.logging.logger import get_app_logger, setup_app_logging
from chatbridge.database.manager import DatabaseManager
from chatbridge.persistence.cache_factory import create_cache, create_publisher
from chatbridge.persistence.redis_client import RedisClient
from chatbridge.services.container import build_services

SHUTDOWN_DRAIN_SECONDS = 10.0


def create_http_session(config: Settings) -> aiohttp.ClientSession:
    """Shared session for every provider call, with pooled keep-alive connections."""
    connector = aiohttp.TCPConnector(
        limit=100,
        keepalive_timeout=30,
        enable_cleanup_closed=True,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=config.http_total_timeout_seconds),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_app_logging()
    logger = get_app_logger()
    logger.info(f"🚀 Starting chatbridge v{settings.version} ({settings.environment})")

    http_session = create_http_session(settings)
    database = DatabaseManager(settings.database_url, echo=settings.database_echo)
    cache = create_cache(settings)
    publisher = create_publisher(settings)
    try:
        await database.initialize()
        services = build_services(
            settings, database.session_factory, http_session, cache, publisher
        )
        app.state.http_session = http_session
        app.state.database = database
        app.state.services = services
        logger.info(f"✅ Ready - providers: {services.factory.get_supported_providers()}")

        yield

    finally:
        logger.info("🛑 Shutting down chatbridge...")
        services = getattr(app.state, "services", None)
        if services is not None:
            await services.tasks.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await cache.close()
        await publisher.close()
        await RedisClient.close()
        await http_session.close()
        await database.dispose()
        logger.info("✅ Shutdown completed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="chatbridge",
        description="Multi-provider chat messaging integration layer",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Last added runs outermost
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(TenantContextMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(messages.router)
    app.include_router(conversations.router)
    app.include_router(provider.router)
    app.include_router(widget.router)
    return app
