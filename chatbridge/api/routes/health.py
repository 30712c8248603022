"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from chatbridge.core.config.settings import settings
from chatbridge.core.logging.logger import get_api_logger

logger = get_api_logger()
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Liveness: the process is up and configuration loaded."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "version": settings.version,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> dict[str, Any]:
    """Readiness: database connectivity and the active cache backend."""
    start_time = time.time()
    database = getattr(request.app.state, "database", None)
    services = getattr(request.app.state, "services", None)

    db_healthy = await database.health_check() if database is not None else False
    db_info = await database.get_connection_info() if database is not None else {}
    db_info.pop("error", None)

    detailed = {
        "status": "healthy" if db_healthy else "degraded",
        "timestamp": time.time(),
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
        "application": {
            "name": "chatbridge",
            "version": settings.version,
            "environment": settings.environment,
        },
        "database": {"healthy": db_healthy, **db_info},
        "cache": {
            "backend": type(services.cache.cache).__name__ if services else None,
            "redis_configured": settings.has_redis,
        },
        "background_tasks": len(services.tasks) if services else 0,
    }
    if not db_healthy:
        logger.warning("Detailed health check: database unavailable")
    return detailed
