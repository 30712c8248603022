"""
Last-resort error handling middleware.

Typed errors are answered by the exception handlers in ``chatbridge.api.errors``; this catches
everything else. Webhook paths are acknowledged with 200 so providers do not retry a delivery
that already passed authentication.
"""

import time
import traceback
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from chatbridge.core.config.settings import settings
from chatbridge.core.logging.logger import get_logger

logger = get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path}: {exc}",
                exc_info=True,
            )
            if request.url.path.startswith("/webhooks/"):
                return self._webhook_response(exc)
            return self._api_response(exc)

    def _webhook_response(self, exc: Exception) -> JSONResponse:
        content: dict[str, Any] = {"status": "error", "type": "webhook_error"}
        if settings.is_development:
            content["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        return JSONResponse(status_code=200, content=content)

    def _api_response(self, exc: Exception) -> JSONResponse:
        content: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            content["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=content)
