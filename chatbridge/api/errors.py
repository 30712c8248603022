"""
Exception handlers mapping errors to ``{"detail", "type"}`` JSON bodies.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.errors import AuthError, ChatBridgeError, ProviderError

logger = get_logger(__name__)


async def chatbridge_error_handler(request: Request, exc: ChatBridgeError) -> JSONResponse:
    if isinstance(exc, ProviderError) or exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")
    elif not isinstance(exc, AuthError):
        logger.info(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.error_code},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "type": "validation_error", "errors": errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatBridgeError, chatbridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
