"""
Tenant context middleware.

Pulls the tenant id out of the request path and stores it in the logging context so every log
line of the request carries ``[T:<tenant>]``.

Path patterns:
- /api/tenants/{tenant_id}/...
- /widget/{tenant_id}/...
- /webhooks/{provider}/{tenant_id}/{token}
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from chatbridge.core.logging.context import clear_request_context, set_request_context


def tenant_from_path(path: str) -> str | None:
    parts = path.strip("/").split("/")
    candidate = None
    if len(parts) >= 3 and parts[0] == "api" and parts[1] == "tenants":
        candidate = parts[2]
    elif len(parts) >= 2 and parts[0] == "widget":
        candidate = parts[1]
    elif len(parts) >= 3 and parts[0] == "webhooks":
        candidate = parts[2]
    return candidate if candidate and candidate.isdigit() else None


class TenantContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        tenant_id = tenant_from_path(request.url.path)
        if tenant_id is not None:
            set_request_context(tenant_id=tenant_id)
        try:
            return await call_next(request)
        finally:
            clear_request_context()
