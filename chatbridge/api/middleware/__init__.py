from .error_handler import ErrorHandlerMiddleware
from .tenant_context import TenantContextMiddleware

__all__ = ["ErrorHandlerMiddleware", "TenantContextMiddleware"]
