"""
Request context management using contextvars for automatic propagation.

The tenant and the customer address are set once per request (by the tenant middleware or the
webhook service) and picked up by every ContextLogger call made inside that request.
"""

from contextvars import ContextVar

_tenant_context: ContextVar[str | None] = ContextVar(
    "tenant_id", default=None
)  # From the URL path
_user_context: ContextVar[str | None] = ContextVar(
    "user_id", default=None
)  # Customer address or widget session


def set_request_context(
    tenant_id: str | int | None = None,
    user_id: str | None = None,
) -> None:
    """
    Set the request context for the current async context.

    Args:
        tenant_id: Tenant identifier taken from the request path
        user_id: Customer address (phone) or widget session id
    """
    if tenant_id is not None:
        _tenant_context.set(str(tenant_id))
    if user_id is not None:
        _user_context.set(user_id)


def get_current_tenant_context() -> str | None:
    """
    Get the current tenant ID from context variables.

    Returns:
        Current tenant ID, or None if not set
    """
    return _tenant_context.get()


def get_current_user_context() -> str | None:
    """
    Get the current user ID from context variables.

    Returns:
        Current customer address or session id, or None if not set
    """
    return _user_context.get()


def clear_request_context() -> None:
    """
    Clear the request context.

    Context is isolated per request already; this is mostly useful in tests.
    """
    _tenant_context.set(None)
    _user_context.set(None)

