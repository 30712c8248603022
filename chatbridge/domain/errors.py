"""
Error taxonomy for the messaging core.

Every error carries a stable ``error_code`` (returned to API callers as ``type``) and the HTTP
status it maps to. Routes let these propagate; the exception handler in ``chatbridge.api`` turns
them into JSON responses.
"""


class ChatBridgeError(Exception):
    """Base exception for messaging-core errors."""

    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class ValidationError(ChatBridgeError):
    """Malformed address or missing field. Caller's fault, never retried internally."""

    error_code = "validation_error"
    status_code = 400


class InvalidAddressError(ValidationError):
    error_code = "invalid_address"

    def __init__(self, address: str | None, reason: str = "invalid phone number"):
        self.address = address
        super().__init__(f"Invalid address '{address}': {reason}")


class BlacklistedError(ValidationError):
    error_code = "blacklisted"

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address {address} is blacklisted for this tenant")


class ConfigurationError(ChatBridgeError):
    """No active provider configuration for the tenant. Surfaced as not-found."""

    error_code = "not_configured"
    status_code = 404


class UnknownProviderError(ConfigurationError):
    error_code = "unknown_provider"

    def __init__(self, provider_name: str | None, supported: list[str] | None = None):
        self.provider_name = provider_name
        available = ", ".join(supported or [])
        super().__init__(
            f"Unknown provider: {provider_name!r}. Available providers: {available}"
        )


class CapabilityNotSupportedError(ChatBridgeError):
    """The tenant's provider does not implement an optional capability."""

    error_code = "capability_not_supported"
    status_code = 400

    def __init__(self, provider_name: str, capability: str):
        self.provider_name = provider_name
        self.capability = capability
        super().__init__(f"Provider '{provider_name}' does not support {capability}")


class NotFoundError(ChatBridgeError):
    error_code = "not_found"
    status_code = 404


class AuthError(ChatBridgeError):
    """Webhook token or header mismatch."""

    error_code = "unauthorized"
    status_code = 401

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message, "unauthorized" if status_code == 401 else "forbidden")


class ProviderError(ChatBridgeError):
    """Third-party timeout, transport failure or rejection."""

    error_code = "provider_rejected"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider_name: str | None = None,
        provider_status: int | None = None,
    ):
        self.provider_name = provider_name
        self.provider_status = provider_status
        super().__init__(message)


class RateLimitError(ChatBridgeError):
    """Tenant exceeded its outbound window. Callers must back off, not retry."""

    error_code = "rate_limited"
    status_code = 429

    def __init__(self, tenant_id: int, limit: int, window_minutes: float):
        self.tenant_id = tenant_id
        self.limit = limit
        self.window_minutes = window_minutes
        super().__init__(
            f"Rate limit exceeded: {limit} messages per {window_minutes:g} minute(s)"
        )
