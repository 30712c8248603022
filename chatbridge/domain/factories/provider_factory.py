"""
Provider factory for creating tenant-bound IProviderClient implementations.

Strategy Pattern over the registered providers: the tenant's stored provider name selects the
client class, and the shared HTTP session is injected into it.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.errors import ConfigurationError, UnknownProviderError
from chatbridge.domain.interfaces.config_store import ProviderConfigStore
from chatbridge.domain.interfaces.provider_interface import IProviderClient
from chatbridge.domain.models import ProviderConfig
from chatbridge.providers.greenapi.provider import GreenApiProvider
from chatbridge.providers.twilio.provider import TwilioProvider

if TYPE_CHECKING:
    import aiohttp

ProviderBuilder = Callable[[ProviderConfig, "aiohttp.ClientSession"], IProviderClient]

_REGISTRY: dict[ProviderName, ProviderBuilder] = {
    ProviderName.GREENAPI: GreenApiProvider,
    ProviderName.TWILIO: TwilioProvider,
}


def provider_key(name: str | None) -> str:
    """Comparison key for stored provider names: lowercase alphanumerics only."""
    return "".join(ch for ch in (name or "").lower() if ch.isalnum())


def normalize_provider_name(name: str | None) -> ProviderName:
    """
    Map a stored provider name to a ProviderName.

    Case, whitespace, dashes and underscores are ignored, so "GreenAPI", "green-api" and
    "Green Api" all resolve to ``ProviderName.GREENAPI``.

    Raises:
        UnknownProviderError: If the name matches no registered provider
    """
    key = provider_key(name)
    for provider in ProviderName:
        if provider.value == key:
            return provider
    raise UnknownProviderError(name, [p.value for p in _REGISTRY])


class ProviderFactory:
    """
    Factory for creating provider clients per tenant.

    Clients are cheap wrappers around the shared session, so nothing is cached: each call
    reflects the tenant's current configuration and a failed resolution leaves no state behind.
    """

    def __init__(
        self,
        config_store: ProviderConfigStore,
        http_session: "aiohttp.ClientSession",
        registry: dict[ProviderName, ProviderBuilder] | None = None,
    ):
        """
        Initialize the provider factory.

        Args:
            config_store: Source of decrypted per-tenant provider configuration
            http_session: Shared HTTP session for connection pooling
            registry: Provider builders, defaults to every built-in provider
        """
        self._config_store = config_store
        self._http_session = http_session
        self._registry = dict(registry or _REGISTRY)
        self.logger = get_logger(__name__)

    async def resolve(self, tenant_id: int) -> IProviderClient:
        """
        Resolve the provider client for a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            IProviderClient bound to the tenant's active configuration

        Raises:
            ConfigurationError: If the tenant has no active configuration
            UnknownProviderError: If the stored provider name is not supported
        """
        config = await self._config_store.get_active(tenant_id)
        if config is None:
            raise ConfigurationError(
                f"No active messaging provider configured for tenant {tenant_id}"
            )
        return self.create(config)

    def create(self, config: ProviderConfig) -> IProviderClient:
        """Instantiate the client for an already-loaded configuration."""
        provider = normalize_provider_name(config.provider)
        builder = self._registry.get(provider)
        if builder is None:
            raise UnknownProviderError(config.provider, self.get_supported_providers())

        client = builder(config, self._http_session)
        self.logger.debug(
            f"Resolved provider {provider.value} for tenant {config.tenant_id}"
        )
        return client

    def get_supported_providers(self) -> list[str]:
        return [provider.value for provider in self._registry]

    def is_provider_supported(self, name: str) -> bool:
        try:
            return normalize_provider_name(name) in self._registry
        except UnknownProviderError:
            return False
