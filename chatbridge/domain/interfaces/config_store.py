"""Interface to the external provider configuration store."""

from datetime import datetime
from typing import Protocol

from chatbridge.domain.models import ProviderConfig


class ProviderConfigStore(Protocol):
    """
    Supplies decrypted per-tenant provider configuration.

    Owned by the tenant-configuration collaborator; this core only reads configs and records
    when a webhook event last arrived.
    """

    async def get_active(
        self, tenant_id: int, provider: str | None = None
    ) -> ProviderConfig | None:
        """Return the tenant's active config, optionally restricted to one provider."""
        ...

    async def touch_last_event(
        self, tenant_id: int, provider: str, at: datetime
    ) -> None:
        """Record the time of the most recent webhook event."""
        ...
