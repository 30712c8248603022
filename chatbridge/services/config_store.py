"""
Database-backed provider configuration store.

Rows in ``provider_configs`` already hold decrypted credentials; encryption at rest belongs to
the tenant-configuration collaborator that writes them.
"""

from datetime import datetime

from sqlmodel import select

from chatbridge.core.logging.logger import get_logger
from chatbridge.database.adapter import SessionFactory
from chatbridge.database.models import ProviderConfigRecord, utc_now
from chatbridge.domain.factories.provider_factory import provider_key
from chatbridge.domain.models import ProviderConfig

logger = get_logger(__name__)

_CONFIG_FIELDS = (
    "is_active",
    "business_address",
    "credentials",
    "webhook_token",
    "webhook_secret",
    "header_name",
    "header_value_template",
    "rate_limit_enabled",
    "rate_limit_window_minutes",
    "rate_limit_max_messages",
    "default_country_code",
)


def _to_config(record: ProviderConfigRecord) -> ProviderConfig:
    return ProviderConfig(
        tenant_id=record.tenant_id,
        provider=record.provider,
        last_webhook_event_at=record.last_webhook_event_at,
        **{field: getattr(record, field) for field in _CONFIG_FIELDS},
    )


class DatabaseProviderConfigStore:
    """ProviderConfigStore over the ``provider_configs`` table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def get_active(
        self, tenant_id: int, provider: str | None = None
    ) -> ProviderConfig | None:
        """
        Most recently updated active config for the tenant.

        ``provider`` is compared after normalization, so a row stored as "GreenAPI" matches
        "greenapi" and "green-api".
        """
        async with self._session_factory() as session:
            records = (
                await session.exec(
                    select(ProviderConfigRecord)
                    .where(
                        ProviderConfigRecord.tenant_id == tenant_id,
                        ProviderConfigRecord.is_active.is_(True),
                    )
                    .order_by(ProviderConfigRecord.updated_at.desc())
                )
            ).all()
            for record in records:
                if provider is None or provider_key(record.provider) == provider_key(provider):
                    return _to_config(record)
            return None

    async def touch_last_event(self, tenant_id: int, provider: str, at: datetime) -> None:
        async with self._session_factory() as session:
            records = (
                await session.exec(
                    select(ProviderConfigRecord).where(
                        ProviderConfigRecord.tenant_id == tenant_id
                    )
                )
            ).all()
            for record in records:
                if provider_key(record.provider) == provider_key(provider):
                    record.last_webhook_event_at = at
                    session.add(record)

    async def save(self, config: ProviderConfig) -> ProviderConfig:
        """Insert or replace the row for (tenant, provider). Used by the CLI and tests."""
        async with self._session_factory() as session:
            record = (
                await session.exec(
                    select(ProviderConfigRecord).where(
                        ProviderConfigRecord.tenant_id == config.tenant_id,
                        ProviderConfigRecord.provider == config.provider,
                    )
                )
            ).first()
            if record is None:
                record = ProviderConfigRecord(
                    tenant_id=config.tenant_id, provider=config.provider
                )
            for field in _CONFIG_FIELDS:
                setattr(record, field, getattr(config, field))
            record.updated_at = utc_now()
            session.add(record)
            await session.flush()
            logger.info(
                f"Saved {config.provider} configuration for tenant {config.tenant_id}"
            )
            return _to_config(record)
