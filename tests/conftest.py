"""
Pytest configuration and common fixtures for chatbridge tests.

Every test gets its own SQLite database, in-memory cache and publisher, and a provider registry
backed by ``FakeBackend`` so no HTTP call ever leaves the process.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from chatbridge.core.app_factory import create_app
from chatbridge.core.config.settings import settings
from chatbridge.database.manager import DatabaseManager
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.factories.provider_factory import normalize_provider_name
from chatbridge.domain.interfaces.provider_interface import IProviderClient
from chatbridge.domain.models import (
    ConnectionTestResult,
    CustomerProfile,
    InboundEvent,
    NormalizedConversation,
    NormalizedMessage,
    OutboundMessage,
    ProviderConfig,
    ProviderSendResult,
)
from chatbridge.persistence.memory_cache import MemoryCache
from chatbridge.persistence.notifications import InMemoryNotificationPublisher
from chatbridge.providers.greenapi import decoder as greenapi_decoder
from chatbridge.providers.twilio import decoder as twilio_decoder
from chatbridge.services.config_store import DatabaseProviderConfigStore
from chatbridge.services.container import ServiceContainer, build_services

TENANT_ID = 42
BUSINESS_ADDRESS = "+18095550000"
WEBHOOK_TOKEN = "hook-token"


class FakeBackend:
    """State shared by every fake client the factory builds during one test."""

    def __init__(self):
        self.sent: list[OutboundMessage] = []
        self.read_receipts: list[tuple[str, str | None]] = []
        self.fail_with: Exception | None = None
        self.delay: float = 0.0
        self.conversations: list[NormalizedConversation] = []
        self.history: dict[str, list[NormalizedMessage]] = {}
        self.profiles: dict[str, CustomerProfile] = {}
        self._counter = 0

    def next_id(self) -> str:
        self._counter += 1
        return f"FAKE{self._counter:04d}"


class FakeProvider(IProviderClient):
    """Records sends instead of calling a provider; webhooks use the real decoders."""

    def __init__(self, config: ProviderConfig, backend: FakeBackend):
        super().__init__(config)
        self.backend = backend

    @property
    def provider_name(self) -> str:
        return normalize_provider_name(self._config.provider).value

    def to_native_address(self, address: str) -> str:
        return address

    async def send_message(self, message: OutboundMessage) -> ProviderSendResult:
        if self.backend.delay:
            await asyncio.sleep(self.backend.delay)
        if self.backend.fail_with is not None:
            raise self.backend.fail_with
        self.backend.sent.append(message)
        return ProviderSendResult(external_id=self.backend.next_id())

    async def list_conversations(self, limit: int = 100) -> list[NormalizedConversation]:
        return self.backend.conversations[:limit]

    async def list_messages(
        self, customer_address: str, limit: int = 50
    ) -> list[NormalizedMessage]:
        return self.backend.history.get(customer_address, [])[-limit:]

    async def mark_read(self, customer_address: str, external_id: str | None = None) -> bool:
        self.backend.read_receipts.append((customer_address, external_id))
        return True

    async def test_connection(self, test_address: str | None = None) -> ConnectionTestResult:
        return ConnectionTestResult(
            success=True, provider=self.provider_name, state="authorized"
        )

    def decode_webhook(self, payload: dict[str, Any]) -> InboundEvent:
        if self.provider_name == ProviderName.GREENAPI.value:
            return greenapi_decoder.decode_webhook(payload, self._config.business_address)
        return twilio_decoder.decode_webhook(payload)


class FakeSyncableProvider(FakeProvider):
    async def refresh_chats(self, limit: int = 1000) -> list[NormalizedConversation]:
        return self.backend.conversations[:limit]

    async def enrich_contact(self, customer_address: str) -> CustomerProfile | None:
        return self.backend.profiles.get(customer_address)

    async def fetch_history(
        self, customer_address: str, limit: int = 100
    ) -> list[NormalizedMessage]:
        return self.backend.history.get(customer_address, [])[-limit:]


def make_config(provider: str = "greenapi", **overrides: Any) -> ProviderConfig:
    data: dict[str, Any] = {
        "tenant_id": TENANT_ID,
        "provider": provider,
        "business_address": BUSINESS_ADDRESS,
        "credentials": {"instance_id": "1101", "api_token": "secret-token"},
        "webhook_token": WEBHOOK_TOKEN,
        "default_country_code": "1",
    }
    data.update(overrides)
    return ProviderConfig(**data)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """A fresh SQLite database per test."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'chatbridge_test.db'}")
    await manager.initialize()
    yield manager
    await manager.dispose()


@pytest.fixture
def publisher() -> InMemoryNotificationPublisher:
    return InMemoryNotificationPublisher()


@pytest.fixture
async def cache() -> AsyncGenerator[MemoryCache, None]:
    memory_cache = MemoryCache()
    yield memory_cache
    await memory_cache.close()


@pytest.fixture
async def services(
    database: DatabaseManager,
    backend: FakeBackend,
    cache: MemoryCache,
    publisher: InMemoryNotificationPublisher,
) -> AsyncGenerator[ServiceContainer, None]:
    registry = {
        ProviderName.GREENAPI: lambda config, session: FakeSyncableProvider(config, backend),
        ProviderName.TWILIO: lambda config, session: FakeProvider(config, backend),
    }
    container = build_services(
        settings,
        database.session_factory,
        MagicMock(),
        cache,
        publisher,
        registry=registry,
    )
    yield container
    await container.tasks.drain(timeout=5)


@pytest.fixture
def config_store(services: ServiceContainer) -> DatabaseProviderConfigStore:
    return services.config_store


@pytest.fixture
async def greenapi_tenant(config_store: DatabaseProviderConfigStore) -> ProviderConfig:
    return await config_store.save(make_config("greenapi"))


@pytest.fixture
async def twilio_tenant(config_store: DatabaseProviderConfigStore) -> ProviderConfig:
    return await config_store.save(
        make_config(
            "twilio",
            credentials={"account_sid": "AC123", "auth_token": "twilio-secret"},
        )
    )


@pytest.fixture
async def api_client(services: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the real app, with the test services in place of the lifespan."""
    app = create_app()
    app.state.services = services
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
