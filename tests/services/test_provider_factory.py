"""Tests for provider resolution."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from chatbridge.domain.enums import ProviderName
from chatbridge.domain.errors import ConfigurationError, UnknownProviderError
from chatbridge.domain.factories.provider_factory import (
    ProviderFactory,
    normalize_provider_name,
    provider_key,
)
from chatbridge.providers.greenapi.provider import GreenApiProvider
from chatbridge.providers.twilio.provider import TwilioProvider
from tests.conftest import make_config


def store_returning(config):
    store = MagicMock()
    store.get_active = AsyncMock(return_value=config)
    return store


class TestNormalizeProviderName:
    @pytest.mark.parametrize("name", ["greenapi", "GreenAPI", "green-api", " Green_Api "])
    def test_greenapi_spellings(self, name):
        assert normalize_provider_name(name) == ProviderName.GREENAPI

    def test_twilio(self):
        assert normalize_provider_name("Twilio") == ProviderName.TWILIO

    def test_provider_key_ignores_spelling(self):
        assert provider_key("Green-API") == provider_key("greenapi") == "greenapi"

    @pytest.mark.parametrize("name", ["messagebird", "", None])
    def test_unknown_names(self, name):
        with pytest.raises(UnknownProviderError):
            normalize_provider_name(name)


class TestProviderFactory:
    async def test_resolves_greenapi(self):
        factory = ProviderFactory(store_returning(make_config("GreenAPI")), MagicMock())

        client = await factory.resolve(42)

        assert isinstance(client, GreenApiProvider)
        assert client.tenant_id == 42
        assert client.provider_name == "greenapi"

    async def test_resolves_twilio(self):
        config = make_config(
            "twilio", credentials={"account_sid": "AC1", "auth_token": "t"}
        )
        factory = ProviderFactory(store_returning(config), MagicMock())

        assert isinstance(await factory.resolve(42), TwilioProvider)

    async def test_unknown_provider_fails_without_state(self):
        store = store_returning(make_config("messagebird"))
        session = MagicMock()
        factory = ProviderFactory(store, session)

        with pytest.raises(UnknownProviderError) as exc_info:
            await factory.resolve(42)

        assert "greenapi" in exc_info.value.message
        assert session.mock_calls == []

    async def test_missing_configuration(self):
        factory = ProviderFactory(store_returning(None), MagicMock())

        with pytest.raises(ConfigurationError):
            await factory.resolve(7)

    async def test_missing_credentials(self):
        factory = ProviderFactory(
            store_returning(make_config("greenapi", credentials={})), MagicMock()
        )

        with pytest.raises(ConfigurationError):
            await factory.resolve(42)

    def test_supported_providers(self):
        factory = ProviderFactory(store_returning(None), MagicMock())

        assert factory.get_supported_providers() == ["greenapi", "twilio"]
        assert factory.is_provider_supported("Green API")
        assert not factory.is_provider_supported("telegram")

    async def test_config_view_hides_secrets(self):
        factory = ProviderFactory(store_returning(make_config("greenapi")), MagicMock())

        view = (await factory.resolve(42)).get_config()

        dumped = view.model_dump()
        assert "secret-token" not in str(dumped)
        assert sorted(view.credential_keys) == ["api_token", "instance_id"]
