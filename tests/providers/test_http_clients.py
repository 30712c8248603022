"""Tests for the GreenAPI and Twilio HTTP clients over a stubbed aiohttp session."""

import base64
import json
from contextlib import asynccontextmanager

import pytest

from chatbridge.domain.errors import ProviderError
from chatbridge.providers.greenapi.client import GreenApiClient
from chatbridge.providers.twilio.client import TwilioClient


class StubResponse:
    def __init__(self, status: int, body: str):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        return json.loads(self._body)

    async def text(self):
        return self._body


class StubSession:
    """Answers every request with the same response and records the calls."""

    def __init__(self, response: StubResponse):
        self.response = response
        self.calls: list[tuple[str, str, dict]] = []

    @asynccontextmanager
    async def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        yield self.response


def greenapi_client(response: StubResponse) -> tuple[GreenApiClient, StubSession]:
    session = StubSession(response)
    client = GreenApiClient(
        session=session,
        instance_id="1101",
        api_token="tok",
        base_url="https://greenapi.test",
    )
    return client, session


def twilio_client(response: StubResponse) -> tuple[TwilioClient, StubSession]:
    session = StubSession(response)
    client = TwilioClient(
        session=session,
        account_sid="AC123",
        auth_token="twilio-secret",
        base_url="https://twilio.test/2010-04-01",
    )
    return client, session


class TestGreenApiClient:
    async def test_send_message(self):
        client, session = greenapi_client(StubResponse(200, '{"idMessage": "BAE5"}'))

        result = await client.send_message("18095551234@c.us", "hello")

        assert result == {"idMessage": "BAE5"}
        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert url == "https://greenapi.test/waInstance1101/sendMessage/tok"
        assert kwargs["json"] == {"chatId": "18095551234@c.us", "message": "hello"}

    async def test_http_error_is_provider_error(self):
        client, _ = greenapi_client(StubResponse(401, "Unauthorized"))

        with pytest.raises(ProviderError) as exc_info:
            await client.send_message("18095551234@c.us", "hello")
        assert exc_info.value.provider_status == 401

    async def test_non_json_success_body_is_provider_error(self):
        client, _ = greenapi_client(StubResponse(200, "<html>bad gateway</html>"))

        with pytest.raises(ProviderError) as exc_info:
            await client.send_message("18095551234@c.us", "hello")
        assert exc_info.value.error_code == "provider_rejected"
        assert exc_info.value.status_code == 502


class TestTwilioClient:
    async def test_basic_auth_header(self):
        client, session = twilio_client(StubResponse(201, '{"sid": "SM1"}'))

        await client.create_message(from_="whatsapp:+1", to="whatsapp:+2", body="hi")

        method, url, kwargs = session.calls[0]
        expected = base64.b64encode(b"AC123:twilio-secret").decode("ascii")
        assert method == "POST"
        assert url == "https://twilio.test/2010-04-01/Accounts/AC123/Messages.json"
        assert kwargs["headers"]["Authorization"] == f"Basic {expected}"
        assert ("Body", "hi") in kwargs["data"]

    async def test_error_body_is_provider_error(self):
        client, _ = twilio_client(
            StubResponse(400, '{"code": 21211, "message": "Invalid To number"}')
        )

        with pytest.raises(ProviderError) as exc_info:
            await client.create_message(from_="whatsapp:+1", to="whatsapp:+2", body="hi")
        assert "Invalid To number" in exc_info.value.message

    async def test_non_json_success_body_is_provider_error(self):
        client, _ = twilio_client(StubResponse(200, "<html>bad gateway</html>"))

        with pytest.raises(ProviderError) as exc_info:
            await client.create_message(from_="whatsapp:+1", to="whatsapp:+2", body="hi")
        assert exc_info.value.provider_status == 200
