"""
Twilio REST client for the WhatsApp channel.

Uses HTTP basic auth (account SID / auth token) and form-encoded bodies against the
2010-04-01 API, over the injected aiohttp session.
"""

import base64
from typing import Any

import aiohttp

from chatbridge.core.config.settings import settings
from chatbridge.core.logging.logger import ContextLogger, get_logger
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.errors import ProviderError


class TwilioClient:
    """Async wrapper over the Twilio Messages and Accounts resources."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        account_sid: str,
        auth_token: str,
        base_url: str | None = None,
        logger: ContextLogger | None = None,
    ):
        self.session = session
        self.account_sid = account_sid
        credentials = base64.b64encode(f"{account_sid}:{auth_token}".encode()).decode("ascii")
        self.headers = {"Authorization": f"Basic {credentials}"}
        self.base_url = (base_url or settings.twilio_base_url).rstrip("/")
        self.logger = logger or get_logger(__name__)

    def account_url(self, resource: str = "") -> str:
        suffix = f"/{resource}" if resource else ""
        return f"{self.base_url}/Accounts/{self.account_sid}{suffix}.json"

    async def request(
        self,
        method: str,
        url: str,
        data: list[tuple[str, str]] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and decode the JSON body.

        Raises:
            ProviderError: For HTTP errors (Twilio error code included) and transport failures
        """
        self.logger.debug(f"Twilio {method} {url} params={params}")
        try:
            async with self.session.request(
                method, url, data=data, params=params, headers=self.headers
            ) as response:
                if response.status >= 400:
                    try:
                        error = await response.json(content_type=None)
                    except ValueError:
                        error = {"message": await response.text()}
                    self.logger.error(
                        f"Twilio {method} {url} failed: {response.status} - "
                        f"code={error.get('code')} {error.get('message')}"
                    )
                    raise ProviderError(
                        f"Twilio rejected the request: {error.get('message', response.status)}",
                        provider_name=ProviderName.TWILIO.value,
                        provider_status=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as err:
                    body = await response.text()
                    self.logger.error(
                        f"Twilio {method} {url} returned a non-JSON body: {body[:200]}"
                    )
                    raise ProviderError(
                        "Twilio returned an unreadable response",
                        provider_name=ProviderName.TWILIO.value,
                        provider_status=response.status,
                    ) from err

        except aiohttp.ClientError as err:
            self.logger.error(f"Twilio transport error: {err}")
            raise ProviderError(
                f"Twilio request failed: {err}", provider_name=ProviderName.TWILIO.value
            ) from err

    async def create_message(
        self,
        from_: str,
        to: str,
        body: str | None = None,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        form: list[tuple[str, str]] = [("From", from_), ("To", to)]
        if body:
            form.append(("Body", body))
        if media_url:
            form.append(("MediaUrl", media_url))
        return await self.request("POST", self.account_url("Messages"), data=form)

    async def list_messages(
        self,
        to: str | None = None,
        from_: str | None = None,
        page_size: int = 50,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"PageSize": page_size}
        if to:
            params["To"] = to
        if from_:
            params["From"] = from_
        data = await self.request("GET", self.account_url("Messages"), params=params)
        return data.get("messages", []) if isinstance(data, dict) else []

    async def fetch_account(self) -> dict[str, Any]:
        return await self.request("GET", self.account_url())
