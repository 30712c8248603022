"""
GreenAPI HTTP client.

Key Design Decisions:
- Pure dependency injection of the aiohttp session (owned by the app lifespan)
- Every GreenAPI method lives at ``/waInstance{id}/{method}/{token}``
- HTTP and transport failures are logged and re-raised as ProviderError
"""

from typing import Any

import aiohttp

from chatbridge.core.config.settings import settings
from chatbridge.core.logging.logger import ContextLogger, get_logger
from chatbridge.domain.enums import ProviderName
from chatbridge.domain.errors import ProviderError


class GreenApiUrlBuilder:
    """Builds URLs for GreenAPI instance methods."""

    def __init__(self, base_url: str, instance_id: str, api_token: str):
        self.base_url = base_url.rstrip("/")
        self.instance_id = instance_id
        self.api_token = api_token

    def method_url(self, method: str) -> str:
        return f"{self.base_url}/waInstance{self.instance_id}/{method}/{self.api_token}"

    def redacted(self, method: str) -> str:
        """URL for log output, without the token."""
        return f"{self.base_url}/waInstance{self.instance_id}/{method}/***"


class GreenApiClient:
    """Thin async wrapper over the GreenAPI REST methods used by the provider."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        instance_id: str,
        api_token: str,
        base_url: str | None = None,
        logger: ContextLogger | None = None,
    ):
        """Initialize GreenAPI client with dependency injection.

        Args:
            session: Persistent aiohttp session (managed by FastAPI lifespan)
            instance_id: GreenAPI instance id (``idInstance``)
            api_token: GreenAPI instance token (``apiTokenInstance``)
            base_url: API host, defaults to settings.greenapi_base_url
            logger: Pre-configured logger instance
        """
        self.session = session
        self.url_builder = GreenApiUrlBuilder(
            base_url or settings.greenapi_base_url, instance_id, api_token
        )
        self.logger = logger or get_logger(__name__)

    async def call(
        self, method: str, payload: dict[str, Any] | None = None, http_method: str = "POST"
    ) -> Any:
        """Invoke one GreenAPI method.

        Args:
            method: GreenAPI method name (e.g. ``sendMessage``)
            payload: JSON body for POST methods
            http_method: ``POST`` or ``GET``

        Returns:
            Decoded JSON response (dict or list)

        Raises:
            ProviderError: For HTTP errors and transport failures
        """
        url = self.url_builder.method_url(method)
        log_url = self.url_builder.redacted(method)
        self.logger.debug(f"GreenAPI {http_method} {log_url} payload={payload}")

        try:
            async with self.session.request(http_method, url, json=payload) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    self.logger.error(
                        f"GreenAPI {method} failed: {response.status} - {error_text[:500]}"
                    )
                    raise ProviderError(
                        f"GreenAPI {method} failed with status {response.status}",
                        provider_name=ProviderName.GREENAPI.value,
                        provider_status=response.status,
                    )
                try:
                    data = await response.json(content_type=None)
                except ValueError as err:
                    body = await response.text()
                    self.logger.error(
                        f"GreenAPI {method} returned a non-JSON body: {body[:200]}"
                    )
                    raise ProviderError(
                        f"GreenAPI {method} returned an unreadable response",
                        provider_name=ProviderName.GREENAPI.value,
                        provider_status=response.status,
                    ) from err
                self.logger.debug(f"GreenAPI {method} response: {data}")
                return data

        except aiohttp.ClientError as err:
            self.logger.error(f"GreenAPI {method} transport error: {err}")
            raise ProviderError(
                f"GreenAPI {method} request failed: {err}",
                provider_name=ProviderName.GREENAPI.value,
            ) from err

    async def send_message(self, chat_id: str, message: str) -> dict[str, Any]:
        return await self.call("sendMessage", {"chatId": chat_id, "message": message})

    async def send_file_by_url(
        self, chat_id: str, url_file: str, file_name: str, caption: str | None = None
    ) -> dict[str, Any]:
        payload = {"chatId": chat_id, "urlFile": url_file, "fileName": file_name}
        if caption:
            payload["caption"] = caption
        return await self.call("sendFileByUrl", payload)

    async def get_chats(self) -> list[dict[str, Any]]:
        data = await self.call("getChats", http_method="GET")
        return data if isinstance(data, list) else []

    async def get_chat_history(self, chat_id: str, count: int) -> list[dict[str, Any]]:
        data = await self.call("getChatHistory", {"chatId": chat_id, "count": count})
        return data if isinstance(data, list) else []

    async def read_chat(self, chat_id: str, id_message: str | None = None) -> bool:
        payload: dict[str, Any] = {"chatId": chat_id}
        if id_message:
            payload["idMessage"] = id_message
        data = await self.call("readChat", payload)
        return bool(isinstance(data, dict) and data.get("setRead"))

    async def get_state_instance(self) -> dict[str, Any]:
        data = await self.call("getStateInstance", http_method="GET")
        return data if isinstance(data, dict) else {}

    async def get_wa_settings(self) -> dict[str, Any]:
        data = await self.call("getWaSettings", http_method="GET")
        return data if isinstance(data, dict) else {}

    async def get_contact_info(self, chat_id: str) -> dict[str, Any]:
        data = await self.call("getContactInfo", {"chatId": chat_id})
        return data if isinstance(data, dict) else {}
