"""
Thin client for the Exotel call-control REST API.

Credentials, the API host and our public URL are read from settings on every
request so tests and late configuration take effect without a restart.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from voicebridge.config import settings
from voicebridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

REQUEST_TIMEOUT = 10.0


class ConfigurationError(RuntimeError):
    """Raised when call-control credentials or the public URL are missing."""


class ExotelAPIError(Exception):
    """Raised when the call-control API answers with an error status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Exotel API error: {status_code}")
        self.status_code = status_code
        self.body = body


class ExotelClient:
    """
    Sends authenticated requests to the Exotel account API.

    Args:
        transport: Optional httpx transport, used by tests to stub the API
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(settings.EXOTEL_API_KEY and settings.EXOTEL_API_TOKEN and settings.EXOTEL_SID)

    def require_credentials(self) -> None:
        if not self.configured:
            raise ConfigurationError("Exotel credentials not configured")

    def require_public_url(self) -> None:
        if not settings.PUBLIC_URL:
            raise ConfigurationError("PUBLIC_URL not configured - Exotel cannot reach our webhooks")

    def api_url(self, path: str) -> str:
        return f"https://{settings.EXOTEL_API_HOST}/v1/Accounts/{settings.EXOTEL_SID}/{path}"

    def public_url(self, path: str, params: Optional[Dict[str, str]] = None) -> str:
        """Absolute URL of one of our webhooks, with encoded query parameters."""
        url = settings.PUBLIC_URL.rstrip("/") + path
        if not params:
            return url
        return str(httpx.URL(url, params=params))

    async def request(
        self, method: str, path: str, data: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        """
        Send one request to the account API.

        Raises:
            ConfigurationError: Credentials are missing; nothing is sent
            ExotelAPIError: The API answered with a 4xx or 5xx status
            httpx.HTTPError: The request could not be completed
        """
        self.require_credentials()
        async with httpx.AsyncClient(
            auth=(settings.EXOTEL_API_KEY, settings.EXOTEL_API_TOKEN),
            timeout=REQUEST_TIMEOUT,
            transport=self.transport,
        ) as client:
            response = await client.request(method, self.api_url(path), data=data)

        if response.is_error:
            raise ExotelAPIError(response.status_code, response.text)
        return response

    async def request_json(
        self, method: str, path: str, data: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        response = await self.request(method, path, data)
        return response.json()
