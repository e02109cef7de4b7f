from typing import Any, Dict, Optional
import httpx

from ..config import settings
from .results import ProviderError

# Some public endpoints (Yahoo, Google News) reject requests without a browser UA
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


class HttpProvider:
    """
    Base for REST providers.

    A shared ``httpx.AsyncClient`` may be injected (the app creates one at
    startup, tests pass one built on ``httpx.MockTransport``); otherwise a
    short-lived client is opened per request.
    """

    name = "provider"

    def __init__(self, http: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._http = http
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params, headers=DEFAULT_HEADERS)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params, headers=DEFAULT_HEADERS)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(f"{self.name} error: {response.status_code}")
        return response

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._get(url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned invalid JSON") from e
