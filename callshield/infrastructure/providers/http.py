"""
HTTP Risk Provider
Generic JSON-over-HTTP adapter for hosted reputation APIs
"""
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from callshield.domain.interfaces.risk_provider import (
    RiskProvider,
    ProviderError,
    ProviderResponseError,
)

logger = logging.getLogger(__name__)


class HttpRiskProvider(RiskProvider):
    """
    POSTs ``{"phone_number": ...}`` to a reputation endpoint.

    The response body must be a JSON object carrying ``risk_level``,
    ``confidence`` and ``action`` (camelCase accepted), either at the top
    level or under ``result``. The per-call timeout is enforced by the
    aggregator; ``request_timeout`` only bounds the socket.
    """

    def __init__(
        self,
        name: str,
        url: str,
        api_key: Optional[str] = None,
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not url:
            raise ValueError(f"{name}: url is required for an HTTP provider")
        self._name = name
        self.url = url
        self._api_key = api_key
        self._request_timeout = request_timeout
        self._client = client

    @property
    def name(self) -> str:
        return self._name

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._request_timeout)
        return self._client

    async def check_spam_number(
        self,
        phone_number: str,
        options: Optional[Dict[str, Any]] = None
    ) -> Mapping[str, Any]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await self._get_client().post(
                self.url,
                json={"phone_number": phone_number, **(options or {})},
                headers=headers
            )
        except httpx.HTTPError as e:
            raise ProviderError(self._name, f"request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"{self._name} lookup failed ({response.status_code}): {response.text}")
            raise ProviderError(self._name, f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderResponseError(self._name, "response is not JSON") from e

        if isinstance(body, dict) and isinstance(body.get("result"), dict):
            body = body["result"]
        if not isinstance(body, dict):
            raise ProviderResponseError(self._name, "response is not a JSON object")
        return body

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def get_provider_info(self) -> Dict[str, Any]:
        return {"name": self._name, "type": "http", "url": self.url}
