"""
Shared HTTP plumbing for clients of the VoiceQuiz relay server.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Type

import httpx

from voicequiz.core.config import settings
from voicequiz.core.errors import RelayRequestError, QuizErrorCode
from voicequiz.core.logging import get_logger

logger = get_logger(__name__)


class RelayHTTPClient:
    """
    Minimal async JSON client for the relay.

    A persistent httpx.AsyncClient is created lazily unless one is injected.
    No retries happen here; failures are raised as `RelayRequestError`
    subclasses carrying the status code and body.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.RELAY_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.RELAY_TIMEOUT_SEC
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def _post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        error_cls: Type[RelayRequestError],
        network_code: QuizErrorCode,
        status_code_map: Optional[Dict[int, QuizErrorCode]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        client = await self._get_http_client()
        start = time.monotonic()

        try:
            response = await client.post(url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise error_cls(network_code, original_error=e) from e

        duration_ms = (time.monotonic() - start) * 1000
        logger.debug("relay_request", path=path, status_code=response.status_code, duration_ms=round(duration_ms, 2))

        if response.status_code != 200:
            code = (status_code_map or {}).get(response.status_code)
            raise error_cls(
                code,
                message=f"Relay returned {response.status_code} for {path}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise error_cls(
                message=f"Relay returned invalid JSON for {path}",
                status_code=response.status_code,
                body=response.text,
                original_error=e,
            ) from e

        if not isinstance(data, dict):
            raise error_cls(
                message=f"Relay returned unexpected payload for {path}",
                status_code=response.status_code,
                body=response.text,
            )
        return data
