"""
Credential broker: obtains short-lived realtime credentials from the relay.

Credentials are single-use per connection attempt. Nothing is cached and
nothing is retried here; retries belong to the caller.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from voicequiz.core.config import settings
from voicequiz.core.errors import CRED_001, CRED_003, CredentialError
from voicequiz.core.logging import get_logger
from voicequiz.game.models import GameMode
from voicequiz.services.relay_http import RelayHTTPClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    """Opaque bearer value plus absolute expiry (unix seconds)."""

    value: str
    expires_at: int

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at

    def __repr__(self) -> str:
        return f"Credential(value='{self.value[:8]}...', expires_at={self.expires_at})"


class CredentialBroker(RelayHTTPClient):
    def __init__(
        self,
        base_url: Optional[str] = None,
        device_id: Optional[str] = None,
        platform: str = "python",
        app_version: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, http_client=http_client)
        self.device_id = device_id or str(uuid.uuid4())
        self.platform = platform
        self.app_version = app_version or settings.APP_VERSION

    async def request_credential(
        self,
        mode: GameMode,
        word: Optional[str] = None,
        taboo: Optional[Iterable[str]] = None,
    ) -> Credential:
        """
        Request an ephemeral credential for one realtime connection attempt.

        Raises:
            CredentialError: relay unreachable (status_code None) or rejected
        """
        payload = {
            "deviceId": self.device_id,
            "platform": self.platform,
            "appVersion": self.app_version,
            "gameMode": GameMode(mode).value,
        }
        if word is not None:
            payload["currentWord"] = word
        if taboo is not None:
            payload["tabooWords"] = list(taboo)

        data = await self._post_json("/token", payload, CredentialError, CRED_001)

        value = data.get("value")
        expires_at = data.get("expiresAt", data.get("expires_at"))
        if not isinstance(value, str) or not value or expires_at is None:
            raise CredentialError(CRED_003, status_code=200, body=str(data))

        try:
            expires_at = int(expires_at)
        except (TypeError, ValueError) as e:
            raise CredentialError(CRED_003, status_code=200, body=str(data), original_error=e) from e

        credential = Credential(value=value, expires_at=expires_at)
        logger.info(
            "credential_issued",
            game_mode=payload["gameMode"],
            expires_at=credential.expires_at,
        )
        return credential
