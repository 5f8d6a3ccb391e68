"""
OpenAI relay service

Server-side half of the relay: builds the game prompts, calls OpenAI Chat
Completions for hints and guesses, and mints ephemeral Realtime client
secrets so the API key never leaves the server.

Upstream calls are guarded by the OpenAI circuit breaker and retried only on
connection-level failures.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from pybreaker import CircuitBreakerError

from voicequiz.core.config import settings
from voicequiz.core.logging import get_logger
from voicequiz.core.metrics import (
    realtime_credentials_issued_total,
    relay_upstream_latency_seconds,
    relay_upstream_requests_total,
)
from voicequiz.core.resilience import (
    ensure_breaker_closed,
    openai_breaker,
    record_breaker_failure,
    record_breaker_success,
    retry_openai_operation,
)

logger = get_logger(__name__)


class UpstreamError(Exception):
    """OpenAI call failed; `status_code` is forwarded to the relay client."""

    def __init__(self, status_code: int, details: str):
        self.status_code = status_code
        self.details = details
        super().__init__(f"OpenAI API failed ({status_code}): {details[:200]}")


class RelayNotConfiguredError(Exception):
    pass


# ==============================================================================
# Prompts
# ==============================================================================


def build_describe_prompt(word: str, taboo: Sequence[str], previous_hints: Sequence[str] = ()) -> str:
    hints_context = ""
    if previous_hints:
        numbered = "\n".join(f"{i}. {hint}" for i, hint in enumerate(previous_hints, start=1))
        hints_context = f"\n\nPrevious hints you gave:\n{numbered}"

    return (
        f'You are the host of a speed quiz game. Describe the word "{word}" so the user can guess it.\n\n'
        "Rules:\n"
        "- NEVER say the target word, its spelling, or direct synonyms\n"
        f"- NEVER use these taboo words: {', '.join(taboo)}\n"
        '- Use indirect, natural descriptions like "You use this when..." or "You usually see this in..."\n'
        "- Keep descriptions SHORT (1-2 sentences)\n"
        f"- Give helpful hints based on what you said before{hints_context}\n\n"
        "Provide ONE additional hint in English."
    )


def build_guess_prompt(transcript: str, category: str, previous_guesses: Sequence[str] = ()) -> str:
    guesses_context = ""
    if previous_guesses:
        guesses_context = (
            "\n\nYour previous guesses (all were incorrect or close):\n" + ", ".join(previous_guesses)
        )

    return (
        f'You are a player in a speed quiz game. The user is describing a word from the "{category}" category.\n\n'
        f'User\'s description so far:\n"{transcript}"{guesses_context}\n\n'
        "Rules:\n"
        '- NEVER ask questions like "Is it...?" or "Does it...?"\n'
        '- ONLY make ONE direct guess in the format: "I think it is [WORD]" or simply "[WORD]"\n'
        "- Make educated guesses based on the clues\n"
        "- Try a different word if your previous guesses were wrong\n\n"
        "Make your guess now in English (one word or short phrase only)."
    )


def build_realtime_instructions(
    game_mode: str, current_word: Optional[str] = None, taboo: Optional[Sequence[str]] = None
) -> str:
    if game_mode == "modeA":
        lines = [
            "You are the voice of a speed quiz host.",
            "When asked to say a hint, say exactly that text and nothing else.",
            "Never reveal the answer on your own.",
        ]
        if current_word:
            lines.append(f'The current answer is "{current_word}". Never say it.')
        if taboo:
            lines.append(f"Never say these words: {', '.join(taboo)}.")
        return " ".join(lines)

    return (
        "You are a player in a speed quiz game. The user describes a word and you listen. "
        "Only speak when asked to, and then say exactly the requested text."
    )


# ==============================================================================
# Service
# ==============================================================================


class OpenAIRelayService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        openai_client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self._openai_client = openai_client
        self._http_client = http_client

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    def _require_enabled(self) -> None:
        if not self.is_enabled():
            raise RelayNotConfiguredError("OPENAI_API_KEY is not configured")

    @property
    def openai_client(self) -> AsyncOpenAI:
        if self._openai_client is None:
            self._openai_client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.OPENAI_TIMEOUT_SEC,
                max_retries=0,
            )
        return self._openai_client

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------

    async def describe(self, word: str, taboo: Sequence[str], previous_hints: Sequence[str] = ()) -> str:
        """Mode A: one short hint for `word` that avoids the taboo list."""
        prompt = build_describe_prompt(word, taboo, previous_hints)
        text = await self._complete("describe", prompt, settings.DESCRIBE_MAX_TOKENS)
        logger.info("mode_a_describe", word=word, hints=len(previous_hints), preview=text[:50])
        return text

    async def guess(self, transcript: str, category: str, previous_guesses: Sequence[str] = ()) -> str:
        """Mode B: one guess from the description so far; may be empty."""
        prompt = build_guess_prompt(transcript, category, previous_guesses)
        text = await self._complete("guess", prompt, settings.GUESS_MAX_TOKENS)
        logger.info("mode_b_guess", category=category, guess=text)
        return text

    async def _complete(self, endpoint: str, prompt: str, max_tokens: int) -> str:
        self._require_enabled()
        try:
            ensure_breaker_closed(openai_breaker)
        except CircuitBreakerError as e:
            relay_upstream_requests_total.labels(endpoint=endpoint, status="circuit_open").inc()
            raise UpstreamError(503, "OpenAI circuit breaker open") from e

        start = time.monotonic()
        try:
            response = await self._create_completion(prompt, max_tokens)
        except APIStatusError as e:
            relay_upstream_requests_total.labels(endpoint=endpoint, status=str(e.status_code)).inc()
            if e.status_code >= 500:
                record_breaker_failure(openai_breaker, e)
            raise UpstreamError(e.status_code, e.response.text) from e
        except (APIConnectionError, APITimeoutError) as e:
            relay_upstream_requests_total.labels(endpoint=endpoint, status="network_error").inc()
            record_breaker_failure(openai_breaker, e)
            raise UpstreamError(502, str(e)) from e
        finally:
            relay_upstream_latency_seconds.labels(endpoint=endpoint).observe(time.monotonic() - start)

        relay_upstream_requests_total.labels(endpoint=endpoint, status="200").inc()
        record_breaker_success(openai_breaker)
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    @retry_openai_operation()
    async def _create_completion(self, prompt: str, max_tokens: int):
        model = settings.COMPLETION_MODEL
        params: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": settings.COMPLETION_TEMPERATURE,
        }
        # Newer models reject the legacy max_tokens parameter
        if any(model.startswith(prefix) for prefix in ("gpt-4o", "gpt-5", "o1", "o3")):
            params["max_completion_tokens"] = max_tokens
        else:
            params["max_tokens"] = max_tokens
        return await self.openai_client.chat.completions.create(**params)

    # ------------------------------------------------------------------
    # Realtime client secrets
    # ------------------------------------------------------------------

    def build_session_config(
        self,
        game_mode: str,
        current_word: Optional[str] = None,
        taboo: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        return {
            "type": "realtime",
            "model": settings.REALTIME_MODEL,
            "instructions": build_realtime_instructions(game_mode, current_word, taboo),
            "audio": {
                "input": {"transcription": {"model": settings.REALTIME_TRANSCRIPTION_MODEL}},
                "output": {"voice": settings.REALTIME_VOICE},
            },
        }

    async def create_client_secret(
        self,
        game_mode: str,
        current_word: Optional[str] = None,
        taboo: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Mint an ephemeral Realtime credential.

        Returns:
            {"value": str, "expiresAt": int}
        """
        self._require_enabled()
        try:
            ensure_breaker_closed(openai_breaker)
        except CircuitBreakerError as e:
            relay_upstream_requests_total.labels(endpoint="token", status="circuit_open").inc()
            raise UpstreamError(503, "OpenAI circuit breaker open") from e

        payload = {
            "expires_after": {"anchor": "created_at", "seconds": settings.REALTIME_TOKEN_EXPIRY_SEC},
            "session": self.build_session_config(game_mode, current_word, taboo),
        }

        start = time.monotonic()
        try:
            response = await self._post_client_secret(payload)
        except httpx.HTTPError as e:
            relay_upstream_requests_total.labels(endpoint="token", status="network_error").inc()
            record_breaker_failure(openai_breaker, e)
            raise UpstreamError(502, str(e)) from e
        finally:
            relay_upstream_latency_seconds.labels(endpoint="token").observe(time.monotonic() - start)

        relay_upstream_requests_total.labels(endpoint="token", status=str(response.status_code)).inc()
        if response.status_code not in (200, 201):
            if response.status_code >= 500:
                record_breaker_failure(openai_breaker, UpstreamError(response.status_code, response.text))
            logger.error("realtime_client_secret_failed", status_code=response.status_code, response=response.text[:500])
            raise UpstreamError(response.status_code, response.text)

        data = response.json()
        value = data.get("value") or (data.get("client_secret") or {}).get("value")
        expires_at = data.get("expires_at") or (data.get("client_secret") or {}).get("expires_at")
        if not value:
            raise UpstreamError(502, "Realtime client secret missing from response")
        if expires_at is None:
            expires_at = int(time.time()) + settings.REALTIME_TOKEN_EXPIRY_SEC

        record_breaker_success(openai_breaker)
        realtime_credentials_issued_total.labels(game_mode=game_mode).inc()
        logger.info("realtime_client_secret_created", game_mode=game_mode, expires_at=expires_at)
        return {"value": value, "expiresAt": int(expires_at)}

    @retry_openai_operation()
    async def _post_client_secret(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._http_client is not None:
            return await self._http_client.post(settings.REALTIME_CLIENT_SECRETS_URL, headers=headers, json=payload)
        async with httpx.AsyncClient(timeout=settings.OPENAI_TIMEOUT_SEC) as client:
            return await client.post(settings.REALTIME_CLIENT_SECRETS_URL, headers=headers, json=payload)


_relay_service: Optional[OpenAIRelayService] = None


def get_relay_service() -> OpenAIRelayService:
    """FastAPI dependency returning the process-wide relay service."""
    global _relay_service
    if _relay_service is None:
        _relay_service = OpenAIRelayService()
    return _relay_service
