"""
Client for the relay's prompt-completion endpoints.

    POST /modeA/describe  {word, taboo, previousHints?}        -> {text}
    POST /modeB/guess     {transcriptSoFar, category, previousGuesses?} -> {guessText}
"""

from __future__ import annotations

from typing import Iterable, Optional

from voicequiz.core.errors import COMP_001, COMP_003, CompletionRequestError
from voicequiz.core.logging import get_logger
from voicequiz.services.relay_http import RelayHTTPClient

logger = get_logger(__name__)


class CompletionClient(RelayHTTPClient):
    """Hint and guess requests. 429 responses are raised as retryable errors."""

    async def describe(
        self,
        word: str,
        taboo: Iterable[str],
        previous_hints: Optional[Iterable[str]] = None,
    ) -> str:
        payload = {"word": word, "taboo": list(taboo)}
        if previous_hints:
            payload["previousHints"] = list(previous_hints)

        data = await self._post_json(
            "/modeA/describe",
            payload,
            CompletionRequestError,
            COMP_001,
            status_code_map={429: COMP_003},
        )
        text = data.get("text")
        if not isinstance(text, str):
            raise CompletionRequestError(message="Hint response missing text", status_code=200, body=str(data))
        return text.strip()

    async def guess(
        self,
        transcript_so_far: str,
        category: str,
        previous_guesses: Optional[Iterable[str]] = None,
    ) -> Optional[str]:
        """
        Ask the relay for a guess.

        Returns:
            The guess, or None when the model had too little to go on
            (an empty `guessText` is "no guess", not an error).
        """
        payload = {"transcriptSoFar": transcript_so_far, "category": category}
        if previous_guesses:
            payload["previousGuesses"] = list(previous_guesses)

        data = await self._post_json(
            "/modeB/guess",
            payload,
            CompletionRequestError,
            COMP_001,
            status_code_map={429: COMP_003},
        )
        guess_text = data.get("guessText") or ""
        if not isinstance(guess_text, str):
            raise CompletionRequestError(message="Guess response malformed", status_code=200, body=str(data))
        guess_text = guess_text.strip()
        return guess_text or None
