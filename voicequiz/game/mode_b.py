"""
Mode B: the player describes the word, the AI guesses.

The word is shown to the player only; the guess request carries just the
transcript, the category and recent guesses. Saying the word (or something
the judge accepts as the word) is a penalty.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Optional

from voicequiz.core.errors import CompletionRequestError
from voicequiz.core.logging import get_logger
from voicequiz.game.answer_judge import contains_word, normalize
from voicequiz.game.models import AttemptSource, GameMode, Judgment, RoundState, WordOutcome
from voicequiz.game.turn_engine import TurnEngine, UpdateKind
from voicequiz.services.transcription import TranscriptUpdate

logger = get_logger(__name__)

GUESS_ERROR_TEXT = "Error getting guess"


def count_words(text: str) -> int:
    return len(text.split())


class GuessTriggerPolicy:
    """
    Decides when enough new description has arrived to ask for a guess.

    A guess fires after a silence gap following new words (never before the
    warm-up has elapsed for the round's first guess), or as soon as
    `word_trigger` new words have piled up during continuous speech.
    """

    def __init__(
        self,
        silence_gap: float = 1.0,
        warmup: float = 3.0,
        word_trigger: int = 7,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.silence_gap = silence_gap
        self.warmup = warmup
        self.word_trigger = word_trigger
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        self.round_started_at = self._clock()
        self.words_at_last_trigger = 0
        self.has_guessed = False

    def new_words(self, word_count: int) -> int:
        return max(0, word_count - self.words_at_last_trigger)

    def word_count_reached(self, word_count: int) -> bool:
        return self.new_words(word_count) >= self.word_trigger

    def silence_delay(self) -> float:
        """Seconds to wait from now before a silence trigger may fire."""
        if self.has_guessed:
            return self.silence_gap
        warmup_left = self.warmup - (self._clock() - self.round_started_at)
        return max(self.silence_gap, warmup_left)

    def silence_trigger_ready(self, word_count: int) -> bool:
        if self.new_words(word_count) <= 0:
            return False
        return self.has_guessed or self._clock() - self.round_started_at >= self.warmup

    def mark_triggered(self, word_count: int) -> None:
        self.words_at_last_trigger = word_count
        self.has_guessed = True


class ModeBEngine(TurnEngine):
    mode = GameMode.MODE_B

    def __init__(self, *args, clock: Callable[[], float] = time.monotonic, **kwargs):
        super().__init__(*args, **kwargs)
        self.policy = GuessTriggerPolicy(
            silence_gap=self.timings.silence_gap,
            warmup=self.timings.warmup,
            word_trigger=self.timings.word_trigger,
            clock=clock,
        )
        self.guess_history: Deque[str] = deque(maxlen=self.timings.guess_history)
        self.last_guess: Optional[str] = None

        self._committed = ""
        self._partial = ""
        self._transcript_saved = False
        self._guess_in_flight = False
        self._silence_task: Optional[asyncio.Task] = None

    @property
    def accumulated_transcript(self) -> str:
        return " ".join(part for part in (self._committed, self._partial) if part)

    def _mode_snapshot(self) -> dict:
        return {
            "visible_word": self.round.word.text if self.round else None,
            "user_transcript": self.accumulated_transcript,
            "last_guess": self.last_guess,
            "guesses": tuple(self.guess_history),
        }

    # ------------------------------------------------------------------
    # Round cycle
    # ------------------------------------------------------------------

    def _begin_round(self, round_state: RoundState) -> None:
        self._committed = ""
        self._partial = ""
        self._transcript_saved = False
        self._guess_in_flight = False
        self.is_loading = False
        self._silence_task = None
        self.last_guess = None
        self.guess_history.clear()
        self.policy.reset()

    def _handle_transcript(self, update: TranscriptUpdate) -> None:
        if self._resolving:
            return
        if self.speech is not None and self.speech.is_speaking:
            # The AI's own voice must not join the description.
            logger.debug("transcript_dropped_while_speaking", is_final=update.is_final)
            return
        text = update.text.strip()
        if update.is_final:
            if text:
                self._committed = f"{self._committed} {text}".strip()
            self._partial = ""
        else:
            self._partial = text

        if text and self._said_the_word(text):
            self._apply_penalty(text)
            return

        self._notify(UpdateKind.TRANSCRIPT)

        word_count = count_words(self.accumulated_transcript)
        if self.policy.new_words(word_count) <= 0:
            return
        if self.policy.word_count_reached(word_count):
            self._trigger_guess("word_count")
            return
        self._restart_silence_watch()

    def _said_the_word(self, text: str) -> bool:
        word = self.round.word
        # The word can straddle a final and the partial that follows it.
        if contains_word(text, word.text) or contains_word(self.accumulated_transcript, word.text):
            return True
        return self.judge(text, word) is Judgment.CORRECT

    def _apply_penalty(self, text: str) -> None:
        round_state = self.round
        self._cancel_silence_watch()
        round_state.record_attempt(text, AttemptSource.USER, Judgment.PENALTY)
        self.judgment = Judgment.PENALTY
        self._persist_transcript()
        self._resolve_round(WordOutcome.PENALTY, self.accumulated_transcript, None)
        logger.info("penalty_applied", word=round_state.word.text)
        self._notify(UpdateKind.JUDGMENT)
        self._spawn(self._advance_after(self.timings.penalty_delay, round_state.generation))

    # ------------------------------------------------------------------
    # Guess triggering
    # ------------------------------------------------------------------

    def _restart_silence_watch(self) -> None:
        self._cancel_silence_watch()
        self._silence_task = self._spawn(self._silence_watch(self._generation, self.policy.silence_delay()))

    def _cancel_silence_watch(self) -> None:
        task = self._silence_task
        self._silence_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _silence_watch(self, generation: int, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._is_current(generation) or self._resolving:
            return
        self._silence_task = None
        if self.policy.silence_trigger_ready(count_words(self.accumulated_transcript)):
            self._trigger_guess("silence")

    def _trigger_guess(self, reason: str) -> None:
        if self._guess_in_flight:
            logger.debug("guess_trigger_ignored", reason=reason)
            return
        transcript = self.accumulated_transcript
        word_count = count_words(transcript)
        if self.policy.new_words(word_count) <= 0:
            return

        self._cancel_silence_watch()
        self.policy.mark_triggered(word_count)
        self._guess_in_flight = True
        logger.debug("guess_triggered", reason=reason, words=word_count)
        self._spawn(self._request_guess(self._generation, transcript))

    async def _request_guess(self, generation: int, transcript: str) -> None:
        self.is_loading = True
        self._notify(UpdateKind.GUESS)
        try:
            guess = await self.completions.guess(transcript, self.deck.category_name, list(self.guess_history))
        except CompletionRequestError as e:
            await self._running.wait()
            if not self._is_current(generation):
                return
            self._guess_in_flight = False
            self.is_loading = False
            if e.retryable:
                logger.warning("guess_request_retryable", error_code=e.code, status_code=e.status_code)
            else:
                logger.error("guess_request_failed", error_code=e.code, status_code=e.status_code)
            self.last_guess = GUESS_ERROR_TEXT
            self._notify(UpdateKind.ERROR)
            return

        # Hold a guess that lands during a pause until play resumes.
        await self._running.wait()
        if not self._is_current(generation) or self._resolving:
            logger.debug("stale_guess_discarded", generation=generation, current=self._generation)
            return

        self._guess_in_flight = False
        self.is_loading = False
        if guess is None:
            self._notify(UpdateKind.GUESS)
        else:
            self._apply_guess(guess)

        if not self._resolving and self.policy.new_words(count_words(self.accumulated_transcript)) > 0:
            self._restart_silence_watch()

    def _apply_guess(self, guess: str) -> None:
        round_state = self.round
        self.guess_history.appendleft(guess)
        self.last_guess = guess
        self._transcript_log.append(f"AI: {guess}")

        judgment = self.judge(guess, round_state.word)
        target = normalize(round_state.word.text)
        if judgment is not Judgment.CORRECT and target and target in normalize(guess):
            judgment = Judgment.CORRECT

        round_state.record_attempt(guess, AttemptSource.AI, judgment)
        self.judgment = judgment
        logger.info("guess_judged", judgment=judgment.value, attempts=len(round_state.attempts))

        if judgment is Judgment.CORRECT:
            self._cancel_silence_watch()
            self.state.increment_score()
            self._persist_transcript()
            self._resolve_round(WordOutcome.CORRECT, self.accumulated_transcript, guess)
            if self.speech is not None:
                self.speech.speak(f"{guess}! Got it!")
            self._notify(UpdateKind.SCORE)
            self._spawn(self._advance_after(self.timings.correct_pause, round_state.generation))
            return

        if self.speech is not None:
            self.speech.speak(f"Is it {guess}?")
        self._notify(UpdateKind.GUESS)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _persist_transcript(self) -> None:
        if self._transcript_saved:
            return
        transcript = self.accumulated_transcript
        if transcript:
            self._transcript_log.append(f"User: {transcript}")
        self._transcript_saved = True

    def _on_pass(self, round_state: RoundState) -> None:
        self._cancel_silence_watch()
        if self.speech is not None:
            self.speech.stop()
        self._persist_transcript()
        self._resolve_round(WordOutcome.PASSED, self.accumulated_transcript or None, self.last_guess)

    def _record_unfinished_round(self) -> None:
        self._persist_transcript()
        self._resolve_round(WordOutcome.UNANSWERED, self.accumulated_transcript or None, self.last_guess)

    def _on_paused(self) -> None:
        self._cancel_silence_watch()
        super()._on_paused()

    def _on_resumed(self) -> None:
        if count_words(self.accumulated_transcript) and not self._resolving:
            self._restart_silence_watch()
