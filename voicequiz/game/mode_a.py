"""
Mode A: the AI describes the word, the player guesses by voice.

Round cycle: request a hint and speak it, capture the player's answer,
judge it, then either advance (correct) or after a short pause resume the
interrupted hint or ask for a new one.

With `push_to_talk` enabled, only speech captured while the guess control
is held counts. A final transcript arriving within the grace window after
release is preferred; otherwise the last partial is judged.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from voicequiz.core.errors import CompletionRequestError
from voicequiz.core.logging import get_logger
from voicequiz.game.models import AttemptSource, GameMode, GamePhase, Judgment, RoundState, Word, WordOutcome
from voicequiz.game.turn_engine import TurnEngine, UpdateKind
from voicequiz.services.transcription import TranscriptUpdate

logger = get_logger(__name__)

HINT_ERROR_TEXT = "Error getting hint"


class ModeAEngine(TurnEngine):
    mode = GameMode.MODE_A

    def __init__(self, *args, push_to_talk: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.push_to_talk = push_to_talk

        self.hint: Optional[str] = None
        self.user_transcript = ""
        self._hint_interrupted = False

        self._holding = False
        self._held_partial = ""
        self._held_final: Optional[str] = None
        self._grace_task: Optional[asyncio.Task] = None

    def _mode_snapshot(self) -> dict:
        return {"hint": self.hint, "user_transcript": self.user_transcript}

    def _credential_context(self, first_word: Word) -> Tuple[Optional[str], Optional[List[str]]]:
        return first_word.text, first_word.taboo_list

    # ------------------------------------------------------------------
    # Round cycle
    # ------------------------------------------------------------------

    def _begin_round(self, round_state: RoundState) -> None:
        self.hint = None
        self.is_loading = False
        self.user_transcript = ""
        self._hint_interrupted = False
        self._reset_hold()
        self._spawn(self._request_hint(round_state.generation))

    async def _request_hint(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        round_state = self.round
        word = round_state.word
        self.is_loading = True
        self._notify(UpdateKind.HINT)

        try:
            text = await self.completions.describe(word.text, word.taboo_list, list(round_state.hints_given))
        except CompletionRequestError as e:
            await self._running.wait()
            if not self._is_current(generation):
                return
            logger.warning("hint_request_failed", error_code=e.code, status_code=e.status_code)
            self.is_loading = False
            self.hint = HINT_ERROR_TEXT
            self._notify(UpdateKind.ERROR)
            return

        # Hold a hint that lands during a pause until play resumes.
        await self._running.wait()
        if not self._is_current(generation) or self._resolving:
            logger.debug("stale_hint_discarded", generation=generation, current=self._generation)
            return

        self.is_loading = False
        round_state.hints_given.append(text)
        self.hint = text
        self._hint_interrupted = False
        self._transcript_log.append(f"AI: {text}")
        if self.speech is not None:
            self.speech.speak(text)
        self._notify(UpdateKind.HINT)

    def _handle_transcript(self, update: TranscriptUpdate) -> None:
        if self._resolving:
            return
        text = update.text.strip()
        if not text:
            return

        if not self.push_to_talk:
            self.user_transcript = text
            self._notify(UpdateKind.TRANSCRIPT)
            if update.is_final:
                self._interrupt_hint()
                self._judge_answer(text)
            return

        if self._holding:
            self.user_transcript = text
            if update.is_final:
                self._held_final = text
            else:
                self._held_partial = text
            self._notify(UpdateKind.TRANSCRIPT)
        elif self._grace_task is not None and update.is_final:
            self._cancel_grace()
            self.user_transcript = text
            self._judge_answer(text)

    def _interrupt_hint(self) -> None:
        if self.speech is not None and self.speech.is_speaking:
            self.speech.pause()
            self._hint_interrupted = True

    def _judge_answer(self, text: str) -> None:
        round_state = self.round
        judgment = self.judge(text, round_state.word)
        round_state.record_attempt(text, AttemptSource.USER, judgment)
        self.judgment = judgment
        self._transcript_log.append(f"User: {text}")
        logger.info("answer_judged", judgment=judgment.value, attempts=len(round_state.attempts))
        self._notify(UpdateKind.JUDGMENT)

        if judgment is Judgment.CORRECT:
            self.state.increment_score()
            self._resolve_round(WordOutcome.CORRECT, text, " ".join(round_state.hints_given) or None)
            if self.speech is not None:
                self.speech.stop()
                self.speech.speak(f"Correct! The answer was {round_state.word.text}")
            self._notify(UpdateKind.SCORE)
            self._spawn(self._advance_after(self.timings.correct_pause, round_state.generation))
        else:
            self._spawn(self._retry_after(self.timings.retry_pause, round_state.generation))

    async def _retry_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        await self._running.wait()
        if not self._is_current(generation):
            return
        if self._hint_interrupted and self.speech is not None and self.speech.is_paused:
            self._hint_interrupted = False
            self.speech.resume()
            return
        if self.is_loading:
            return
        await self._request_hint(generation)

    # ------------------------------------------------------------------
    # Push-to-talk
    # ------------------------------------------------------------------

    def press_guess(self) -> None:
        if self.state.phase is not GamePhase.PLAYING or self._resolving:
            return
        self._cancel_grace()
        self._holding = True
        self._held_partial = ""
        self._held_final = None
        self._interrupt_hint()

    def release_guess(self) -> None:
        if not self._holding:
            return
        self._holding = False
        if self._held_final:
            text = self._held_final
            self._reset_hold()
            self._judge_answer(text)
            return
        self._grace_task = self._spawn(self._grace_expired(self.round.generation))

    async def _grace_expired(self, generation: int) -> None:
        await asyncio.sleep(self.timings.grace_window)
        self._grace_task = None
        if not self._is_current(generation) or self._resolving:
            return
        text = self._held_final or self._held_partial
        self._reset_hold()
        if text:
            self._judge_answer(text)
        elif self._hint_interrupted and self.speech is not None:
            self._hint_interrupted = False
            self.speech.resume()

    def _cancel_grace(self) -> None:
        task = self._grace_task
        self._grace_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _reset_hold(self) -> None:
        self._cancel_grace()
        self._holding = False
        self._held_partial = ""
        self._held_final = None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _on_pass(self, round_state: RoundState) -> None:
        if self.speech is not None:
            self.speech.stop()
        self._resolve_round(WordOutcome.PASSED, self.user_transcript or None, " ".join(round_state.hints_given) or None)

    def _record_unfinished_round(self) -> None:
        self._resolve_round(
            WordOutcome.UNANSWERED,
            self.user_transcript or None,
            " ".join(self.round.hints_given) or None,
        )

    def _on_paused(self) -> None:
        self._reset_hold()
        if self.speech is not None and self.speech.is_speaking:
            self.speech.pause()

    def _on_resumed(self) -> None:
        if self.speech is not None and self.speech.is_paused:
            self.speech.resume()
