"""
Turn engine base

Owns the game phase machine (ready -> playing <-> paused -> finished), the
round/word progression, the countdown timer, pass accounting and the final
GameSessionRecord. Mode-specific round cycles live in `mode_a` and `mode_b`.

All round mutations happen on the event loop. Every asynchronous completion
carries the round generation it was started for and is dropped when the
engine has moved on.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from voicequiz.core.config import settings
from voicequiz.core.errors import GamePhaseError, QuizError
from voicequiz.core.logging import get_logger, get_voice_logger
from voicequiz.game.answer_judge import judge as judge_answer
from voicequiz.game.game_state import GameSessionState
from voicequiz.game.game_timer import GameTimer
from voicequiz.game.models import (
    GameMode,
    GamePhase,
    GameSessionRecord,
    Judgment,
    RoundState,
    Word,
    WordOutcome,
    WordResult,
)
from voicequiz.game.word_manager import WordDeck
from voicequiz.services.completion_client import CompletionClient
from voicequiz.services.event_router import ProtocolErrorEvent, RealtimeEvent
from voicequiz.services.history import HistorySink
from voicequiz.services.realtime_session import ConnectionPhase, RealtimeSession, SessionConnectionState
from voicequiz.services.speech_output import SpeechOutput
from voicequiz.services.transcription import TranscriptionSource, TranscriptUpdate

logger = get_logger(__name__)
voice_log = get_voice_logger(__name__)

Judge = Callable[[str, Word], Judgment]


@dataclass(frozen=True)
class EngineTimings:
    """Delays in seconds; `word_trigger` and `guess_history` are counts."""

    round_duration: float = 60.0
    correct_pause: float = 1.0
    retry_pause: float = 1.2
    grace_window: float = 0.5
    penalty_delay: float = 1.0
    silence_gap: float = 1.0
    warmup: float = 3.0
    word_trigger: int = 7
    guess_history: int = 5
    tick_interval: float = 0.1


class UpdateKind(str, Enum):
    PHASE = "phase"
    ROUND = "round"
    HINT = "hint"
    TRANSCRIPT = "transcript"
    GUESS = "guess"
    JUDGMENT = "judgment"
    SCORE = "score"
    TIMER = "timer"
    ERROR = "error"


@dataclass(frozen=True)
class EngineSnapshot:
    mode: GameMode
    phase: GamePhase
    generation: int
    score: int
    pass_count: int
    remaining_passes: int
    remaining_time: float
    words_played: int
    visible_word: Optional[str] = None
    hint: Optional[str] = None
    user_transcript: str = ""
    last_guess: Optional[str] = None
    guesses: Tuple[str, ...] = field(default_factory=tuple)
    judgment: Optional[Judgment] = None
    feedback: Optional[str] = None
    is_loading: bool = False
    connection_error: Optional[str] = None


@dataclass(frozen=True)
class EngineUpdate:
    kind: UpdateKind
    snapshot: EngineSnapshot


Observer = Callable[[EngineUpdate], None]


class TurnEngine:
    """
    Base game state machine shared by both modes.

    Collaborators are injected. `session` and `speech` are optional so the
    engine can run against a transcription source alone.
    """

    mode: GameMode = GameMode.MODE_A

    def __init__(
        self,
        deck: WordDeck,
        completions: CompletionClient,
        transcription: TranscriptionSource,
        speech: Optional[SpeechOutput] = None,
        session: Optional[RealtimeSession] = None,
        history: Optional[HistorySink] = None,
        judge: Judge = judge_answer,
        timings: Optional[EngineTimings] = None,
        max_pass_count: Optional[int] = None,
    ):
        self.deck = deck
        self.completions = completions
        self.transcription = transcription
        self.speech = speech
        self.session = session
        self.history = history
        self.judge = judge
        self.timings = timings or EngineTimings(round_duration=settings.ROUND_DURATION_SEC)

        self.state = GameSessionState(
            self.mode,
            deck.category_id,
            max_pass_count if max_pass_count is not None else settings.MAX_PASS_COUNT,
        )
        self.timer = GameTimer(
            duration=self.timings.round_duration,
            on_expire=self._on_timer_expired,
            on_tick=self._on_timer_tick,
            tick_interval=self.timings.tick_interval,
        )

        self.round: Optional[RoundState] = None
        self.connection_error: Optional[QuizError] = None
        self.judgment: Optional[Judgment] = None
        self.is_loading = False

        self._generation = 0
        self._resolving = False
        self._round_recorded = False
        self._pending_word: Optional[Word] = None
        self._observers: List[Observer] = []
        self._tasks: Set[asyncio.Task] = set()
        self._capture_task: Optional[asyncio.Task] = None
        self._running = asyncio.Event()
        self._results: List[WordResult] = []
        self._transcript_log: List[str] = []
        self._session_unsubscribers: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> GamePhase:
        return self.state.phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def score(self) -> int:
        return self.state.score

    @property
    def results(self) -> List[WordResult]:
        return list(self._results)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            mode=self.mode,
            phase=self.state.phase,
            generation=self._generation,
            score=self.state.score,
            pass_count=self.state.pass_count,
            remaining_passes=self.state.remaining_passes,
            remaining_time=self.timer.remaining,
            words_played=self.state.words_played,
            judgment=self.judgment,
            feedback=self.judgment.feedback if self.judgment else None,
            is_loading=self.is_loading,
            connection_error=self.connection_error.message if self.connection_error else None,
            **self._mode_snapshot(),
        )

    def _mode_snapshot(self) -> dict:
        return {}

    def _notify(self, kind: UpdateKind) -> None:
        if not self._observers:
            return
        update = EngineUpdate(kind=kind, snapshot=self.snapshot())
        for observer in list(self._observers):
            try:
                observer(update)
            except Exception:
                logger.exception("engine_observer_failed", kind=kind.value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Connect (when a realtime session is injected) and play the first word.

        A connection failure leaves the engine in `ready` with
        `connection_error` set; calling `start()` again retries.
        """
        if self.state.phase is not GamePhase.READY:
            raise GamePhaseError(message=f"Cannot start from {self.state.phase.value}")

        await self._stop_capture()

        if self._pending_word is None:
            self._pending_word = self._draw_word()
        if self._pending_word is None:
            raise GamePhaseError(message=f"No words available in category {self.deck.category_id}")

        if self.session is not None:
            await self._connect_session(self._pending_word)

        self.state.start()
        self._running.set()
        self.timer.start()
        voice_log.state_change(
            session_id=self._session_id,
            from_state=GamePhase.READY.value,
            to_state=GamePhase.PLAYING.value,
            trigger="start",
        )
        self._notify(UpdateKind.PHASE)

        await self._start_capture()
        await self._next_word()

    async def _connect_session(self, first_word: Word) -> None:
        if self.session.state.phase is not ConnectionPhase.DISCONNECTED:
            await self.session.disconnect()
        self._unsubscribe_session()

        word, taboo = self._credential_context(first_word)
        try:
            await self.session.connect(self.mode, word=word, taboo=taboo)
        except QuizError as e:
            self.connection_error = e
            voice_log.error("game_connect_failed", error_code=e.code, recoverable=e.is_recoverable, error=e.message)
            self._notify(UpdateKind.ERROR)
            raise

        self.connection_error = None
        self._session_unsubscribers = [
            self.session.add_event_listener(self._handle_realtime_event),
            self.session.add_state_listener(self._handle_session_state),
        ]

    def _credential_context(self, first_word: Word) -> Tuple[Optional[str], Optional[List[str]]]:
        return None, None

    async def pause(self) -> None:
        if self.state.phase is not GamePhase.PLAYING:
            raise GamePhaseError(message=f"Cannot pause from {self.state.phase.value}")
        self.state.pause()
        self._running.clear()
        self.timer.pause()
        await self._stop_capture()
        self._on_paused()
        voice_log.state_change(session_id=self._session_id, from_state="playing", to_state="paused", trigger="pause")
        self._notify(UpdateKind.PHASE)

    async def resume(self) -> None:
        if self.state.phase is not GamePhase.PAUSED:
            raise GamePhaseError(message=f"Cannot resume from {self.state.phase.value}")
        self.state.resume()
        self._running.set()
        self.timer.start()
        await self._start_capture()
        self._on_resumed()
        voice_log.state_change(session_id=self._session_id, from_state="paused", to_state="playing", trigger="resume")
        self._notify(UpdateKind.PHASE)

    async def finish(self) -> Optional[GameSessionRecord]:
        """
        End the game and hand the record to the history sink.

        Returns the record, or None when the game had already finished.
        """
        if self.state.phase is GamePhase.FINISHED:
            return None
        previous = self.state.phase
        self.state.finish()

        self._generation += 1
        self._running.clear()
        self.timer.stop()
        self._cancel_tasks()
        if self.speech is not None:
            self.speech.stop()
        await self._stop_capture()

        if self.round is not None and not self._round_recorded:
            self._record_unfinished_round()

        record = GameSessionRecord(
            mode=self.mode,
            category_id=self.deck.category_id,
            category_name=self.deck.category_name,
            score=self.state.score,
            max_score=len(self._results),
            pass_count=self.state.pass_count,
            started_at=self.state.started_at,
            ended_at=self.state.ended_at,
            words=list(self._results),
            transcript=list(self._transcript_log),
        )
        voice_log.state_change(
            session_id=self._session_id,
            from_state=previous.value,
            to_state=GamePhase.FINISHED.value,
            trigger="finish",
            score=record.score,
        )
        self._notify(UpdateKind.PHASE)

        if self.history is not None:
            self.history.save(record)

        await self._release_session()
        return record

    async def cleanup(self) -> None:
        """Cancel timers and pending work and release collaborators without saving."""
        self._generation += 1
        self._running.clear()
        self.timer.stop()
        self._cancel_tasks()
        if self.speech is not None:
            self.speech.stop()
        await self._stop_capture()
        await self._release_session()

    async def _release_session(self) -> None:
        self._unsubscribe_session()
        if self.session is not None:
            await self.session.disconnect()

    def _unsubscribe_session(self) -> None:
        for unsubscribe in self._session_unsubscribers:
            unsubscribe()
        self._session_unsubscribers = []

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def use_pass(self) -> bool:
        """Skip the current word; a no-op returning False once passes run out."""
        if self.state.phase is not GamePhase.PLAYING or self.round is None or self._resolving:
            return False
        if not self.state.use_pass():
            logger.info("pass_rejected", pass_count=self.state.pass_count)
            return False

        self._on_pass(self.round)
        logger.info("word_passed", word=self.round.word.text, pass_count=self.state.pass_count)
        self._notify(UpdateKind.SCORE)
        await self._next_word()
        return True

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def _draw_word(self) -> Optional[Word]:
        if not self.deck.has_more_words:
            return None
        return self.deck.next_word()

    async def _next_word(self) -> None:
        self._generation += 1
        self._cancel_tasks()
        self._resolving = False
        self.judgment = None

        if self.round is not None:
            self.state.move_to_next_word()

        word = self._pending_word or self._draw_word()
        self._pending_word = None
        if word is None:
            logger.info("words_exhausted", category=self.deck.category_id)
            await self.finish()
            return

        self.round = RoundState(word=word, generation=self._generation)
        self._round_recorded = False
        self._begin_round(self.round)
        self._notify(UpdateKind.ROUND)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state.is_active

    def _resolve_round(self, outcome: WordOutcome, user_transcript: Optional[str], ai_transcript: Optional[str]) -> None:
        """Record the current word's result; the round accepts no more input."""
        self._resolving = True
        self._round_recorded = True
        self._results.append(
            WordResult(
                word=self.round.word.text,
                attempts=len(self.round.attempts),
                outcome=outcome,
                user_transcript=user_transcript,
                ai_transcript=ai_transcript,
            )
        )

    async def _advance_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        await self._running.wait()
        if not self._is_current(generation):
            return
        await self._next_word()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("engine_task_failed", error=repr(task.exception()))

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()
            self._tasks.discard(task)

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def _start_capture(self) -> None:
        if self.transcription.is_active:
            await self._stop_capture()
        updates = self.transcription.start()
        self._capture_task = asyncio.create_task(self._consume_transcripts(updates))

    async def _stop_capture(self) -> None:
        await self.transcription.stop()
        task = self._capture_task
        self._capture_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _consume_transcripts(self, updates) -> None:
        async for update in updates:
            if self.state.phase is not GamePhase.PLAYING or self.round is None:
                continue
            self._handle_transcript(update)

    # ------------------------------------------------------------------
    # Realtime session callbacks
    # ------------------------------------------------------------------

    def _handle_realtime_event(self, event: RealtimeEvent) -> None:
        if isinstance(event, ProtocolErrorEvent):
            voice_log.warning("realtime_protocol_error", session_id=self._session_id, code=event.code, error=event.message)

    def _handle_session_state(self, state: SessionConnectionState) -> None:
        if state.phase is ConnectionPhase.FAILED and self.state.is_active:
            voice_log.error("realtime_session_lost", session_id=self._session_id, reason=state.reason, recoverable=True)
            self._notify(UpdateKind.ERROR)

    @property
    def _session_id(self) -> str:
        if self.session is not None and self.session.session_id:
            return self.session.session_id
        return "local"

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _on_timer_tick(self, remaining: float) -> None:
        self._notify(UpdateKind.TIMER)

    async def _on_timer_expired(self) -> None:
        if self.state.is_active:
            await self.finish()

    # ------------------------------------------------------------------
    # Mode hooks
    # ------------------------------------------------------------------

    def _begin_round(self, round_state: RoundState) -> None:
        raise NotImplementedError

    def _handle_transcript(self, update: TranscriptUpdate) -> None:
        raise NotImplementedError

    def _on_pass(self, round_state: RoundState) -> None:
        self._resolve_round(WordOutcome.PASSED, None, None)

    def _record_unfinished_round(self) -> None:
        self._resolve_round(WordOutcome.UNANSWERED, None, None)

    def _on_paused(self) -> None:
        if self.speech is not None:
            self.speech.stop()

    def _on_resumed(self) -> None:
        pass
