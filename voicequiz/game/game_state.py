"""
Game session accounting: phase, score and passes.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from voicequiz.core.errors import GamePhaseError
from voicequiz.game.models import GameMode, GamePhase

MAX_PASS_COUNT = 2

_TRANSITIONS = {
    GamePhase.READY: {GamePhase.PLAYING},
    GamePhase.PLAYING: {GamePhase.PAUSED, GamePhase.FINISHED},
    GamePhase.PAUSED: {GamePhase.PLAYING, GamePhase.FINISHED},
    GamePhase.FINISHED: set(),
}


class GameSessionState:
    """Phase machine plus score/pass counters for one game."""

    def __init__(self, mode: GameMode, category: str, max_pass_count: int = MAX_PASS_COUNT):
        self.mode = mode
        self.category = category
        self.max_pass_count = max_pass_count
        self.phase = GamePhase.READY
        self.score = 0
        self.pass_count = 0
        self.words_played = 0
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self._start_monotonic: Optional[float] = None

    def _transition(self, target: GamePhase) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise GamePhaseError(message=f"Cannot move from {self.phase.value} to {target.value}")
        self.phase = target

    def start(self) -> None:
        self._transition(GamePhase.PLAYING)
        self.started_at = datetime.now(timezone.utc)
        self._start_monotonic = time.monotonic()
        self.score = 0
        self.pass_count = 0
        self.words_played = 0

    def pause(self) -> None:
        self._transition(GamePhase.PAUSED)

    def resume(self) -> None:
        self._transition(GamePhase.PLAYING)

    def finish(self) -> None:
        self._transition(GamePhase.FINISHED)
        self.ended_at = datetime.now(timezone.utc)

    @property
    def is_active(self) -> bool:
        return self.phase in (GamePhase.PLAYING, GamePhase.PAUSED)

    def can_pass(self) -> bool:
        return self.pass_count < self.max_pass_count

    def use_pass(self) -> bool:
        if not self.can_pass():
            return False
        self.pass_count += 1
        return True

    @property
    def remaining_passes(self) -> int:
        return max(0, self.max_pass_count - self.pass_count)

    def increment_score(self) -> None:
        self.score += 1

    def move_to_next_word(self) -> None:
        self.words_played += 1
