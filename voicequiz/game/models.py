"""
Game data model

Words, rounds, guess attempts and the session record handed to the
history store when a game finishes.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional


class GameMode(str, Enum):
    """Play modes; the value is the relay's `gameMode` string."""

    MODE_A = "modeA"  # AI describes, user guesses
    MODE_B = "modeB"  # User describes, AI guesses

    @property
    def display_name(self) -> str:
        return "AI Describes" if self is GameMode.MODE_A else "You Describe"


class GamePhase(str, Enum):
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class Judgment(str, Enum):
    """Outcome of judging one guess attempt."""

    CORRECT = "correct"
    CLOSE = "close"
    INCORRECT = "incorrect"
    PENALTY = "penalty"

    @property
    def feedback(self) -> str:
        return {
            Judgment.CORRECT: "Correct!",
            Judgment.CLOSE: "Close!",
            Judgment.INCORRECT: "Try again!",
            Judgment.PENALTY: "You said the word!",
        }[self]


class AttemptSource(str, Enum):
    USER = "user"
    AI = "ai"


class WordOutcome(str, Enum):
    """How a round ended."""

    CORRECT = "correct"
    PASSED = "passed"
    PENALTY = "penalty"
    UNANSWERED = "unanswered"


@dataclass(frozen=True)
class Word:
    """A quiz word. Immutable once loaded."""

    text: str
    synonyms: frozenset = field(default_factory=frozenset)
    taboo: frozenset = field(default_factory=frozenset)
    difficulty: int = 1

    @classmethod
    def create(
        cls,
        text: str,
        synonyms: Iterable[str] = (),
        taboo: Iterable[str] = (),
        difficulty: int = 1,
    ) -> "Word":
        return cls(text=text, synonyms=frozenset(synonyms), taboo=frozenset(taboo), difficulty=difficulty)

    @property
    def taboo_list(self) -> List[str]:
        """Taboo words in a stable order for request payloads."""
        return sorted(self.taboo)


@dataclass(frozen=True)
class GuessAttempt:
    text: str
    source: AttemptSource
    judgment: Judgment


@dataclass
class RoundState:
    """Mutable state for one word. Owned by the turn engine."""

    word: Word
    generation: int
    started_at: float = field(default_factory=time.monotonic)
    attempts: List[GuessAttempt] = field(default_factory=list)
    hints_given: List[str] = field(default_factory=list)

    def record_attempt(self, text: str, source: AttemptSource, judgment: Judgment) -> GuessAttempt:
        attempt = GuessAttempt(text=text, source=source, judgment=judgment)
        self.attempts.append(attempt)
        return attempt


@dataclass(frozen=True)
class WordResult:
    word: str
    attempts: int
    outcome: WordOutcome
    user_transcript: Optional[str] = None
    ai_transcript: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def passed(self) -> bool:
        return self.outcome is WordOutcome.PASSED

    @property
    def is_correct(self) -> bool:
        return self.outcome is WordOutcome.CORRECT


@dataclass(frozen=True)
class GameSessionRecord:
    """Summary of a finished game, produced once at `finished`."""

    mode: GameMode
    category_id: str
    category_name: str
    score: int
    max_score: int
    pass_count: int
    started_at: datetime
    ended_at: datetime
    words: List[WordResult]
    transcript: List[str]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def duration(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return self.score / self.max_score

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "categoryId": self.category_id,
            "categoryName": self.category_name,
            "score": self.score,
            "maxScore": self.max_score,
            "passCount": self.pass_count,
            "startTime": self.started_at.isoformat(),
            "endTime": self.ended_at.isoformat(),
            "duration": self.duration,
            "words": [
                {
                    "word": w.word,
                    "attempts": w.attempts,
                    "judgment": w.outcome.value,
                    "passed": w.passed,
                    "isCorrect": w.is_correct,
                    "userTranscript": w.user_transcript,
                    "aiTranscript": w.ai_transcript,
                    "timestamp": w.timestamp.isoformat(),
                }
                for w in self.words
            ],
            "transcript": list(self.transcript),
        }
