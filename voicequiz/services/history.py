"""
Game history sink.

The engine hands each finished GameSessionRecord to a HistorySink and keeps
no reference to it afterwards.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from voicequiz.core.logging import get_logger
from voicequiz.game.models import GameMode, GameSessionRecord

logger = get_logger(__name__)

MAX_HISTORY_COUNT = 50


class HistorySink(Protocol):
    def save(self, record: GameSessionRecord) -> None:
        ...


class InMemoryHistoryStore:
    """Newest-first record list with per-mode best scores."""

    def __init__(self, max_count: int = MAX_HISTORY_COUNT):
        self.max_count = max_count
        self._records: List[GameSessionRecord] = []
        self._best_scores: Dict[GameMode, int] = {}

    def save(self, record: GameSessionRecord) -> None:
        self._records.insert(0, record)
        del self._records[self.max_count :]

        if record.score > self._best_scores.get(record.mode, 0):
            self._best_scores[record.mode] = record.score
            logger.info("best_score_updated", mode=record.mode.value, score=record.score)

        logger.info(
            "game_session_saved",
            session_id=record.id,
            mode=record.mode.value,
            score=record.score,
            words=len(record.words),
        )

    def best_score(self, mode: GameMode) -> int:
        return self._best_scores.get(mode, 0)

    def reset_best_scores(self) -> None:
        self._best_scores.clear()

    def recent(self, limit: int = 10, mode: Optional[GameMode] = None) -> List[GameSessionRecord]:
        records = self._records if mode is None else [r for r in self._records if r.mode is mode]
        return records[:limit]

    def get(self, session_id: str) -> Optional[GameSessionRecord]:
        for record in self._records:
            if record.id == session_id:
                return record
        return None

    def delete(self, session_id: str) -> bool:
        for i, record in enumerate(self._records):
            if record.id == session_id:
                del self._records[i]
                return True
        return False

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
