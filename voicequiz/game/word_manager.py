"""
Word content loading and per-game word selection.

The content file has the shape::

    {"version": 1, "generated_at": "...",
     "categories": [{"id": "food", "title": "Food",
                     "words": [{"word": "apple", "synonyms": [], "difficulty": 1,
                                "taboo": ["fruit", "red"]}]}]}
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from voicequiz.core.logging import get_logger
from voicequiz.game.models import Word

logger = get_logger(__name__)


class WordManagerError(Exception):
    pass


@dataclass(frozen=True)
class Category:
    id: str
    title: str
    words: List[Word]


def parse_categories(data: dict) -> Dict[str, Category]:
    categories: Dict[str, Category] = {}
    for raw in data.get("categories", []):
        words = [
            Word.create(
                text=w["word"],
                synonyms=w.get("synonyms", []),
                taboo=w.get("taboo", []),
                difficulty=int(w.get("difficulty", 1)),
            )
            for w in raw.get("words", [])
        ]
        categories[raw["id"]] = Category(id=raw["id"], title=raw.get("title", raw["id"]), words=words)
    return categories


def load_categories(path: Union[str, Path]) -> Dict[str, Category]:
    """Load categories from a words JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    categories = parse_categories(data)
    logger.info("words_loaded", path=str(path), categories=len(categories))
    return categories


class WordDeck:
    """Random, non-repeating word selection within one category."""

    def __init__(self, category: Category, rng: Optional[random.Random] = None):
        if not category.words:
            raise WordManagerError(f"No words available in category {category.id}")
        self.category = category
        self._rng = rng or random.Random()
        self._remaining: List[Word] = list(category.words)
        self._rng.shuffle(self._remaining)
        self.current_word: Optional[Word] = None

    @property
    def category_id(self) -> str:
        return self.category.id

    @property
    def category_name(self) -> str:
        return self.category.title

    @property
    def total_words(self) -> int:
        return len(self.category.words)

    @property
    def words_used(self) -> int:
        return self.total_words - len(self._remaining)

    @property
    def has_more_words(self) -> bool:
        return bool(self._remaining)

    def next_word(self) -> Word:
        if not self._remaining:
            raise WordManagerError("No words left in deck")
        self.current_word = self._remaining.pop()
        logger.debug("next_word", category=self.category.id, remaining=len(self._remaining))
        return self.current_word

    def reset(self) -> None:
        self._remaining = list(self.category.words)
        self._rng.shuffle(self._remaining)
        self.current_word = None
