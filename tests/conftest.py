"""
Shared pytest configuration for the VoiceQuiz test suite.
"""

import os

# Settings are read at import time; keep the suite independent of a local .env.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("VOICE_LOG_LEVEL", "DEBUG")
os.environ.setdefault("RELAY_BASE_URL", "http://relay.test")

import random  # noqa: E402

import pytest  # noqa: E402

from voicequiz.game.models import Word  # noqa: E402
from voicequiz.game.word_manager import Category, WordDeck  # noqa: E402


@pytest.fixture
def food_category() -> Category:
    return Category(
        id="food",
        title="Food",
        words=[
            Word.create("apple", taboo=["fruit", "red"]),
            Word.create("banana", taboo=["yellow", "monkey"]),
            Word.create("bread", synonyms=["loaf"], taboo=["bake", "toast"]),
        ],
    )


@pytest.fixture
def food_deck(food_category) -> WordDeck:
    return WordDeck(food_category, rng=random.Random(7))
