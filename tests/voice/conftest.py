"""
Fixtures for the voice and game tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.voice.fakes import FakeSpeech
from voicequiz.game.models import Word

@pytest.fixture
def apple():
    return Word.create("apple", taboo=["fruit", "red"])


@pytest.fixture
def banana():
    return Word.create("banana", taboo=["yellow", "monkey"])


@pytest.fixture
def completions():
    client = MagicMock()
    client.describe = AsyncMock(return_value="You bite into it.")
    client.guess = AsyncMock(return_value=None)
    return client


@pytest.fixture
def speech():
    return FakeSpeech()
