"""
Answer judgment using normalized Levenshtein similarity.

judge() is a pure function: exact or synonym matches are correct without
computing a distance; otherwise similarity >= 0.90 is correct, >= 0.80 is
close and anything lower is incorrect. Empty input never raises.
"""

from __future__ import annotations

import unicodedata
from typing import Iterable

from voicequiz.game.models import Judgment, Word

CORRECT_THRESHOLD = 0.90
CLOSE_THRESHOLD = 0.80


LEADING_ARTICLES = frozenset({"a", "an", "the"})


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace.

    A single leading article is dropped so "an apple" matches "apple".
    """
    if not text:
        return ""
    lowered = text.lower()
    stripped = "".join(ch for ch in lowered if not unicodedata.category(ch).startswith("P"))
    tokens = stripped.split()
    if len(tokens) > 1 and tokens[0] in LEADING_ARTICLES:
        tokens = tokens[1:]
    return " ".join(tokens)


def levenshtein_distance(s1: str, s2: str) -> int:
    """Character-level edit distance (insert, delete, substitute)."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            if c1 == c2:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + 1))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two already-normalized strings."""
    if not a or not b:
        return 0.0
    distance = levenshtein_distance(a, b)
    score = 1.0 - distance / max(len(a), len(b))
    return max(0.0, min(1.0, score))


def contains_word(text: str, word: str) -> bool:
    """True when `word` appears in `text` as whole tokens, ignoring case and punctuation."""
    tokens = normalize(text).split()
    target = normalize(word).split()
    if not tokens or not target:
        return False
    width = len(target)
    return any(tokens[i : i + width] == target for i in range(len(tokens) - width + 1))


def judge_text(candidate: str, target: str, synonyms: Iterable[str] = ()) -> Judgment:
    normalized_candidate = normalize(candidate)
    normalized_target = normalize(target)

    if normalized_candidate and normalized_candidate == normalized_target:
        return Judgment.CORRECT

    if normalized_candidate and any(normalized_candidate == normalize(s) for s in synonyms):
        return Judgment.CORRECT

    score = similarity(normalized_candidate, normalized_target)
    if score >= CORRECT_THRESHOLD:
        return Judgment.CORRECT
    if score >= CLOSE_THRESHOLD:
        return Judgment.CLOSE
    return Judgment.INCORRECT


def judge(candidate: str, target: Word) -> Judgment:
    """Judge a spoken/guessed string against a word and its synonyms."""
    return judge_text(candidate, target.text, target.synonyms)

