"""
Unit tests for answer judgment.
"""

import pytest

from voicequiz.game.answer_judge import (
    contains_word,
    judge,
    judge_text,
    levenshtein_distance,
    normalize,
    similarity,
)
from voicequiz.game.models import Judgment, Word


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize("  Hello,   World!! ") == "hello world"

    def test_strips_unicode_punctuation(self):
        assert normalize("«Apple»…") == "apple"

    def test_drops_single_leading_article(self):
        assert normalize("An apple") == "apple"
        assert normalize("the big apple") == "big apple"

    def test_keeps_lone_article(self):
        assert normalize("a") == "a"

    def test_empty(self):
        assert normalize("") == ""
        assert normalize("?!") == ""


class TestSimilarity:
    def test_identical(self):
        assert similarity("apple", "apple") == 1.0

    def test_empty_is_zero(self):
        assert similarity("", "apple") == 0.0
        assert similarity("apple", "") == 0.0

    def test_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3

    def test_non_increasing_as_distance_grows(self):
        target = "elephant"
        candidates = ["elephant", "elephanx", "elephaxx", "elephxxx", "elepxxxx"]
        scores = [similarity(c, target) for c in candidates]
        assert scores == sorted(scores, reverse=True)


class TestJudge:
    def test_exact_match(self):
        assert judge("Apple", Word.create("apple")) is Judgment.CORRECT

    def test_article_prefix_is_exact(self):
        assert similarity(normalize("an apple"), normalize("apple")) == 1.0
        assert judge("an apple", Word.create("apple")) is Judgment.CORRECT

    def test_synonym_match(self):
        assert judge("Loaf!", Word.create("bread", synonyms=["loaf"])) is Judgment.CORRECT

    def test_high_similarity_is_correct(self):
        # 1 edit over 10 characters -> 0.90
        assert judge_text("pineapples", "pineapple") is Judgment.CORRECT

    def test_close(self):
        # 1 edit over 6 characters -> 0.83
        assert judge_text("banan", "banana") is Judgment.CLOSE

    def test_incorrect(self):
        assert judge_text("car", "apple") is Judgment.INCORRECT

    @pytest.mark.parametrize("candidate,target", [("", "apple"), ("apple", ""), ("", "")])
    def test_empty_inputs_are_incorrect(self, candidate, target):
        assert judge_text(candidate, target) is Judgment.INCORRECT


class TestContainsWord:
    def test_whole_token(self):
        assert contains_word("I eat an apple every day", "apple")

    def test_case_and_punctuation_insensitive(self):
        assert contains_word("Is it... APPLE?", "apple")

    def test_substring_is_not_a_token(self):
        assert not contains_word("I like pineapples", "apple")

    def test_multi_word_target(self):
        assert contains_word("you ride the ice cream truck", "ice cream")
        assert not contains_word("ice and cream", "ice cream")

    def test_empty(self):
        assert not contains_word("", "apple")
        assert not contains_word("apple", "")
