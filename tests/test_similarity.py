"""Tests for the similarity engine (token overlap and discounted n-grams)."""

from __future__ import annotations

import pytest

from support_agent.verification.similarity import SimilarityEngine, SimilarityMode, tokenize


@pytest.fixture
def engine() -> SimilarityEngine:
    return SimilarityEngine()


def test_tokenize_lowercases_and_keeps_apostrophes() -> None:
    assert tokenize("You're SO tired, aren't you?") == ["you're", "so", "tired", "aren't", "you"]


@pytest.mark.parametrize("mode", [SimilarityMode.TOKEN, SimilarityMode.NGRAM])
def test_identical_text_scores_one(engine: SimilarityEngine, mode: SimilarityMode) -> None:
    text = "It sounds like work has been really stressful lately."
    assert engine.similarity(text, text, mode) == 1.0


@pytest.mark.parametrize("mode", [SimilarityMode.TOKEN, SimilarityMode.NGRAM])
def test_empty_text_scores_zero(engine: SimilarityEngine, mode: SimilarityMode) -> None:
    assert engine.similarity("I hear you.", "", mode) == 0.0
    assert engine.similarity("", "", mode) == 0.0


def test_token_overlap_is_jaccard_without_stop_words(engine: SimilarityEngine) -> None:
    # {weather, nice, today} vs {today, weather, seems, nice}
    a = "The weather is nice today"
    b = "Today the weather seems nice"
    assert engine.token_overlap(a, b) == pytest.approx(0.75)
    assert engine.token_overlap(b, a) == pytest.approx(0.75)


def test_disjoint_vocabularies_score_zero(engine: SimilarityEngine) -> None:
    assert engine.similarity("apples oranges", "cars trucks") == 0.0


def test_ngram_is_symmetric(engine: SimilarityEngine) -> None:
    a = "thank you for sharing thank you for sharing that with me today"
    b = "thank you for sharing that with me"
    forward = engine.similarity(a, b, SimilarityMode.NGRAM)
    backward = engine.similarity(b, a, SimilarityMode.NGRAM)
    assert forward == pytest.approx(backward)


def test_repeated_filler_cannot_reach_one(engine: SimilarityEngine) -> None:
    """Filler n-grams repeated many times are discounted."""
    a = "thank you for sharing " * 4 + "my dog died"
    b = "thank you for sharing that with me"
    score = engine.similarity(a, b, SimilarityMode.NGRAM)
    assert 0.0 < score < 0.5


def test_short_text_falls_back_to_token_overlap(engine: SimilarityEngine) -> None:
    assert engine.similarity("sad day", "sad day today", SimilarityMode.NGRAM) == pytest.approx(
        2 / 3
    )


@pytest.mark.parametrize("size", [2, 8])
def test_ngram_size_out_of_range(size: int) -> None:
    with pytest.raises(ValueError):
        SimilarityEngine(ngram_size=size)


def test_larger_ngrams_are_stricter() -> None:
    a = "I really hear how hard this week has been for you"
    b = "I really hear how hard this month has been for you"
    loose = SimilarityEngine(ngram_size=3).ngram_overlap(a, b)
    strict = SimilarityEngine(ngram_size=5).ngram_overlap(a, b)
    assert strict < loose
