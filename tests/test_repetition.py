"""Tests for the repetition detector and its in-place fixes."""

from __future__ import annotations

import pytest

from support_agent.verification.repetition import (
    EXACT_DUPLICATE_SCORE,
    FORMULAIC_SCORE,
    STUTTER_SCORE,
    RepetitionDetector,
    finalize,
    near_duplicate_score,
    split_sentences,
)


@pytest.fixture
def detector() -> RepetitionDetector:
    return RepetitionDetector()


# --- detection ---


def test_exact_duplicate_sentences(detector: RepetitionDetector) -> None:
    sentence = "Based on what you're sharing, that sounds hard."
    report = detector.analyze(f"{sentence} {sentence}")
    assert report.has_repetition
    assert report.score == EXACT_DUPLICATE_SCORE
    assert report.corrected_text == sentence
    assert report.corrected_text.count(sentence) == 1


def test_duplicate_signature_ignores_determiners(detector: RepetitionDetector) -> None:
    assert detector.signature("That is the hard part.") == detector.signature(
        "That is a hard part!"
    )


def test_stutter_is_collapsed(detector: RepetitionDetector) -> None:
    report = detector.analyze("I I hear you. That sounds really really hard.")
    assert report.score == STUTTER_SCORE
    assert report.corrected_text == "I hear you. That sounds really hard."


def test_repeated_opener_keeps_first(detector: RepetitionDetector) -> None:
    report = detector.analyze("It sounds like you're tired. It sounds like work is hard.")
    assert report.score == FORMULAIC_SCORE
    assert report.corrected_text == "It sounds like you're tired. Work is hard."


def test_near_duplicate_of_earlier_reply_needs_rephrase(detector: RepetitionDetector) -> None:
    text = "I'm here to listen whenever you're ready."
    report = detector.analyze(text, [text])
    assert report.score == pytest.approx(1.0)
    assert report.needs_rephrase
    assert report.corrected_text == text


def test_clean_reply(detector: RepetitionDetector) -> None:
    text = "Thanks for telling me. What would help most right now?"
    report = detector.analyze(text, ["Hello, how are you feeling today?"])
    assert not report.has_repetition
    assert report.score == 0.0
    assert report.findings == []
    assert report.corrected_text == text


def test_near_duplicate_score_curve() -> None:
    assert near_duplicate_score(0.0) == 0.0
    assert near_duplicate_score(1.0) == pytest.approx(1.0)
    assert near_duplicate_score(0.65) < near_duplicate_score(0.8) < 1.0


# --- fixes ---


@pytest.mark.parametrize(
    "text",
    [
        "Based on what you're sharing, that sounds hard. "
        "Based on what you're sharing, that sounds hard.",
        "I I hear you. That sounds really really hard.",
        "It sounds like it it sounds like a long week. It sounds like you need rest.",
        "That is hard. That is hard. That is hard. What happened?",
        "Thanks for telling me.",
    ],
)
def test_fix_is_idempotent(detector: RepetitionDetector, text: str) -> None:
    once = detector.fix(text)
    assert detector.fix(once) == once


def test_rephrase_drops_leading_opener(detector: RepetitionDetector) -> None:
    assert detector.rephrase("It sounds like you had a long day.") == "You had a long day."


def test_rephrase_reorders_sentences(detector: RepetitionDetector) -> None:
    assert detector.rephrase("That sounds hard. What happened next?") == (
        "What happened next? That sounds hard."
    )


def test_rephrase_prefixes_clarifying_question(detector: RepetitionDetector) -> None:
    assert detector.rephrase("I'm here to listen whenever you're ready.") == (
        "Can you help me understand a little more about that? "
        "I'm here to listen whenever you're ready."
    )


# --- helpers ---


def test_finalize_punctuates_and_capitalises() -> None:
    assert finalize("hello there") == "Hello there."
    assert finalize("that helps . what next?") == "That helps. What next?"
    assert finalize("   ") == ""


def test_split_sentences() -> None:
    assert split_sentences("One. Two? Three!") == ["One.", "Two?", "Three!"]
