"""Tests for the mathematical verifier: scoring, action ladder, delay."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from support_agent.verification.errors import StageFailure, VerificationFailure
from support_agent.verification.models import (
    Action,
    RiskCategory,
    RiskSignal,
    Role,
    Utterance,
)
from support_agent.verification.settings import VerificationConfig
from support_agent.verification.verifier import Verifier, compute_delay


@pytest.fixture
def verifier() -> Verifier:
    return Verifier(VerificationConfig())


REPEATED = "It sounds like work has been really stressful lately. What part feels heaviest?"


def _signal(category: RiskCategory, raw: float) -> RiskSignal:
    return RiskSignal(category=category, raw_score=raw, evidence="test")


# --- scoring ---


def test_clean_reply_scores_at_ceiling(verifier: Verifier) -> None:
    result = verifier.verify(
        "Thank you for asking. What would you like to know?",
        "Can you tell me about your services?",
    )
    assert result.confidence_score == pytest.approx(0.95)
    assert result.confidence_score < 1.0
    assert result.recommended_action is Action.PROCEED
    assert result.response_delay_ms == 0.0
    assert result.issues == []


def test_verify_is_deterministic(verifier: Verifier) -> None:
    history = (Utterance(role=Role.AGENT, text=REPEATED, index=0, timestamp=0.0),)
    first = verifier.verify(REPEATED, "Yeah, it has.", history)
    second = verifier.verify(REPEATED, "Yeah, it has.", history)
    assert first.model_dump() == second.model_dump()


def test_adding_signals_never_raises_confidence(verifier: Verifier) -> None:
    base = [_signal(RiskCategory.REPETITION, 0.4)]
    for category in RiskCategory:
        for raw in (0.0, 0.1, 0.5, 1.0):
            more = base + [_signal(category, raw)]
            assert verifier.score(more) <= verifier.score(base)


def test_small_raw_scores_are_nearly_free(verifier: Verifier) -> None:
    small = verifier.score([_signal(RiskCategory.HALLUCINATION_DOMAIN, 0.01)])
    large = verifier.score([_signal(RiskCategory.HALLUCINATION_DOMAIN, 1.0)])
    assert 0.95 - small < 0.01
    assert 0.95 - large > 0.15


def test_crisis_alone_sinks_below_rollback(verifier: Verifier) -> None:
    score = verifier.score([_signal(RiskCategory.CRISIS, 1.0)])
    assert score < verifier.config.prevent_threshold


def test_scrutiny_increases_penalty(verifier: Verifier) -> None:
    signals = [_signal(RiskCategory.MEMORY_CONTINUITY, 1.0)]
    assert verifier.score(signals, scrutiny=1.5) < verifier.score(signals)


# --- action ladder ---


@pytest.mark.parametrize(
    ("confidence", "probability", "override", "expected"),
    [
        (0.2, 0.0, False, Action.PREVENT),
        (0.8, 0.99, False, Action.ROLLBACK),
        (0.95, 0.99, False, Action.PROCEED),
        (0.5, 0.0, False, Action.SIMPLIFY),
        (0.7, 0.0, False, Action.DELAY),
        (0.7, 0.5, False, Action.DELAY),
        (0.95, 0.0, False, Action.PROCEED),
        (0.6, 0.0, True, Action.ROLLBACK),
        (0.1, 0.0, True, Action.PREVENT),
    ],
)
def test_recommend(
    verifier: Verifier,
    confidence: float,
    probability: float,
    override: bool,
    expected: Action,
) -> None:
    assert verifier.recommend(confidence, probability, override) is expected


def test_rollback_probability_is_logistic(verifier: Verifier) -> None:
    assert verifier.rollback_probability(0.6) == pytest.approx(0.5)
    assert verifier.rollback_probability(1.0) > 0.95
    assert verifier.rollback_probability(0.0) < 0.01


# --- end-to-end verdicts ---


def test_crisis_without_resources(verifier: Verifier) -> None:
    result = verifier.verify("That sounds tough. What's been going on?", "I want to kill myself")
    assert result.hard_override
    assert RiskCategory.CRISIS in result.categories
    assert result.recommended_action in (Action.ROLLBACK, Action.PREVENT)


def test_memory_reference_reduces_confidence(verifier: Verifier) -> None:
    result = verifier.verify(
        "As we discussed previously, your anxiety has improved.", "Thanks for checking in"
    )
    assert RiskCategory.MEMORY_CONTINUITY in result.categories
    assert result.confidence_score < 0.95
    assert result.recommended_action is Action.DELAY
    assert 625 < result.response_delay_ms <= 3750


def test_exact_duplicates_trigger_rollback(verifier: Verifier) -> None:
    sentence = "Based on what you're sharing, that sounds hard."
    result = verifier.verify(f"{sentence} {sentence}", "Work is a lot right now.")
    assert result.repetition_probability > 0.7
    assert result.recommended_action is Action.ROLLBACK


def test_repeat_of_previous_turn_triggers_rollback(verifier: Verifier) -> None:
    history = (
        Utterance(role=Role.USER, text="Work is a lot.", index=0, timestamp=0.0),
        Utterance(role=Role.AGENT, text=REPEATED, index=1, timestamp=0.0),
    )
    result = verifier.verify(REPEATED, "ok", history)
    assert RiskCategory.REPETITION in result.categories
    assert result.recommended_action is Action.ROLLBACK


# --- failures ---


@pytest.mark.parametrize(("candidate", "user_input"), [("   ", "hi"), ("hi", None), (None, "hi")])
def test_malformed_input_raises(verifier: Verifier, candidate: object, user_input: object) -> None:
    with pytest.raises(VerificationFailure):
        verifier.verify(candidate, user_input)  # type: ignore[arg-type]


def test_crisis_detection_failure_fails_closed(verifier: Verifier) -> None:
    with patch.object(verifier.risk, "crisis_signal", side_effect=RuntimeError("boom")):
        result = verifier.verify("Thanks for sharing.", "Hello")
    assert result.hard_override
    assert result.recommended_action in (Action.ROLLBACK, Action.PREVENT)


def test_stage_failure_is_fail_open(verifier: Verifier) -> None:
    failures: list[StageFailure] = []
    with patch.object(verifier.emotion, "check", side_effect=ValueError("bad lexicon")):
        result = verifier.verify(
            "Thank you for asking. What would you like to know?",
            "I feel sad",
            failures=failures,
        )
    assert [f.stage for f in failures] == ["emotion-consistency"]
    assert RiskCategory.EMOTION_MISMATCH not in result.categories
    assert result.recommended_action is Action.PROCEED


# --- delay and config ---


def test_compute_delay() -> None:
    config = VerificationConfig()
    assert compute_delay(0.5, Action.PROCEED, config) == 0.0
    assert compute_delay(0.5, Action.PREVENT, config) == 0.0
    assert compute_delay(0.0, Action.DELAY, config) == pytest.approx(625 + 1.1303338 * 1875)
    mild = compute_delay(0.8, Action.ROLLBACK, config)
    assert mild < compute_delay(0.4, Action.ROLLBACK, config)
    capped = VerificationConfig(delay_max_ms=1000)
    assert compute_delay(0.0, Action.DELAY, capped) == 1000


def test_config_rejects_bad_threshold_order() -> None:
    with pytest.raises(ValueError):
        VerificationConfig(prevent_threshold=0.6, simplify_threshold=0.5)


def test_config_requires_crisis_multiplier_to_be_largest() -> None:
    multipliers = {category: 1.0 for category in RiskCategory}
    with pytest.raises(ValueError):
        VerificationConfig(category_multiplier=multipliers)
