"""Tests for the hallucination / domain-risk classifier."""

from __future__ import annotations

import pytest

from support_agent.verification.models import RiskCategory, Role, Utterance
from support_agent.verification.risk import (
    EARLY_MEMORY_SCORE,
    FACTUAL_SCORE,
    LEGAL_SCORE,
    MEDICAL_SCORE,
    SERVICE_SCORE,
    UNSUPPORTED_CLAIM_SCORE,
    UNSUPPORTED_QUOTE_SCORE,
    RiskClassifier,
)


@pytest.fixture
def classifier() -> RiskClassifier:
    return RiskClassifier()


def _history(*texts: str) -> tuple[Utterance, ...]:
    """Alternate user and agent utterances, starting with the user."""
    return tuple(
        Utterance(role=Role.USER if i % 2 == 0 else Role.AGENT, text=t, index=i, timestamp=0.0)
        for i, t in enumerate(texts)
    )


ESTABLISHED = _history(
    "My sister is visiting next week.",
    "That sounds like a big week. How are you feeling about it?",
    "Work has been busy too.",
    "It sounds like a lot at once. What would help?",
)


# --- domain rules ---


def test_medical_directive(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal(
        "You should stop taking your medication and try 50 mg of melatonin.", "I can't sleep"
    )
    assert signal.raw_score == MEDICAL_SCORE
    assert signal.evidence.startswith("medical directive")


def test_credential_claim(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal(
        "As a licensed therapist, I know how to help with this.", "Can you help me?"
    )
    assert signal.raw_score == LEGAL_SCORE
    assert signal.evidence.startswith("credential claim")


def test_treatment_claim(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal("I can diagnose what's going on for you.", "What's wrong?")
    assert signal.raw_score == SERVICE_SCORE


def test_conflicting_prices(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal(
        "Sessions cost $120, or $150 for couples.", "How much are sessions?"
    )
    assert signal.raw_score == FACTUAL_SCORE
    assert "$120" in signal.evidence and "$150" in signal.evidence


def test_conflicting_providers(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal(
        "Your counselor will be Eric Riesterer, and Wendy Nathan will lead it.", "Who is it?"
    )
    assert signal.raw_score == FACTUAL_SCORE


def test_verified_organization_facts_short_circuit(classifier: RiskClassifier) -> None:
    signal = classifier.domain_signal(
        "Yes, CVMHW offers telehealth through Doxy.me and sessions are $120.",
        "Does CVMHW offer telehealth?",
    )
    assert signal.raw_score == 0.0
    assert signal.evidence == "verified organization facts"


def test_clean_reply_is_low_confidence_not_certainty(classifier: RiskClassifier) -> None:
    signals = classifier.classify("Thank you for sharing that.", "I had a long week.")
    assert [s.category for s in signals] == [
        RiskCategory.MEMORY_CONTINUITY,
        RiskCategory.HALLUCINATION_DOMAIN,
        RiskCategory.CRISIS,
    ]
    assert all(s.raw_score == 0.0 for s in signals)


# --- crisis ---


def test_crisis_checked_even_when_allow_list_matches(classifier: RiskClassifier) -> None:
    signals = classifier.classify(
        "CVMHW offers individual therapy.", "I want to kill myself. Can CVMHW help?"
    )
    by_category = {s.category: s for s in signals}
    assert by_category[RiskCategory.HALLUCINATION_DOMAIN].raw_score == 0.0
    assert by_category[RiskCategory.CRISIS].raw_score == 1.0


def test_crisis_with_resources_is_clean(classifier: RiskClassifier) -> None:
    signal = classifier.crisis_signal("Please call or text 988 right now.", "I want to die")
    assert signal.raw_score == 0.0


# --- memory continuity ---


def test_memory_reference_without_conversation(classifier: RiskClassifier) -> None:
    signal = classifier.memory_signal(
        "As we discussed previously, your anxiety has improved.", "Thanks for checking in"
    )
    assert signal.raw_score == EARLY_MEMORY_SCORE


def test_unsupported_claim(classifier: RiskClassifier) -> None:
    signal = classifier.memory_signal(
        "You mentioned that your brother moved away.", "I'm tired", ESTABLISHED
    )
    assert signal.raw_score == UNSUPPORTED_CLAIM_SCORE


def test_supported_claim(classifier: RiskClassifier) -> None:
    signal = classifier.memory_signal(
        "You mentioned that your sister is visiting.", "I'm tired", ESTABLISHED
    )
    assert signal.raw_score == 0.0


def test_memory_snippets_support_claims(classifier: RiskClassifier) -> None:
    signal = classifier.memory_signal(
        "You mentioned your brother moved away.",
        "I'm tired",
        ESTABLISHED,
        memory_snippets=["User's brother moved away last year"],
    )
    assert signal.raw_score == 0.0


def test_unknown_quote(classifier: RiskClassifier) -> None:
    signal = classifier.memory_signal('Hearing "nothing ever works out" must be hard.', "hi")
    assert signal.raw_score == pytest.approx(UNSUPPORTED_QUOTE_SCORE)


def test_hedge_memory_references(classifier: RiskClassifier) -> None:
    assert classifier.hedge_memory_references(
        "As we discussed previously, your anxiety has improved."
    ) == "It sounds like your anxiety has improved."
    assert classifier.hedge_memory_references(
        "I remember you saying work was stressful."
    ) == "I understand work was stressful."
    unchanged = "What would help most right now?"
    assert classifier.hedge_memory_references(unchanged) == unchanged


@pytest.mark.parametrize(
    ("reply", "expected"),
    [
        ("You said you lost your job.", "It sounds like you lost your job."),
        ("You told me about your sister.", "You're describing your sister."),
        ("You mentioned that work is hard.", "It sounds like work is hard."),
    ],
)
def test_hedges_read_as_sentences(classifier: RiskClassifier, reply: str, expected: str) -> None:
    assert classifier.hedge_memory_references(reply) == expected


def test_memory_reference_in_first_turn_counts_as_early(classifier: RiskClassifier) -> None:
    # One user turn so far: the conversation is still in its initial stage.
    signal = classifier.memory_signal(
        "You mentioned your sister is visiting.",
        "I'm tired",
        ESTABLISHED[:2],
    )
    assert signal.raw_score == EARLY_MEMORY_SCORE


# --- scrutiny ---


@pytest.mark.parametrize(
    ("user_input", "expected"),
    [
        ("Hello there", 1.0),
        ("I want to kill myself", 2.5),
        ("My gambling debt keeps growing and I relapse on alcohol", 2.25),
    ],
)
def test_scrutiny(classifier: RiskClassifier, user_input: str, expected: float) -> None:
    assert classifier.scrutiny(user_input) == pytest.approx(expected)
