"""Tests for the shared data types."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from support_agent.verification.models import (
    CandidateResponse,
    ConversationContext,
    ConversationStage,
    RiskCategory,
    RiskSignal,
    Role,
    Utterance,
    VerificationResult,
    history_stage,
    texts_of,
)


def test_context_evicts_oldest() -> None:
    context = ConversationContext(capacity=3, started_at=0.0)
    for i in range(5):
        context.append(Role.USER, f"message {i}", float(i))
    assert len(context) == 3
    assert [u.text for u in context.utterances] == ["message 2", "message 3", "message 4"]
    assert [u.index for u in context.utterances] == [2, 3, 4]
    assert context.last_activity == 4.0


def test_agent_texts_respects_limit() -> None:
    context = ConversationContext(capacity=10, started_at=0.0)
    for i in range(3):
        context.append(Role.USER, f"q{i}", 0.0)
        context.append(Role.AGENT, f"a{i}", 0.0)
    assert context.agent_texts(2) == ["a1", "a2"]
    assert context.agent_texts(0) == []


def test_stage_by_elapsed_time() -> None:
    context = ConversationContext(capacity=10, started_at=0.0)
    context.turn_count = 2
    assert context.stage(60.0) is ConversationStage.DEVELOPING
    assert context.stage(21 * 60.0) is ConversationStage.ESTABLISHED


def test_utterance_is_frozen() -> None:
    utterance = Utterance(role=Role.USER, text="hi", index=0, timestamp=0.0)
    with pytest.raises(ValidationError):
        utterance.text = "changed"  # type: ignore[misc]


def test_candidate_apply_logs_only_changes() -> None:
    candidate = CandidateResponse(text="hello.")
    assert not candidate.apply("noop", "hello.")
    assert candidate.apply("capitalise", "Hello.")
    assert candidate.text == "Hello."
    assert candidate.corrections == ["capitalise"]


def test_raw_score_is_bounded() -> None:
    with pytest.raises(ValidationError):
        RiskSignal(category=RiskCategory.CRISIS, raw_score=1.5, evidence="x")


def test_result_categories_skip_clean_signals() -> None:
    result = VerificationResult(
        confidence_score=0.8,
        signals=[
            RiskSignal(category=RiskCategory.REPETITION, raw_score=0.0, evidence="none"),
            RiskSignal(category=RiskCategory.CRISIS, raw_score=1.0, evidence="crisis"),
        ],
    )
    assert result.categories == [RiskCategory.CRISIS]


def test_texts_of_filters_by_role() -> None:
    utterances = [
        Utterance(role=Role.USER, text="q", index=0, timestamp=0.0),
        Utterance(role=Role.AGENT, text="a", index=1, timestamp=0.0),
    ]
    assert texts_of(utterances) == ["q", "a"]
    assert texts_of(utterances, Role.AGENT) == ["a"]


def test_history_stage_counts_user_turns() -> None:
    def turn(role: Role, index: int, timestamp: float = 0.0) -> Utterance:
        return Utterance(role=role, text="x", index=index, timestamp=timestamp)

    assert history_stage(()) is ConversationStage.INITIAL
    assert history_stage([turn(Role.USER, 0), turn(Role.AGENT, 1)]) is ConversationStage.INITIAL
    two_turns = [turn(Role.USER, 0), turn(Role.AGENT, 1), turn(Role.USER, 2)]
    assert history_stage(two_turns) is ConversationStage.DEVELOPING
    long_ago = [turn(Role.USER, 0), turn(Role.USER, 1, timestamp=21 * 60.0)]
    assert history_stage(long_ago) is ConversationStage.ESTABLISHED
