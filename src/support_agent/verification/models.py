"""Data types shared by the verification pipeline.

These are pydantic models so diagnostics can be logged or serialized
as-is. Utterances are frozen. A CandidateResponse is the one mutable
value: each stage of a turn edits it and records what changed.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"


class ConversationStage(str, Enum):
    INITIAL = "initial"
    DEVELOPING = "developing"
    ESTABLISHED = "established"


class RiskCategory(str, Enum):
    REPETITION = "repetition"
    MEMORY_CONTINUITY = "memory-continuity"
    HALLUCINATION_DOMAIN = "hallucination-domain"
    EMOTION_MISMATCH = "emotion-mismatch"
    CRISIS = "crisis"


class Action(str, Enum):
    """What the controller should do with a candidate, mildest first."""

    PROCEED = "proceed"
    DELAY = "delay"
    SIMPLIFY = "simplify"
    ROLLBACK = "rollback"
    PREVENT = "prevent"


class Utterance(BaseModel):
    """One message in the conversation. Never changes once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    index: int
    timestamp: float


# A session is "established" after this many turns or this many seconds.
_ESTABLISHED_TURNS = 6
_ESTABLISHED_SECONDS = 20 * 60


def stage_for(turns: int, elapsed: float) -> ConversationStage:
    if turns < 2:
        return ConversationStage.INITIAL
    if turns >= _ESTABLISHED_TURNS or elapsed >= _ESTABLISHED_SECONDS:
        return ConversationStage.ESTABLISHED
    return ConversationStage.DEVELOPING


def history_stage(history: Sequence[Utterance]) -> ConversationStage:
    """Stage implied by a bare history: one turn per user utterance."""
    turns = sum(1 for u in history if u.role is Role.USER)
    elapsed = history[-1].timestamp - history[0].timestamp if history else 0.0
    return stage_for(turns, elapsed)


class ConversationContext:
    """Bounded, ordered conversation history for one session.

    The oldest utterances are evicted once ``capacity`` is reached. The
    turn counter keeps counting after eviction, so the stage still
    reflects how long the conversation has really been going.
    """

    def __init__(self, capacity: int, started_at: float) -> None:
        self.capacity = capacity
        self.started_at = started_at
        self.last_activity = started_at
        self.turn_count = 0
        self._utterances: deque[Utterance] = deque(maxlen=capacity)
        self._next_index = 0

    @property
    def utterances(self) -> tuple[Utterance, ...]:
        return tuple(self._utterances)

    def __len__(self) -> int:
        return len(self._utterances)

    def append(self, role: Role, text: str, timestamp: float) -> Utterance:
        utterance = Utterance(
            role=role, text=text, index=self._next_index, timestamp=timestamp
        )
        self._next_index += 1
        self._utterances.append(utterance)
        self.last_activity = timestamp
        return utterance

    def agent_texts(self, limit: int) -> list[str]:
        """Return the text of the last ``limit`` agent utterances, oldest first."""
        texts = [u.text for u in self._utterances if u.role is Role.AGENT]
        return texts[-limit:] if limit > 0 else []

    def stage(self, now: float) -> ConversationStage:
        return stage_for(self.turn_count, now - self.started_at)


class CandidateResponse(BaseModel):
    """The reply being worked on during a turn, plus its edit log."""

    text: str
    corrections: list[str] = Field(default_factory=list)

    def apply(self, stage: str, text: str) -> bool:
        """Replace the text, logging ``stage`` if anything changed."""
        if text == self.text:
            return False
        self.text = text
        self.corrections.append(stage)
        return True


class RiskSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: RiskCategory
    raw_score: float = Field(ge=0.0, le=1.0)
    evidence: str


class VerificationResult(BaseModel):
    """Outcome of scoring one candidate. Built fresh each turn, never stored."""

    confidence_score: float = Field(ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)
    signals: list[RiskSignal] = Field(default_factory=list)
    recommended_action: Action = Action.PROCEED
    response_delay_ms: float = 0.0
    repetition_probability: float = 0.0
    hard_override: bool = False

    @property
    def categories(self) -> list[RiskCategory]:
        seen: list[RiskCategory] = []
        for signal in self.signals:
            if signal.raw_score > 0 and signal.category not in seen:
                seen.append(signal.category)
        return seen


class TurnDiagnostics(BaseModel):
    """What happened during a turn. Logged only, never shown to the user."""

    action: Action
    confidence_score: float
    issues: list[str] = Field(default_factory=list)
    categories: list[RiskCategory] = Field(default_factory=list)
    corrections: list[str] = Field(default_factory=list)
    stage_failures: list[str] = Field(default_factory=list)
    session_reset: bool = False
    crisis_enforced: bool = False
    stage: ConversationStage = ConversationStage.INITIAL
    response_delay_ms: float = 0.0


def texts_of(utterances: Iterable[Utterance], role: Role | None = None) -> list[str]:
    """Return utterance texts, optionally only those spoken by ``role``."""
    return [u.text for u in utterances if role is None or u.role is role]
