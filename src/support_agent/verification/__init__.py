"""Verification layer for the support agent.

Runs after the response generator writes a candidate reply and before the
reply reaches the user. Every check is deterministic pattern matching:

- Repetition: duplicate sentences, stutters, repeated openers, replies
  that repeat an earlier turn
- Emotion consistency: the reply must not call a distressed user neutral
- Hallucination / domain risk: medical, legal, service and factual claims,
  memory references with nothing behind them, crisis handling
- Confidence scoring: one score and one action per reply

``TurnPipeline`` is the entry point; the rest is exported for tests and
for callers that want a single stage.
"""

from support_agent.verification.controller import Controller, ControllerOutcome, select_fallback
from support_agent.verification.emotion import EmotionCheck, EmotionChecker, EmotionReading
from support_agent.verification.errors import (
    CrisisDetectionFailure,
    StageFailure,
    VerificationError,
    VerificationFailure,
    run_stage,
)
from support_agent.verification.lexicon import Lexicon, get_lexicon
from support_agent.verification.models import (
    Action,
    CandidateResponse,
    ConversationContext,
    ConversationStage,
    RiskCategory,
    RiskSignal,
    Role,
    TurnDiagnostics,
    Utterance,
    VerificationResult,
)
from support_agent.verification.pipeline import ConversationSession, TurnPipeline
from support_agent.verification.repetition import RepetitionDetector, RepetitionReport
from support_agent.verification.risk import RiskClassifier
from support_agent.verification.settings import VerificationConfig
from support_agent.verification.similarity import SimilarityEngine, SimilarityMode
from support_agent.verification.verifier import Verifier, compute_delay

__all__ = [
    "Action",
    "CandidateResponse",
    "Controller",
    "ControllerOutcome",
    "ConversationContext",
    "ConversationSession",
    "ConversationStage",
    "CrisisDetectionFailure",
    "EmotionCheck",
    "EmotionChecker",
    "EmotionReading",
    "Lexicon",
    "RepetitionDetector",
    "RepetitionReport",
    "RiskCategory",
    "RiskClassifier",
    "RiskSignal",
    "Role",
    "SimilarityEngine",
    "SimilarityMode",
    "StageFailure",
    "TurnDiagnostics",
    "TurnPipeline",
    "Utterance",
    "VerificationConfig",
    "VerificationError",
    "VerificationFailure",
    "VerificationResult",
    "Verifier",
    "compute_delay",
    "get_lexicon",
    "run_stage",
    "select_fallback",
]
