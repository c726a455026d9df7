"""Mathematical verifier: many risk signals in, one confidence and action out.

Confidence starts at a ceiling below 1.0 and every signal can only lower
it::

    confidence = ceiling * prod(1 - min(1, log10(raw * k_c + 1) * m_c * scrutiny / scale))

``k_c`` and ``m_c`` are per-category, ``scrutiny`` is the stacked
specialized-concern multiplier for the user's message. log10 keeps small
raw scores almost free while large ones bite hard.

Rollback is decided separately from confidence, by a logistic function of
the repetition score. Crisis without resources is a hard override that
always lands on rollback or prevent.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from support_agent.verification.emotion import EmotionChecker
from support_agent.verification.errors import (
    CrisisDetectionFailure,
    StageFailure,
    VerificationFailure,
    run_stage,
)
from support_agent.verification.lexicon import Lexicon, get_lexicon
from support_agent.verification.models import (
    Action,
    RiskCategory,
    RiskSignal,
    Role,
    Utterance,
    VerificationResult,
)
from support_agent.verification.repetition import RepetitionDetector
from support_agent.verification.risk import RiskClassifier
from support_agent.verification.settings import VerificationConfig
from support_agent.verification.similarity import SimilarityEngine

logger = logging.getLogger(__name__)

# Raw emotion scores: a wrong assertion is worse than a missing echo.
EMOTION_WRONG_ASSERTION_SCORE = 1.0
EMOTION_OMISSION_SCORE = 0.8

_CATEGORY_ORDER = list(RiskCategory)


def compute_delay(confidence: float, action: Action, config: VerificationConfig) -> float:
    """Artificial response delay in milliseconds for delay and rollback."""
    if action not in (Action.DELAY, Action.ROLLBACK):
        return 0.0
    delay = config.delay_base_ms + math.log10(
        1 + (1 - confidence) * config.delay_k
    ) * config.delay_scale_ms
    return min(config.delay_max_ms, delay)


class Verifier:
    def __init__(
        self,
        config: VerificationConfig | None = None,
        lexicon: Lexicon | None = None,
    ) -> None:
        self.config = config or VerificationConfig()
        self.lexicon = lexicon or get_lexicon()
        self.similarity = SimilarityEngine(self.lexicon, self.config.ngram_size)
        self.repetition = RepetitionDetector(
            self.lexicon, self.similarity, self.config.near_duplicate_threshold
        )
        self.emotion = EmotionChecker(self.lexicon)
        self.risk = RiskClassifier(self.lexicon)

    def verify(
        self,
        candidate: str,
        user_input: str,
        history: Sequence[Utterance] = (),
        memory_snippets: Sequence[str] = (),
        failures: list[StageFailure] | None = None,
    ) -> VerificationResult:
        """Score a candidate reply and recommend what to do with it.

        Args:
            candidate: The reply text being checked.
            user_input: The user message it answers.
            history: Prior utterances, oldest first. Never mutated.
            memory_snippets: Externally retrieved memories that count as
                support for "you mentioned ..." claims.
            failures: Optional list collecting stage failures.

        Returns:
            A fresh VerificationResult. Identical inputs give identical results.

        Raises:
            VerificationFailure: If the candidate or user input is malformed.
        """
        if not isinstance(candidate, str) or not candidate.strip():
            raise VerificationFailure("candidate reply is empty or not text")
        if not isinstance(user_input, str):
            raise VerificationFailure("user input is not text")
        history = tuple(history)
        if any(not isinstance(u, Utterance) for u in history):
            raise VerificationFailure("history must contain Utterance objects")

        signals = [
            self._repetition_signal(candidate, history, failures),
            run_stage(
                "memory-continuity",
                lambda: self.risk.memory_signal(candidate, user_input, history, memory_snippets),
                None,
                failures,
            ),
            run_stage(
                "hallucination-domain",
                lambda: self.risk.domain_signal(candidate, user_input),
                None,
                failures,
            ),
            self._emotion_signal(candidate, user_input, failures),
            self._crisis_signal(candidate, user_input),
        ]
        signals = [s for s in signals if s is not None]
        scrutiny = run_stage("scrutiny", lambda: self.risk.scrutiny(user_input), 1.0, failures)

        confidence = self.score(signals, scrutiny)
        repetition = next(
            (s.raw_score for s in signals if s.category is RiskCategory.REPETITION), 0.0
        )
        probability = self.rollback_probability(repetition)
        hard_override = any(
            s.category is RiskCategory.CRISIS and s.raw_score > 0 for s in signals
        )
        action = self.recommend(confidence, probability, hard_override)

        issues = [
            f"{s.category.value}: {s.evidence}"
            for s in sorted(signals, key=lambda s: _CATEGORY_ORDER.index(s.category))
            if s.raw_score > 0
        ]
        result = VerificationResult(
            confidence_score=confidence,
            issues=issues,
            signals=signals,
            recommended_action=action,
            response_delay_ms=compute_delay(confidence, action, self.config),
            repetition_probability=probability,
            hard_override=hard_override,
        )
        logger.debug(
            "Verified candidate: confidence=%.3f action=%s issues=%s",
            confidence,
            action.value,
            issues,
        )
        return result

    def score(self, signals: Sequence[RiskSignal], scrutiny: float = 1.0) -> float:
        """Combine signals into a confidence. Adding signals never raises it."""
        cfg = self.config
        confidence = cfg.confidence_ceiling
        for signal in signals:
            k = cfg.category_k[signal.category]
            multiplier = cfg.category_multiplier[signal.category]
            penalty = math.log10(signal.raw_score * k + 1) * multiplier * scrutiny
            confidence *= 1 - min(1.0, penalty / cfg.penalty_scale)
        return max(0.0, min(cfg.confidence_ceiling, confidence))

    def rollback_probability(self, repetition_score: float) -> float:
        cfg = self.config
        exponent = -cfg.rollback_sigmoid_steepness * (
            repetition_score - cfg.rollback_sigmoid_midpoint
        )
        return 1 / (1 + math.exp(exponent))

    def recommend(
        self, confidence: float, rollback_probability: float, hard_override: bool = False
    ) -> Action:
        cfg = self.config
        if hard_override:
            return Action.PREVENT if confidence < cfg.prevent_threshold else Action.ROLLBACK
        if confidence < cfg.prevent_threshold:
            return Action.PREVENT
        if (
            rollback_probability > cfg.rollback_probability
            and confidence < cfg.rollback_threshold
        ):
            return Action.ROLLBACK
        if confidence < cfg.simplify_threshold:
            return Action.SIMPLIFY
        if confidence < cfg.delay_threshold:
            return Action.DELAY
        return Action.PROCEED

    def prior_agent_texts(self, history: Sequence[Utterance]) -> list[str]:
        texts = [u.text for u in history if u.role is Role.AGENT]
        lookback = self.config.repetition_lookback
        return texts[-lookback:] if lookback > 0 else []

    def _repetition_signal(
        self,
        candidate: str,
        history: Sequence[Utterance],
        failures: list[StageFailure] | None,
    ) -> RiskSignal | None:
        prior = self.prior_agent_texts(history)
        report = run_stage(
            "repetition", lambda: self.repetition.analyze(candidate, prior), None, failures
        )
        if report is None:
            return None
        return RiskSignal(
            category=RiskCategory.REPETITION,
            raw_score=report.score,
            evidence="; ".join(report.findings) or "no repetition",
        )

    def _emotion_signal(
        self,
        candidate: str,
        user_input: str,
        failures: list[StageFailure] | None,
    ) -> RiskSignal | None:
        check = run_stage(
            "emotion-consistency",
            lambda: self.emotion.check(candidate, user_input),
            None,
            failures,
        )
        if check is None:
            return None
        if not check.misidentified:
            return RiskSignal(
                category=RiskCategory.EMOTION_MISMATCH, raw_score=0.0, evidence="consistent"
            )
        raw = EMOTION_WRONG_ASSERTION_SCORE if check.wrong_assertion else EMOTION_OMISSION_SCORE
        return RiskSignal(
            category=RiskCategory.EMOTION_MISMATCH,
            raw_score=raw,
            evidence="; ".join(check.reasons),
        )

    def _crisis_signal(self, candidate: str, user_input: str) -> RiskSignal:
        # Fails closed: an error while checking counts as an unhandled crisis.
        try:
            return self.risk.crisis_signal(candidate, user_input)
        except Exception as e:  # noqa: BLE001
            failure = CrisisDetectionFailure(f"{type(e).__name__}: {e}")
            logger.warning("Crisis detection failed, assuming crisis: %s", failure)
            return RiskSignal(
                category=RiskCategory.CRISIS,
                raw_score=1.0,
                evidence=f"crisis detection failed: {failure}",
            )
