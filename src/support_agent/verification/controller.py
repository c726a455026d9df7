"""Carry out the verifier's recommended action on a candidate reply.

- proceed: pass through unchanged
- delay: pass through unchanged; the caller waits ``response_delay_ms``
- simplify: keep the first sentences and ask a clarifying question
- rollback: repair once, re-verify, and fall through to prevent if the
  repaired reply still is not good enough
- prevent: discard the reply and use a fallback chosen from the user input
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from support_agent.verification.errors import StageFailure, VerificationFailure, run_stage
from support_agent.verification.models import (
    Action,
    CandidateResponse,
    Utterance,
    VerificationResult,
)
from support_agent.verification.repetition import finalize, split_sentences
from support_agent.verification.verifier import Verifier

logger = logging.getLogger(__name__)

# Replies this short get the clarifying question appended, not truncated.
_SIMPLIFY_KEEP_WHOLE = 3
_SIMPLIFY_KEEP_SENTENCES = 2


class ControllerOutcome(BaseModel):
    text: str
    action: Action
    corrections: list[str] = Field(default_factory=list)


def select_fallback(
    fallbacks: Sequence[str], user_input: str, avoid: str | None = None
) -> str:
    """Pick a fallback reply from a hash of the user input.

    The same input always gets the same reply. If that reply equals
    ``avoid`` (usually the previous agent turn) the next one is used.
    """
    digest = hashlib.sha256(user_input.encode("utf-8")).digest()
    index = int.from_bytes(digest[:8], "big") % len(fallbacks)
    if avoid is not None and fallbacks[index].strip() == avoid.strip():
        index = (index + 1) % len(fallbacks)
    return fallbacks[index]


class Controller:
    def __init__(self, verifier: Verifier | None = None) -> None:
        self.verifier = verifier or Verifier()
        self.lexicon = self.verifier.lexicon

    def execute(
        self,
        result: VerificationResult,
        candidate: CandidateResponse,
        user_input: str,
        history: Sequence[Utterance] = (),
        memory_snippets: Sequence[str] = (),
        avoid: str | None = None,
        failures: list[StageFailure] | None = None,
    ) -> ControllerOutcome:
        """Apply ``result.recommended_action`` to ``candidate``.

        Args:
            result: The verifier's verdict on the candidate.
            candidate: Working reply. Edits are applied to it in place.
            user_input: The user message being answered.
            history: Prior utterances, used when re-verifying a rollback.
            memory_snippets: Passed through to re-verification.
            avoid: Text a fallback must not repeat (the last agent reply).
            failures: Optional list collecting stage failures.

        Returns:
            The final text, the action actually taken, and the corrections.
        """
        action = result.recommended_action
        if action is Action.SIMPLIFY:
            candidate.apply("simplify", self.simplify(candidate.text))
        elif action is Action.ROLLBACK:
            action = self._rollback(
                candidate, user_input, history, memory_snippets, avoid, failures
            )
        elif action is Action.PREVENT:
            self._prevent(candidate, user_input, avoid)

        if action is not result.recommended_action:
            logger.info(
                "Controller escalated %s to %s",
                result.recommended_action.value,
                action.value,
            )
        return ControllerOutcome(
            text=candidate.text, action=action, corrections=list(candidate.corrections)
        )

    def simplify(self, text: str) -> str:
        sentences = split_sentences(text)
        if len(sentences) <= _SIMPLIFY_KEEP_WHOLE:
            question = self.lexicon.simplify_question_short
            if text.rstrip().endswith(question):
                return text
            return finalize(f"{finalize(text)} {question}")
        kept = " ".join(sentences[:_SIMPLIFY_KEEP_SENTENCES])
        return finalize(f"{finalize(kept)} {self.lexicon.simplify_question_long}")

    def select_fallback(self, user_input: str, avoid: str | None = None) -> str:
        return select_fallback(self.lexicon.fallbacks, user_input, avoid)

    def repair(
        self,
        text: str,
        user_input: str,
        history: Sequence[Utterance] = (),
        failures: list[StageFailure] | None = None,
    ) -> tuple[str, list[str]]:
        """Re-apply the repetition and emotion fixes once."""
        steps: list[str] = []
        detector = self.verifier.repetition
        prior = self.verifier.prior_agent_texts(history)

        report = run_stage(
            "rollback-repetition", lambda: detector.analyze(text, prior), None, failures
        )
        if report is not None:
            if report.corrected_text and report.corrected_text != text:
                text = report.corrected_text
                steps.append("repetition-fix")
            if report.needs_rephrase:
                text = run_stage(
                    "rollback-rephrase", lambda: detector.rephrase(text), text, failures
                )
                steps.append("rephrase")

        check = run_stage(
            "rollback-emotion",
            lambda: self.verifier.emotion.check(text, user_input),
            None,
            failures,
        )
        if check is not None and check.misidentified and check.corrected_text:
            text = check.corrected_text
            steps.append("emotion-fix")
        return text, steps

    def _rollback(
        self,
        candidate: CandidateResponse,
        user_input: str,
        history: Sequence[Utterance],
        memory_snippets: Sequence[str],
        avoid: str | None,
        failures: list[StageFailure] | None,
    ) -> Action:
        repaired, steps = self.repair(candidate.text, user_input, history, failures)
        try:
            again = self.verifier.verify(
                repaired, user_input, history, memory_snippets, failures
            )
        except VerificationFailure as e:
            logger.warning("Re-verification after rollback failed: %s", e)
            self._prevent(candidate, user_input, avoid)
            return Action.PREVENT

        if again.recommended_action in (Action.ROLLBACK, Action.PREVENT):
            logger.info(
                "Rollback repair not enough (confidence %.3f), preventing",
                again.confidence_score,
            )
            self._prevent(candidate, user_input, avoid)
            return Action.PREVENT

        candidate.apply("rollback:" + "+".join(steps or ["none"]), repaired)
        return Action.ROLLBACK

    def _prevent(self, candidate: CandidateResponse, user_input: str, avoid: str | None) -> None:
        candidate.apply("fallback", self.select_fallback(user_input, avoid))
