"""Turn orchestration: one candidate reply in, one safe reply out.

Order of a turn:

1. Decide whether this message starts a new session (nothing is reset yet)
2. External enhancement stages, each fail-open
3. Verify the candidate
4. Carry out the recommended action (controller)
5. Corrective pass on non-fallback text: emotion consistency first, then
   memory-reference hedges
6. Non-empty, punctuated guard
7. Crisis post-condition, run unconditionally
8. Commit the user message and final reply to the session, once

History is only written in step 8, so a rolled-back candidate is never
scored against an entry that has not been committed yet.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from support_agent.config import (
    LEXICON_LOCALE,
    RESPONSE_DELAY_ENABLED,
    SESSION_CAPACITY,
    SESSION_GAP_MINUTES,
)
from support_agent.verification.controller import Controller
from support_agent.verification.errors import (
    CrisisDetectionFailure,
    StageFailure,
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
    Role,
    TurnDiagnostics,
    Utterance,
    VerificationResult,
)
from support_agent.verification.repetition import finalize
from support_agent.verification.settings import VerificationConfig
from support_agent.verification.verifier import Verifier

logger = logging.getLogger(__name__)

# (candidate_text, user_input, history) -> new candidate text
Enhancer = Callable[[str, str, Sequence[Utterance]], str]
# (user_input, committed history) -> candidate text
Generator = Callable[[str, tuple[Utterance, ...]], Awaitable[str]]


class ConversationSession:
    """Conversation state for one user, passed explicitly to the pipeline.

    Replaces any notion of a global "current session". The pipeline reads
    it freely but only writes it through ``reset`` and ``commit``.
    """

    def __init__(
        self,
        capacity: int = SESSION_CAPACITY,
        gap_minutes: float = SESSION_GAP_MINUTES,
        lexicon: Lexicon | None = None,
        started_at: float | None = None,
    ) -> None:
        self.capacity = capacity
        self.gap_seconds = gap_minutes * 60
        self.lexicon = lexicon or get_lexicon()
        self.context = ConversationContext(
            capacity, time.time() if started_at is None else started_at
        )
        self.resets = 0
        self.lock = asyncio.Lock()

    @property
    def history(self) -> tuple[Utterance, ...]:
        return self.context.utterances

    def stage(self, now: float) -> ConversationStage:
        return self.context.stage(now)

    def last_agent_text(self) -> str | None:
        texts = self.context.agent_texts(1)
        return texts[0] if texts else None

    def should_reset(self, user_input: str, now: float) -> str | None:
        """Return why this message starts a new session, or None.

        Pure: looking never changes the session.
        """
        if not len(self.context):
            return None
        if now - self.context.last_activity > self.gap_seconds:
            return "inactivity gap"
        if self.lexicon.reset_phrases.search(user_input):
            return "reset phrase"
        # Introducing yourself again mid-conversation means a new person or a new start.
        if self.context.turn_count >= 2 and any(
            p.search(user_input.strip()) for p in self.lexicon.reintroductions
        ):
            return "reintroduction"
        return None

    def reset(self, now: float) -> None:
        self.context = ConversationContext(self.capacity, now)
        self.resets += 1

    def commit(self, user_input: str, agent_text: str, now: float) -> None:
        """Record one finished turn. The only write path during a turn."""
        self.context.append(Role.USER, user_input, now)
        self.context.append(Role.AGENT, agent_text, now)
        self.context.turn_count += 1


class TurnPipeline:
    """Runs every verification stage for one session, one turn at a time."""

    def __init__(
        self,
        session: ConversationSession | None = None,
        config: VerificationConfig | None = None,
        lexicon: Lexicon | None = None,
        enhancers: Sequence[Enhancer] = (),
        clock: Callable[[], float] = time.time,
        delay_enabled: bool = RESPONSE_DELAY_ENABLED,
    ) -> None:
        self.lexicon = lexicon or get_lexicon(LEXICON_LOCALE)
        self.session = session or ConversationSession(lexicon=self.lexicon, started_at=clock())
        self.verifier = Verifier(config, self.lexicon)
        self.controller = Controller(self.verifier)
        self.enhancers = list(enhancers)
        self.clock = clock
        self.delay_enabled = delay_enabled

    def process_turn(
        self,
        candidate_text: str,
        user_input: str,
        history: Sequence[Utterance] | None = None,
        memory_snippets: Sequence[str] = (),
    ) -> tuple[str, TurnDiagnostics]:
        """Verify and correct one candidate reply, then commit the turn.

        Args:
            candidate_text: Reply from the response generator.
            user_input: The user message it answers.
            history: Optional explicit history. When given it is used for
                scoring instead of the session's own history.
            memory_snippets: Externally retrieved memories.

        Returns:
            The final reply and the turn diagnostics. The reply is always
            non-empty and punctuated. Diagnostics are for logs only.
        """
        now = self.clock()
        failures: list[StageFailure] = []
        if not isinstance(user_input, str):
            user_input = "" if user_input is None else str(user_input)

        reset_reason = run_stage(
            "session-reset", lambda: self.session.should_reset(user_input, now), None, failures
        )
        if history is not None:
            scoring_history = tuple(history)
        elif reset_reason:
            scoring_history = ()
        else:
            scoring_history = self.session.history
        # Malformed entries are left for verify to reject.
        avoid = next(
            (
                u.text
                for u in reversed(scoring_history)
                if isinstance(u, Utterance) and u.role is Role.AGENT
            ),
            None,
        )

        candidate = CandidateResponse(
            text=candidate_text if isinstance(candidate_text, str) else ""
        )
        self._enhance(candidate, user_input, scoring_history, failures)

        try:
            result = self.verifier.verify(
                candidate.text, user_input, scoring_history, memory_snippets, failures
            )
        except VerificationFailure as e:
            logger.warning("Verification failed, using first fallback: %s", e)
            result = VerificationResult(
                confidence_score=0.0, issues=[str(e)], recommended_action=Action.PREVENT
            )
            candidate.apply("fallback", self.lexicon.fallbacks[0])
            action = Action.PREVENT
        else:
            outcome = run_stage(
                "controller",
                lambda: self.controller.execute(
                    result,
                    candidate,
                    user_input,
                    scoring_history,
                    memory_snippets,
                    avoid=avoid,
                    failures=failures,
                ),
                None,
                failures,
            )
            action = outcome.action if outcome is not None else result.recommended_action
            if candidate.text not in self.lexicon.fallbacks:
                self._correct(candidate, result, user_input, failures)

        text = finalize(candidate.text) if candidate.text.strip() else ""
        if not text:
            logger.warning("No usable text survived the turn, using first fallback")
            text = self.lexicon.fallbacks[0]
            action = Action.PREVENT

        text, action, crisis_enforced = self.enforce_crisis_resources(
            text, user_input, action, avoid
        )
        if crisis_enforced:
            candidate.corrections.append("crisis-resources")

        if reset_reason:
            logger.info("Starting a new session: %s", reset_reason)
            self.session.reset(now)
        self.session.commit(user_input, text, now)

        diagnostics = TurnDiagnostics(
            action=action,
            confidence_score=result.confidence_score,
            issues=result.issues,
            categories=result.categories,
            corrections=candidate.corrections,
            stage_failures=[str(f) for f in failures],
            session_reset=bool(reset_reason),
            crisis_enforced=crisis_enforced,
            stage=self.session.stage(now),
            response_delay_ms=(
                result.response_delay_ms
                if action in (Action.DELAY, Action.ROLLBACK)
                else 0.0
            ),
        )
        logger.info(
            "Turn done: stage=%s action=%s confidence=%.3f categories=%s corrections=%s",
            diagnostics.stage.value,
            diagnostics.action.value,
            diagnostics.confidence_score,
            [c.value for c in diagnostics.categories],
            diagnostics.corrections,
        )
        return text, diagnostics

    async def process_turn_async(
        self,
        candidate_text: str,
        user_input: str,
        history: Sequence[Utterance] | None = None,
        memory_snippets: Sequence[str] = (),
    ) -> tuple[str, TurnDiagnostics]:
        """Like ``process_turn``, then wait out the response delay.

        The session lock is held through the wait, so a second message in
        the same session cannot be verified until this one is delivered.
        """
        async with self.session.lock:
            return await self._process_and_wait(
                candidate_text, user_input, history, memory_snippets
            )

    async def generate_and_process(
        self,
        generate: Generator,
        user_input: str,
        memory_snippets: Sequence[str] = (),
    ) -> tuple[str, TurnDiagnostics]:
        """Generate a candidate from the committed history, then process it.

        Generation happens under the session lock as well, so two messages
        in one session never generate from the same history. A message that
        starts a new session is generated with no history.
        """
        async with self.session.lock:
            fresh = self.session.should_reset(user_input, self.clock())
            candidate_text = await generate(user_input, () if fresh else self.session.history)
            return await self._process_and_wait(
                candidate_text, user_input, None, memory_snippets
            )

    async def _process_and_wait(
        self,
        candidate_text: str,
        user_input: str,
        history: Sequence[Utterance] | None,
        memory_snippets: Sequence[str],
    ) -> tuple[str, TurnDiagnostics]:
        text, diagnostics = self.process_turn(
            candidate_text, user_input, history, memory_snippets
        )
        if self.delay_enabled and diagnostics.response_delay_ms > 0:
            await asyncio.sleep(diagnostics.response_delay_ms / 1000)
        return text, diagnostics

    def enforce_crisis_resources(
        self, text: str, user_input: str, action: Action, avoid: str | None = None
    ) -> tuple[str, Action, bool]:
        """Make sure a reply to a crisis message carries crisis resources.

        Fails closed: if detection itself errors, the message is treated
        as a crisis.

        Returns:
            The text, the action and whether resources had to be added.
        """
        try:
            crisis = self.lexicon.has_crisis(user_input)
        except Exception as e:  # noqa: BLE001
            failure = CrisisDetectionFailure(f"{type(e).__name__}: {e}")
            logger.warning("Crisis check failed, assuming crisis: %s", failure)
            crisis = True
        if not crisis:
            return text, action, False

        try:
            has_resource = self.lexicon.has_crisis_resource(text)
        except Exception as e:  # noqa: BLE001
            failure = CrisisDetectionFailure(f"{type(e).__name__}: {e}")
            logger.warning("Crisis resource check failed: %s", failure)
            has_resource = False
        if has_resource:
            return text, action, False

        if action not in (Action.ROLLBACK, Action.PREVENT):
            action = Action.PREVENT
            text = self.controller.select_fallback(user_input, avoid)
        logger.warning("Crisis indicators without resources, adding crisis resources")
        return f"{self.lexicon.crisis_statement} {text}", action, True

    def _enhance(
        self,
        candidate: CandidateResponse,
        user_input: str,
        history: Sequence[Utterance],
        failures: list[StageFailure],
    ) -> None:
        for enhancer in self.enhancers:
            name = getattr(enhancer, "__name__", type(enhancer).__name__)
            current = candidate.text
            enhanced = run_stage(
                f"enhancer:{name}",
                lambda: enhancer(current, user_input, history),
                current,
                failures,
            )
            if enhanced == current:
                continue
            if not isinstance(enhanced, str) or not enhanced.strip():
                failures.append(StageFailure(f"enhancer:{name}", "returned no text"))
                logger.warning("Enhancer %s returned no text, ignoring it", name)
                continue
            candidate.apply(f"enhancer:{name}", enhanced)

    def _correct(
        self,
        candidate: CandidateResponse,
        result: VerificationResult,
        user_input: str,
        failures: list[StageFailure],
    ) -> None:
        check = run_stage(
            "emotion-correction",
            lambda: self.verifier.emotion.check(candidate.text, user_input),
            None,
            failures,
        )
        if check is not None and check.misidentified and check.corrected_text:
            candidate.apply("emotion-correction", check.corrected_text)

        if RiskCategory.MEMORY_CONTINUITY in result.categories:
            hedged = run_stage(
                "memory-hedge",
                lambda: self.verifier.risk.hedge_memory_references(candidate.text),
                candidate.text,
                failures,
            )
            candidate.apply("memory-hedge", hedged)
