"""Hallucination and domain-risk classification.

Three independent checks, each returning one RiskSignal:

- Domain: medical, legal, service and factual rules, evaluated in that
  order and stopping at the first hit. Skipped when both the user and the
  reply talk about verified organization facts.
- Memory continuity: the reply claims to remember things the
  conversation (or the memory store) never contained.
- Crisis: the user shows self-harm indicators and the reply carries no
  crisis resource. Always evaluated, whatever the allow-list says.

A check that finds nothing still returns a signal with a raw score of 0.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from support_agent.verification.lexicon import Lexicon, get_lexicon
from support_agent.verification.models import (
    ConversationStage,
    RiskCategory,
    RiskSignal,
    Role,
    Utterance,
    history_stage,
)
from support_agent.verification.repetition import finalize, split_sentences
from support_agent.verification.similarity import tokenize

logger = logging.getLogger(__name__)

MEDICAL_SCORE = 0.8
LEGAL_SCORE = 0.7
SERVICE_SCORE = 0.7
FACTUAL_SCORE = 0.5

# Memory references while the conversation is still in its initial stage.
EARLY_MEMORY_SCORE = 1.0
UNSUPPORTED_CLAIM_SCORE = 0.6
UNSUPPORTED_QUOTE_SCORE = 0.3

# Share of a claim's content words that must appear in what the user said.
_CLAIM_SUPPORT_RATIO = 0.5


def _clean(category: RiskCategory, evidence: str) -> RiskSignal:
    return RiskSignal(category=category, raw_score=0.0, evidence=evidence)


class RiskClassifier:
    def __init__(self, lexicon: Lexicon | None = None) -> None:
        self.lexicon = lexicon or get_lexicon()

    def classify(
        self,
        reply: str,
        user_input: str,
        history: Sequence[Utterance] = (),
        memory_snippets: Sequence[str] = (),
    ) -> list[RiskSignal]:
        """Run every check and return one signal per category, in order."""
        return [
            self.memory_signal(reply, user_input, history, memory_snippets),
            self.domain_signal(reply, user_input),
            self.crisis_signal(reply, user_input),
        ]

    # ------------------------------------------------------------------
    # Domain rules
    # ------------------------------------------------------------------

    def domain_signal(self, reply: str, user_input: str) -> RiskSignal:
        organization = self.lexicon.organization
        if organization.mentioned_in(user_input) and organization.mentioned_in(reply):
            return _clean(RiskCategory.HALLUCINATION_DOMAIN, "verified organization facts")

        for check in (self._medical, self._legal, self._service, self._factual):
            signal = check(reply)
            if signal is not None:
                logger.debug("Domain risk: %s", signal.evidence)
                return signal
        return _clean(RiskCategory.HALLUCINATION_DOMAIN, "no domain risk found")

    def _medical(self, reply: str) -> RiskSignal | None:
        for sentence in split_sentences(reply):
            # Directives about the organization's own services are allowed.
            if self.lexicon.organization.mentioned_in(sentence):
                continue
            for pattern in self.lexicon.medical_directives:
                match = pattern.search(sentence)
                if match:
                    return RiskSignal(
                        category=RiskCategory.HALLUCINATION_DOMAIN,
                        raw_score=MEDICAL_SCORE,
                        evidence=f"medical directive: {match.group(0)!r}",
                    )
        return None

    def _legal(self, reply: str) -> RiskSignal | None:
        return self._first_match(
            reply, self.lexicon.credential_claims, LEGAL_SCORE, "credential claim"
        )

    def _service(self, reply: str) -> RiskSignal | None:
        return self._first_match(
            reply, self.lexicon.service_claims, SERVICE_SCORE, "treatment claim"
        )

    def _factual(self, reply: str) -> RiskSignal | None:
        organization = self.lexicon.organization
        prices = {f"${amount}" for amount in self.lexicon.price.findall(reply)}
        if len(prices) > 1:
            return RiskSignal(
                category=RiskCategory.HALLUCINATION_DOMAIN,
                raw_score=FACTUAL_SCORE,
                evidence=f"conflicting prices: {', '.join(sorted(prices))}",
            )
        unknown = prices - set(organization.prices)
        if unknown:
            return RiskSignal(
                category=RiskCategory.HALLUCINATION_DOMAIN,
                raw_score=FACTUAL_SCORE,
                evidence=f"unverified price: {unknown.pop()}",
            )
        lowered = reply.lower()
        providers = [p for p in organization.providers if p.lower() in lowered]
        if len(providers) > 1:
            return RiskSignal(
                category=RiskCategory.HALLUCINATION_DOMAIN,
                raw_score=FACTUAL_SCORE,
                evidence=f"conflicting providers: {', '.join(providers)}",
            )
        return None

    def _first_match(
        self, reply: str, patterns: Sequence[re.Pattern[str]], score: float, label: str
    ) -> RiskSignal | None:
        for pattern in patterns:
            match = pattern.search(reply)
            if match:
                return RiskSignal(
                    category=RiskCategory.HALLUCINATION_DOMAIN,
                    raw_score=score,
                    evidence=f"{label}: {match.group(0)!r}",
                )
        return None

    # ------------------------------------------------------------------
    # Memory continuity
    # ------------------------------------------------------------------

    def memory_signal(
        self,
        reply: str,
        user_input: str,
        history: Sequence[Utterance] = (),
        memory_snippets: Sequence[str] = (),
    ) -> RiskSignal:
        reference = self.lexicon.memory_reference.search(reply)
        quotes = self.lexicon.quoted_text.findall(reply)
        if not reference and not quotes:
            return _clean(RiskCategory.MEMORY_CONTINUITY, "no memory references")

        if reference and history_stage(history) is ConversationStage.INITIAL:
            return RiskSignal(
                category=RiskCategory.MEMORY_CONTINUITY,
                raw_score=EARLY_MEMORY_SCORE,
                evidence=f"memory reference {reference.group(0)!r} in the initial stage",
            )

        said = [u.text for u in history if u.role is Role.USER]
        said.append(user_input)
        said.extend(memory_snippets)
        corpus = " ".join(said).lower()
        known = set(tokenize(corpus))

        score = 0.0
        evidence: list[str] = []
        for claim in self.lexicon.memory_claim.finditer(reply):
            if not self._supported(claim.group(1), known):
                score = max(score, UNSUPPORTED_CLAIM_SCORE)
                evidence.append(f"unsupported claim {claim.group(0)!r}")
        for quote in quotes:
            if " ".join(tokenize(quote)) not in " ".join(tokenize(corpus)):
                score += UNSUPPORTED_QUOTE_SCORE
                evidence.append(f"quote not in history {quote!r}")

        if not evidence:
            return _clean(RiskCategory.MEMORY_CONTINUITY, "memory references supported")
        return RiskSignal(
            category=RiskCategory.MEMORY_CONTINUITY,
            raw_score=min(1.0, score),
            evidence="; ".join(evidence),
        )

    def _supported(self, claim: str, known: set[str]) -> bool:
        words = [w for w in tokenize(claim) if w not in self.lexicon.stop_words]
        if not words:
            return True
        found = sum(1 for w in words if w in known)
        return found / len(words) >= _CLAIM_SUPPORT_RATIO

    def hedge_memory_references(self, text: str) -> str:
        """Swap claims about past conversation for present-tense hedges."""
        hedged = text
        for pattern, replacement in self.lexicon.memory_hedges:
            hedged = pattern.sub(replacement, hedged)
        return finalize(hedged) if hedged != text else text

    # ------------------------------------------------------------------
    # Crisis
    # ------------------------------------------------------------------

    def crisis_signal(self, reply: str, user_input: str) -> RiskSignal:
        if not self.lexicon.has_crisis(user_input):
            return _clean(RiskCategory.CRISIS, "no crisis indicators")
        if self.lexicon.has_crisis_resource(reply):
            return _clean(RiskCategory.CRISIS, "crisis resources present")
        logger.warning("Crisis indicators in user input but reply has no crisis resource")
        return RiskSignal(
            category=RiskCategory.CRISIS,
            raw_score=1.0,
            evidence="crisis indicators without a crisis resource",
        )

    def scrutiny(self, user_input: str) -> float:
        """Stacked multiplier for the specialized concerns the user raised."""
        factor = 1.0
        for concern in self.lexicon.concerns:
            if any(p.search(user_input) for p in concern.patterns):
                factor *= concern.multiplier
        return factor
