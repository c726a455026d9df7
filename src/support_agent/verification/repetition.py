"""Repetition detection and de-duplication.

Four checks run over a candidate reply, each giving a score. The report
keeps the highest score, not the sum:

1. Exact duplicate sentences (same normalized signature)    -> 1.0
2. Repeated formulaic openers ("Based on what you're sharing") -> 0.95
3. Stutters: a word or short phrase repeated back-to-back   -> 0.9
4. Near-duplicates against the reply's own sentences and the
   previous agent replies: log2(1 + 5s) / log2(6) for similarity s

``corrected_text`` only holds safe in-place edits, so running the fix
again on its own output changes nothing. When a reply repeats an earlier
agent turn there is no safe in-place edit; ``needs_rephrase`` is set and
the controller calls ``rephrase()``.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence

from pydantic import BaseModel, Field

from support_agent.verification.lexicon import Lexicon, get_lexicon
from support_agent.verification.similarity import (
    SimilarityEngine,
    SimilarityMode,
    tokenize,
)

logger = logging.getLogger(__name__)

EXACT_DUPLICATE_SCORE = 1.0
FORMULAIC_SCORE = 0.95
STUTTER_SCORE = 0.9

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_STUTTER = re.compile(r"\b([\w']+(?:\s+[\w']+){0,3})(?:\s+\1\b)+", re.IGNORECASE)
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.!?;:])")
_SENTENCE_START = re.compile(r"(^|[.!?]\s+)([a-z])")
_NEAR_DUP_NORMALIZER = math.log2(6)
_MAX_FIX_PASSES = 4


class RepetitionReport(BaseModel):
    has_repetition: bool = False
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    findings: list[str] = Field(default_factory=list)
    corrected_text: str = ""
    needs_rephrase: bool = False


def split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_BREAK.split(text.strip()) if s]


def finalize(text: str) -> str:
    """Tidy spacing, capitalise sentence starts and end with punctuation."""
    cleaned = " ".join(text.split())
    cleaned = _SPACE_BEFORE_PUNCT.sub(r"\1", cleaned).strip(" ,;:")
    if not cleaned:
        return ""
    cleaned = _SENTENCE_START.sub(lambda m: m.group(1) + m.group(2).upper(), cleaned)
    if cleaned[-1] not in ".!?":
        cleaned += "."
    return cleaned


def near_duplicate_score(similarity: float) -> float:
    return min(1.0, math.log2(1 + 5 * similarity) / _NEAR_DUP_NORMALIZER)


class RepetitionDetector:
    def __init__(
        self,
        lexicon: Lexicon | None = None,
        engine: SimilarityEngine | None = None,
        near_duplicate_threshold: float = 0.65,
    ) -> None:
        self.lexicon = lexicon or get_lexicon()
        self.engine = engine or SimilarityEngine(self.lexicon)
        self.threshold = near_duplicate_threshold

    def signature(self, sentence: str) -> str:
        """Normalized form used to spot exact duplicate sentences."""
        words = [w for w in tokenize(sentence) if w not in self.lexicon.determiners]
        return " ".join(words)

    def analyze(self, text: str, prior_agent_texts: Sequence[str] = ()) -> RepetitionReport:
        findings: list[str] = []
        score = 0.0

        sentences = split_sentences(text)
        signatures = [self.signature(s) for s in sentences]
        duplicates = len(signatures) - len(set(signatures))
        if duplicates:
            findings.append(f"exact duplicate sentences ({duplicates})")
            score = max(score, EXACT_DUPLICATE_SCORE)

        repeated = [
            p.pattern for p in self.lexicon.formulaic_openers if len(p.findall(text)) > 1
        ]
        if repeated:
            findings.append(f"repeated formulaic openers ({len(repeated)})")
            score = max(score, FORMULAIC_SCORE)

        stutter = _STUTTER.search(text)
        if stutter:
            findings.append(f"stutter: {stutter.group(0)!r}")
            score = max(score, STUTTER_SCORE)

        internal = self._internal_near_duplicates(sentences)
        if internal:
            best = max(sim for _, sim in internal)
            findings.append(f"near-duplicate sentences (similarity {best:.2f})")
            score = max(score, near_duplicate_score(best))

        prior_best = self._best_prior_similarity(text, prior_agent_texts)
        if prior_best >= self.threshold:
            findings.append(f"near-duplicate of earlier reply (similarity {prior_best:.2f})")
            score = max(score, near_duplicate_score(prior_best))

        corrected = self.fix(text)
        needs_rephrase = (
            prior_best >= self.threshold
            and self._best_prior_similarity(corrected, prior_agent_texts) >= self.threshold
        )
        if findings:
            logger.debug("Repetition findings: %s (score %.2f)", findings, score)

        return RepetitionReport(
            has_repetition=score > 0,
            score=score,
            findings=findings,
            corrected_text=corrected,
            needs_rephrase=needs_rephrase,
        )

    def fix(self, text: str) -> str:
        """Apply every safe in-place fix. Idempotent."""
        current = text
        for _ in range(_MAX_FIX_PASSES):
            fixed = self._fix_once(current)
            if fixed == current:
                break
            current = fixed
        return current

    def _fix_once(self, text: str) -> str:
        # One edit can expose another ("it it sounds like"), hence the loop in fix().
        fixed = " ".join(self._dedupe(split_sentences(text)))
        for pattern in self.lexicon.formulaic_openers:
            fixed = _keep_first(pattern, fixed)
        fixed = finalize(_STUTTER.sub(r"\1", fixed))
        kept = self._drop_near_duplicates(split_sentences(fixed))
        return finalize(" ".join(kept))

    def rephrase(self, text: str) -> str:
        """Vary a reply that repeats an earlier turn and has no safe edit.

        Tries, in order: drop a leading formulaic opener, move the first
        sentence to the end, prefix a clarifying question.
        """
        stripped = text.strip()
        for pattern in self.lexicon.formulaic_openers:
            match = pattern.match(stripped)
            if match:
                remainder = finalize(stripped[match.end() :])
                if remainder:
                    return remainder
        sentences = split_sentences(stripped)
        if len(sentences) > 1:
            return finalize(" ".join(sentences[1:] + sentences[:1]))
        return finalize(f"{self.lexicon.rephrase_prefix} {stripped}")

    def _dedupe(self, sentences: list[str]) -> list[str]:
        seen: set[str] = set()
        kept: list[str] = []
        for sentence in sentences:
            sig = self.signature(sentence)
            if sig in seen:
                continue
            seen.add(sig)
            kept.append(sentence)
        return kept

    def _internal_near_duplicates(self, sentences: list[str]) -> list[tuple[int, float]]:
        hits: list[tuple[int, float]] = []
        for i in range(1, len(sentences)):
            sig_i = self.signature(sentences[i])
            for j in range(i):
                if sig_i == self.signature(sentences[j]):
                    continue
                sim = self.engine.similarity(sentences[i], sentences[j], SimilarityMode.NGRAM)
                if sim >= self.threshold:
                    hits.append((i, sim))
                    break
        return hits

    def _drop_near_duplicates(self, sentences: list[str]) -> list[str]:
        kept: list[str] = []
        for sentence in sentences:
            if any(
                self.engine.similarity(sentence, k, SimilarityMode.NGRAM) >= self.threshold
                for k in kept
            ):
                continue
            kept.append(sentence)
        return kept

    def _best_prior_similarity(self, text: str, prior: Sequence[str]) -> float:
        if not text.strip():
            return 0.0
        return max(
            (self.engine.similarity(text, p, SimilarityMode.NGRAM) for p in prior),
            default=0.0,
        )


def _keep_first(pattern: re.Pattern[str], text: str) -> str:
    seen = False

    def replace(match: re.Match[str]) -> str:
        nonlocal seen
        if seen:
            return ""
        seen = True
        return match.group(0)

    return pattern.sub(replace, text)
