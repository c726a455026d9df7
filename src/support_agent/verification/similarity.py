"""Text similarity used for duplicate detection.

Two measures, both in [0, 1] and symmetric:

- Token overlap: Jaccard similarity of lower-cased, stop-word-filtered
  token sets.
- Discounted n-gram overlap: shared word n-grams, each weighted by
  ``log2(3) / log2(count + 2)`` where ``count`` is how often the n-gram
  occurs in the other text. A phrase that occurs once counts fully; filler
  repeated many times counts less and less. The sum is divided by the
  smaller side's number of unique n-grams.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from enum import Enum

from support_agent.verification.lexicon import Lexicon, get_lexicon

_TOKEN = re.compile(r"[a-z0-9']+")
_SINGLE_OCCURRENCE = math.log2(3)


class SimilarityMode(str, Enum):
    TOKEN = "token"
    NGRAM = "ngram"


def tokenize(text: str) -> list[str]:
    return _TOKEN.findall(text.lower())


class SimilarityEngine:
    def __init__(self, lexicon: Lexicon | None = None, ngram_size: int = 3) -> None:
        if not 3 <= ngram_size <= 7:
            raise ValueError(f"ngram_size must be between 3 and 7, got {ngram_size}")
        self.lexicon = lexicon or get_lexicon()
        self.ngram_size = ngram_size

    def similarity(
        self, a: str, b: str, mode: SimilarityMode = SimilarityMode.TOKEN
    ) -> float:
        if mode is SimilarityMode.NGRAM:
            return self.ngram_overlap(a, b)
        return self.token_overlap(a, b)

    def token_overlap(self, a: str, b: str) -> float:
        if _same_text(a, b):
            return 1.0
        tokens_a, tokens_b = tokenize(a), tokenize(b)
        if not tokens_a or not tokens_b:
            return 0.0
        set_a = self._content(tokens_a)
        set_b = self._content(tokens_b)
        # Stop-word-only text ("I am here") would otherwise compare as empty.
        if not set_a or not set_b:
            set_a, set_b = set(tokens_a), set(tokens_b)
        union = set_a | set_b
        return len(set_a & set_b) / len(union)

    def ngram_overlap(self, a: str, b: str) -> float:
        if _same_text(a, b):
            return 1.0
        words_a, words_b = tokenize(a), tokenize(b)
        n = self.ngram_size
        if len(words_a) < n or len(words_b) < n:
            return self.token_overlap(a, b)

        counts_a = _ngrams(words_a, n)
        counts_b = _ngrams(words_b, n)
        shared = counts_a.keys() & counts_b.keys()
        if not shared:
            return 0.0

        total = 0.0
        for gram in shared:
            # Average both directions so the measure stays symmetric.
            toward_b = _SINGLE_OCCURRENCE / math.log2(counts_b[gram] + 2)
            toward_a = _SINGLE_OCCURRENCE / math.log2(counts_a[gram] + 2)
            total += (toward_a + toward_b) / 2
        smaller = min(len(counts_a), len(counts_b))
        return min(1.0, total / smaller)

    def _content(self, tokens: list[str]) -> set[str]:
        return {t for t in tokens if t not in self.lexicon.stop_words}


def _same_text(a: str, b: str) -> bool:
    stripped = a.strip()
    return bool(stripped) and stripped.lower() == b.strip().lower()


def _ngrams(words: list[str], n: int) -> Counter[tuple[str, ...]]:
    return Counter(tuple(words[i : i + n]) for i in range(len(words) - n + 1))
