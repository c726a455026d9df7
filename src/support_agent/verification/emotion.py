"""Emotion consistency between the user's message and the reply.

Detection precedence over the user's message:

1. Situational triggers ("I got laid off"), which override the lexicon scan
2. Direct lexicon terms and synonyms
3. Hedged / implicit phrases ("not feeling myself")
4. Depression keywords, always surfaced even when a rule above matched
5. Mixed-emotion cues ("conflicted"): the first concrete emotion found in
   the text becomes primary, the rest secondary

A reply misidentifies the user's emotion when it calls them neutral (or
the opposite polarity) while a concrete emotion was found, when it never
echoes an explicit "I feel X", or when it leaves depression or a
"rough day" statement unacknowledged. Corrections prefer depression
over every competing correction in the same pass.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from support_agent.verification.lexicon import (
    NEGATIVE_CATEGORIES,
    NEUTRAL_WORDS,
    POSITIVE_CATEGORIES,
    QUALIFIERS,
    Lexicon,
    get_lexicon,
)
from support_agent.verification.repetition import finalize

logger = logging.getLogger(__name__)

_QUALS = "|".join(re.escape(q) for q in QUALIFIERS)
_FEEL_STATEMENT = re.compile(
    rf"\bI(?:'ve been|'m| am| have been| was| been)?\s+(?:feel|feeling|felt)\s+"
    rf"(?:(?:{_QUALS})\s+)*([a-z]+(?:\s[a-z]+)?)",
    re.IGNORECASE,
)
_IM_STATEMENT = re.compile(
    rf"\bI(?:'m| am)\s+(?:(?:{_QUALS})\s+)*([a-z]+(?:\s[a-z]+)?)", re.IGNORECASE
)
# "you're feeling X" / "you seem X" / "you feel X"
_FEELING_ASSERTION = re.compile(
    rf"\b(?:you(?:'re| are) feeling|you seem(?: to be)?(?: feeling)?|you feel)\s+"
    rf"(?:(?:{_QUALS})\s+)*([a-z]+)",
    re.IGNORECASE,
)
# Bare "you're X", only trusted when X is an emotion word.
_BARE_ASSERTION = re.compile(rf"\byou(?:'re| are)\s+(?:(?:{_QUALS})\s+)*([a-z]+)", re.IGNORECASE)
_NEUTRAL_TONE = re.compile(r"\b(?:a |your )?neutral tone\b", re.IGNORECASE)
_ACK_OPENER = re.compile(r"^(I hear|I understand|It sounds like)\b[^.!?]*[.!?]", re.IGNORECASE)
# What may follow an ambiguous "I'm X" for X to still read as a feeling.
_CLAUSE_END = re.compile(
    r"\s*(?:$|[.,;:!?]|(?:about|because|and|but|since|lately|today|right now)\b)", re.IGNORECASE
)
# "not happy" reads as unhappy; a negated negative emotion is just dropped.
_NEGATED_POSITIVE = "sad"


class EmotionReading(BaseModel):
    primary: str | None = None
    secondary: list[str] = Field(default_factory=list)
    category: str | None = None
    intensity: str | None = None
    source: str | None = None
    depression: bool = False
    stated: str | None = None

    @property
    def polarity(self) -> str | None:
        if self.depression:
            return "negative"
        return _polarity_of(self.category)


class EmotionCheck(BaseModel):
    misidentified: bool = False
    wrong_assertion: bool = False
    reasons: list[str] = Field(default_factory=list)
    reading: EmotionReading = Field(default_factory=EmotionReading)
    corrected_text: str | None = None


def _polarity_of(category: str | None) -> str | None:
    if category in POSITIVE_CATEGORIES:
        return "positive"
    if category in NEGATIVE_CATEGORIES:
        return "negative"
    return None


def _normalize(text: str) -> str:
    return text.replace("’", "'")


class EmotionChecker:
    def __init__(self, lexicon: Lexicon | None = None) -> None:
        self.lexicon = lexicon or get_lexicon()
        # term -> (canonical emotion, category)
        self._index: dict[str, tuple[str, str]] = {}
        self._family: dict[str, list[str]] = {}
        for category, emotions in self.lexicon.emotions.items():
            for canonical, synonyms in emotions.items():
                terms = [canonical, *synonyms]
                self._family[canonical] = terms
                for term in terms:
                    self._index.setdefault(term, (canonical, category))
        alternatives = sorted(self._index, key=len, reverse=True)
        self._terms = re.compile(
            r"\b(?:" + "|".join(re.escape(t) for t in alternatives) + r")\b", re.IGNORECASE
        )

    def category_of(self, emotion: str) -> str | None:
        entry = self._index.get(emotion.lower())
        return entry[1] if entry else None

    def detect(self, user_input: str) -> EmotionReading:
        text = _normalize(user_input)
        hits = self._lexicon_hits(text)
        depression = self.mentions_depression(text)
        stated = self.stated_emotion(text)

        reading = EmotionReading(depression=depression, stated=stated)
        situational = next(
            (t for t in self.lexicon.situational_triggers if t.pattern.search(text)), None
        )
        implicit = next(
            (t for t in self.lexicon.implicit_phrases if t.pattern.search(text)), None
        )

        if self.lexicon.mixed_cues.search(text) and (hits or situational):
            ordered = hits or [situational.primary]
            reading.primary, reading.secondary = ordered[0], ordered[1:]
            reading.source, reading.intensity = "mixed", "medium"
        elif situational:
            reading.primary = situational.primary
            extra = [situational.secondary] if situational.secondary else []
            reading.secondary = [e for e in extra + hits if e != situational.primary]
            reading.source, reading.intensity = "situational", situational.intensity
        elif hits:
            reading.primary, reading.secondary = hits[0], hits[1:]
            reading.source, reading.intensity = "lexicon", "medium"
        elif implicit:
            reading.primary = implicit.primary
            reading.source, reading.intensity = "implicit", implicit.intensity
        elif depression:
            reading.primary, reading.source = "depressed", "depression"

        if depression:
            reading.intensity = "high"
            if reading.primary != "depressed" and "depressed" not in reading.secondary:
                reading.secondary.append("depressed")
        reading.secondary = list(dict.fromkeys(reading.secondary))
        if reading.primary:
            reading.category = self.category_of(reading.primary)
        return reading

    def stated_emotion(self, user_input: str) -> str | None:
        """Return the emotion word from an explicit "I feel X" / "I'm X".

        Negated statements ("I'm not sad") state nothing. After "I'm", an
        ambiguous word such as "low" only counts when the clause ends
        there ("I'm low.", "I'm down about it"), not in "I'm low on money".
        """
        text = _normalize(user_input)
        for pattern in (_FEEL_STATEMENT, _IM_STATEMENT):
            for match in pattern.finditer(text):
                words = match.group(1).lower().split()
                if words[0] in self.lexicon.negation_words or self._negated(
                    text, match.start(1)
                ):
                    continue
                for candidate in (" ".join(words), words[0]):
                    if candidate not in self._index:
                        continue
                    end = match.start(1) + len(candidate)
                    if (
                        pattern is _IM_STATEMENT
                        and candidate in self.lexicon.ambiguous_terms
                        and not _CLAUSE_END.match(text, end)
                    ):
                        continue
                    return candidate
        return None

    def mentions_depression(self, user_input: str) -> bool:
        """True for a depression keyword that is not negated ("not depressed")."""
        text = _normalize(user_input)
        return any(
            not self._negated(text, m.start()) for m in self.lexicon.depression.finditer(text)
        )

    def echoes(self, reply: str, emotion: str) -> bool:
        """True if the reply names ``emotion`` or any word in its family."""
        canonical = self._index.get(emotion, (emotion, ""))[0]
        family = self._family.get(canonical, [emotion])
        pattern = r"\b(?:" + "|".join(re.escape(t) for t in family) + r")"
        return bool(re.search(pattern, reply, re.IGNORECASE))

    def check(self, reply: str, user_input: str) -> EmotionCheck:
        reply = _normalize(reply)
        reading = self.detect(user_input)
        reasons: list[str] = []

        wrong = self._wrong_assertions(reply, reading)
        if wrong:
            reasons.append(
                f"reply asserts {wrong[0].group(0)!r} but user shows {reading.primary}"
            )
        if reading.stated and not self.echoes(reply, reading.stated):
            reasons.append(f"explicit feeling {reading.stated!r} not echoed")
        if reading.depression and not self.lexicon.depression_acknowledgment.search(reply):
            reasons.append("depression not acknowledged")
        temporal = self.lexicon.temporal_distress.search(_normalize(user_input))
        if (
            temporal
            and not reading.depression
            and not self.lexicon.temporal_acknowledgment.search(reply)
        ):
            reasons.append(f"{temporal.group(0)!r} not acknowledged")

        if not reasons:
            return EmotionCheck(reading=reading)
        logger.info("Emotion misidentification: %s", "; ".join(reasons))
        return EmotionCheck(
            misidentified=True,
            wrong_assertion=bool(wrong),
            reasons=reasons,
            reading=reading,
            corrected_text=self.correct(reply, user_input, reading),
        )

    def correct(self, reply: str, user_input: str, reading: EmotionReading) -> str:
        text = _normalize(reply)
        if reading.depression:
            target = "depressed"
        else:
            target = reading.stated or reading.primary
        changed = False

        if target:
            for match in reversed(self._wrong_assertions(text, reading)):
                replacement = f"you're feeling {target}"
                if match.group(0)[0].isupper():
                    replacement = replacement[0].upper() + replacement[1:]
                text = text[: match.start()] + replacement + text[match.end() :]
                changed = True

        if reading.stated and not self.echoes(text, reading.stated):
            text = self._acknowledge(text, f"you're feeling {reading.stated}")
            changed = True
        if reading.depression and not self.lexicon.depression_acknowledgment.search(text):
            text = self._acknowledge(text, "you're feeling depressed")
            changed = True

        temporal = self.lexicon.temporal_distress.search(_normalize(user_input))
        if temporal and not self.lexicon.temporal_acknowledgment.search(text):
            adjective, period = temporal.group(1).lower(), temporal.group(2).lower()
            article = "an" if adjective[0] in "aeiou" else "a"
            text = f"I'm sorry to hear you're having {article} {adjective} {period}. {text}"
            changed = True

        if changed:
            text = self._swap_follow_up(text, reading)
        return finalize(text)

    def _lexicon_hits(self, text: str) -> list[str]:
        hits: list[str] = []
        for match in self._terms.finditer(text):
            canonical, category = self._index[match.group(0).lower()]
            if self._negated(text, match.start()):
                if _polarity_of(category) != "positive":
                    continue
                canonical = _NEGATED_POSITIVE
            hits.append(canonical)
        return list(dict.fromkeys(hits))

    def _negated(self, text: str, position: int) -> bool:
        return bool(self.lexicon.negation.search(text[max(0, position - 60) : position]))

    def _wrong_assertions(self, reply: str, reading: EmotionReading) -> list[re.Match[str]]:
        if not reading.primary:
            return []
        user_polarity = reading.polarity
        wrong: list[re.Match[str]] = []
        for match in _FEELING_ASSERTION.finditer(reply):
            word = match.group(1).lower()
            if word in NEUTRAL_WORDS:
                wrong.append(match)
            elif self._opposite(word, user_polarity):
                wrong.append(match)
        for match in _BARE_ASSERTION.finditer(reply):
            word = match.group(1).lower()
            if word in self._index and self._opposite(word, user_polarity):
                if all(match.start() != w.start() for w in wrong):
                    wrong.append(match)
        wrong.extend(_NEUTRAL_TONE.finditer(reply))
        return sorted(wrong, key=lambda m: m.start())

    def _opposite(self, word: str, user_polarity: str | None) -> bool:
        asserted = _polarity_of(self.category_of(word))
        return bool(asserted and user_polarity and asserted != user_polarity)

    def _acknowledge(self, text: str, clause: str) -> str:
        opener = _ACK_OPENER.match(text)
        if opener:
            lead = opener.group(1)
            joiner = " " if lead.lower() == "it sounds like" else " that "
            return f"{lead}{joiner}{clause}.{text[opener.end():]}"
        if clause == "you're feeling depressed":
            return f"I'm sorry to hear that {clause}. {text}"
        return f"I hear that {clause}. {text}"

    def _swap_follow_up(self, text: str, reading: EmotionReading) -> str:
        key = "depressed" if reading.depression else reading.category
        follow_up = self.lexicon.emotion_follow_ups.get(key or "")
        if not follow_up:
            return text
        for pattern in self.lexicon.generic_follow_ups:
            if pattern.search(text):
                return pattern.sub(follow_up, text, count=1)
        return text
