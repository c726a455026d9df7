"""Static pattern and keyword tables used by every detector.

Everything here is plain data, built once at import time and never
mutated. Detectors receive a ``Lexicon`` instead of importing the tables
directly, so a second locale can be registered in ``LEXICONS`` without
touching detector code.

Tables:
- Emotion lexicon: six categories, canonical emotions with synonyms
- Situational triggers and hedged phrases that imply an emotion
- Depression keywords (always surfaced) and mixed-emotion cues
- Crisis keywords, crisis-resource markers and the crisis statement
- Specialized-concern domains with their scrutiny multipliers
- Formulaic openers, memory-reference phrases and their hedges
- Medical / legal / service risk rules and exclusive fact groups
- The organization fact allow-list
- Fallback replies and clarifying questions
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_I = re.IGNORECASE


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, _I) for p in patterns)


# ---------------------------------------------------------------------------
# Emotion lexicon
# ---------------------------------------------------------------------------
# category -> canonical emotion -> synonyms. Order matters: when two
# canonical emotions could claim a word, the first one listed wins.

EMOTION_LEXICON: dict[str, dict[str, tuple[str, ...]]] = {
    "sad": {
        "depressed": ("depression", "depressing", "hopeless", "worthless", "empty", "numb"),
        "sad": ("unhappy", "down", "blue", "miserable", "heartbroken", "upset", "hurt", "low"),
        "lonely": ("alone", "isolated", "lonesome", "left out"),
        "disappointed": ("let down", "discouraged", "disheartened"),
        "grieving": ("grief", "mourning", "bereaved"),
    },
    "fearful": {
        "anxious": ("anxiety", "nervous", "worried", "stressed", "uneasy", "tense", "on edge"),
        "scared": ("afraid", "frightened", "terrified", "fearful", "panicked"),
        "overwhelmed": ("swamped", "overloaded", "drowning"),
    },
    "angry": {
        "angry": ("mad", "furious", "enraged", "livid", "pissed"),
        "frustrated": ("annoyed", "irritated", "fed up", "aggravated", "exasperated"),
        "resentful": ("bitter", "resentment"),
    },
    "disgusted": {
        "disgusted": ("grossed out", "repulsed", "revolted", "sickened"),
        "ashamed": ("shame", "guilty", "guilt"),
        "embarrassed": ("humiliated", "mortified", "embarrassing"),
    },
    "happy": {
        "happy": ("glad", "joyful", "cheerful", "pleased", "delighted", "wonderful"),
        "excited": ("thrilled", "eager", "pumped", "stoked"),
        "grateful": ("thankful", "appreciative"),
        "proud": ("accomplished",),
        "content": ("peaceful", "calm", "relaxed", "relieved"),
    },
    "surprised": {
        "surprised": ("shocked", "amazed", "astonished", "stunned"),
        "confused": ("puzzled", "bewildered", "unsure"),
    },
}

POSITIVE_CATEGORIES = frozenset({"happy"})
NEGATIVE_CATEGORIES = frozenset({"sad", "fearful", "angry", "disgusted"})

# Words a reply uses when it claims the user has no particular emotion.
NEUTRAL_WORDS = frozenset({"neutral", "fine", "okay", "ok", "alright", "indifferent"})

# Adverbs skipped when reading "I feel really X".
QUALIFIERS = (
    "really", "so", "very", "pretty", "quite", "a bit", "a little", "kind of",
    "kinda", "just", "extremely", "super", "incredibly", "rather", "totally",
)

# A negator up to two words before an emotion term ("not really happy",
# "don't feel happy"). Matched against the text that precedes the term.
NEGATION_BEFORE = re.compile(
    r"(?:\b(?:not|never|hardly|barely|no longer|dont|didnt)\b|n't)(?:\s+[\w']+){0,2}\s+$", _I
)
NEGATION_WORDS = frozenset({"not", "never", "hardly", "barely", "no"})

# Synonyms that read as a feeling after "I feel", but not always after
# "I'm" ("I'm low on money", "I'm down for that").
AMBIGUOUS_EMOTION_TERMS = frozenset({"low", "down", "blue", "empty", "content", "alone", "calm"})


@dataclass(frozen=True)
class SituationalTrigger:
    pattern: re.Pattern[str]
    primary: str
    secondary: str | None = None
    intensity: str = "medium"


def _trigger(pattern: str, primary: str, secondary: str | None = None,
             intensity: str = "medium") -> SituationalTrigger:
    return SituationalTrigger(re.compile(pattern, _I), primary, secondary, intensity)


# Situations that imply an emotion even when no emotion word is used.
SITUATIONAL_TRIGGERS: tuple[SituationalTrigger, ...] = (
    _trigger(r"\b(?:passed away|died|funeral|lost my (?:mom|dad|mother|father|wife|husband|"
             r"son|daughter|brother|sister|friend|dog|cat|pet))\b", "grieving", "sad", "high"),
    _trigger(r"\b(?:broke up|break-?up|divorce|separated|left me)\b", "sad", "lonely"),
    _trigger(r"\b(?:got fired|was fired|laid off|lost my job|unemployed)\b", "sad", "anxious"),
    _trigger(r"\b(?:terrible|awful|horrible|rough) (?:day|night|week|morning|evening)\b",
             "sad", None, "high"),
    _trigger(r"\b(?:bad|tough|long) (?:day|night|week|morning|evening)\b", "sad", None, "low"),
    _trigger(r"\b(?:fight|argument|arguing) with\b", "angry", "sad"),
    _trigger(r"\b(?:exam|job interview|presentation|deadline|court date)\b", "anxious"),
    _trigger(r"\b(?:embarrass(?:ed|ing|ment)|awkward moment|made a fool of myself)\b",
             "embarrassed"),
    _trigger(r"\b(?:got (?:a|the) promotion|got promoted|graduated|got engaged|got the job)\b",
             "happy", "proud"),
)

# Hedged or implicit phrasings, checked after the direct lexicon scan.
IMPLICIT_PHRASES: tuple[SituationalTrigger, ...] = (
    _trigger(r"\bnot feeling (?:myself|great|good)\b|\bunder the weather\b|\b(?:meh|blah)\b",
             "sad", None, "low"),
    _trigger(r"\bnothing (?:seems|feels) right\b|\bdon'?t enjoy anything\b|\blost interest\b",
             "depressed", None, "medium"),
    _trigger(r"\bcan'?t (?:focus|sleep|stop thinking)\b|\bmind (?:is )?racing\b|\bwhat if\b|"
             r"\bknot in my stomach\b|\bbutterflies\b", "anxious", None, "low"),
    _trigger(r"\b(?:ugh|argh)\b|\bkeeps happening\b|\bagain and again\b|\bnothing works\b",
             "frustrated", None, "low"),
    _trigger(r"\bmiss(?:ing)? (?:them|him|her|my)\b|\bwish i could see\b", "lonely", None, "low"),
    _trigger(r"\blooking forward to\b|\bcan'?t wait (?:for|to)\b|\bmade my day\b",
             "excited", None, "low"),
    _trigger(r"\bdidn'?t see (?:that|it) coming\b|\bout of nowhere\b", "surprised", None, "low"),
)

DEPRESSION_PATTERN = re.compile(
    r"\b(?:depress(?:ed|ing|ion)?|hopeless|worthless|empty inside|numb|"
    r"can'?t get out of bed|no energy|lost interest in everything)\b",
    _I,
)

# Phrases showing a reply has acknowledged depression.
DEPRESSION_ACKNOWLEDGMENT = re.compile(
    r"\b(?:depress\w*|feeling down|difficult time|hard time|struggl\w*|so heavy)\b", _I
)

MIXED_EMOTION_CUES = re.compile(
    r"\b(?:conflicted|mixed feelings|torn|bittersweet|on one hand|part of me)\b", _I
)

# Negative temporal statements ("rough week") that a reply must acknowledge.
TEMPORAL_DISTRESS = re.compile(
    r"\b(terrible|awful|horrible|rough|bad|tough) (day|night|week|morning|evening)\b", _I
)
TEMPORAL_ACKNOWLEDGMENT = re.compile(
    r"\b(?:difficult|challenging|hard|tough|rough|sorry to hear)\b", _I
)

# Follow-up questions that say nothing about what the user feels.
GENERIC_FOLLOW_UPS = _compile(
    r"Would you like to tell me more(?: about (?:it|that|this))?\?",
    r"Can you tell me more(?: about (?:it|that|this))?\?",
    r"Tell me more(?: about (?:it|that|this))?\.",
    r"What else is on your mind\?",
    r"How can I help\?",
)

EMOTION_FOLLOW_UPS: dict[str, str] = {
    "depressed": "How long have you been feeling this way?",
    "sad": "What has been weighing on you the most?",
    "fearful": "What feels most worrying to you right now?",
    "angry": "What happened that left you feeling this way?",
    "disgusted": "What about it has bothered you the most?",
    "happy": "What has been going well for you?",
    "surprised": "What caught you most off guard?",
}


# ---------------------------------------------------------------------------
# Crisis
# ---------------------------------------------------------------------------

CRISIS_PATTERNS = _compile(
    r"\bsuicid(?:e|al)\b|\bkill (?:myself|me)\b|\bend (?:my|this) life\b|\bharm (?:myself|me)\b|"
    r"\bcut (?:myself|me)\b|\bhurt (?:myself|me)\b",
    r"\bdon'?t want to (?:live|be alive)\b|\btake my (?:own )?life\b|\bkilling myself\b|"
    r"\bcommit suicide\b",
    r"\bfatal overdose\b|\bhang myself\b|\bi wish i (?:was|were) dead\b|\bi want to die\b",
    r"\bno (?:reason|point) (?:in|to) (?:living|life)\b|\bbetter off dead\b|\bcan'?t go on\b",
    r"\bplan to (?:kill|end|hurt|harm)\b",
)

CRISIS_RESOURCE_MARKERS = _compile(
    r"\b988\b",
    r"\bcrisis (?:text )?line\b",
    r"\b(?:suicide (?:and crisis |prevention )?)lifeline\b",
    r"\b741741\b",
    r"\b911\b",
    r"\bemergency (?:room|services|department)\b",
    r"1-800-273-8255",
)

CRISIS_RESOURCE_STATEMENT = (
    "I'm concerned about what you've shared, and your safety matters most right now. "
    "Please reach out for immediate help: you can call or text 988 to reach the "
    "Suicide and Crisis Lifeline, or text HOME to 741741 for the Crisis Text Line. "
    "If you're in immediate danger, call 911 or go to your nearest emergency room."
)


@dataclass(frozen=True)
class ConcernDomain:
    """A topic that calls for extra scrutiny of any reply."""

    name: str
    patterns: tuple[re.Pattern[str], ...]
    multiplier: float


SPECIALIZED_CONCERNS: tuple[ConcernDomain, ...] = (
    ConcernDomain(
        "eating_disorders",
        _compile(
            r"\b(?:body image|food restriction|purging|bingeing|binge eating)\b",
            r"\b(?:anorexia|bulimia|eating disorder)\b",
        ),
        1.5,
    ),
    ConcernDomain(
        "gambling",
        _compile(r"\b(?:gambling|betting|casino|slot machines?|wagering|gambling debt)\b"),
        1.5,
    ),
    ConcernDomain(
        "substance_use",
        _compile(
            r"\b(?:alcohol|drinking problem|drunk|relapse|sobriety|withdrawal|addiction)\b",
            r"\b(?:cocaine|heroin|opioids?|fentanyl|meth)\b",
        ),
        1.5,
    ),
    ConcernDomain(
        "crisis",
        _compile(
            r"\b(?:emergency|crisis|urgent help|immediate danger)\b",
            r"\b(?:suicidal|suicide|kill myself|end my life|don'?t want to live)\b",
            r"\b(?:harm myself|hurt someone|violent thoughts)\b",
        ),
        2.5,
    ),
)


# ---------------------------------------------------------------------------
# Formulaic phrasing and memory references
# ---------------------------------------------------------------------------

FORMULAIC_OPENERS = _compile(
    r"\bbased on what you(?:'re| are) (?:sharing|saying),?\s*",
    r"\bfrom what you(?:'ve| have) shared,?\s*",
    r"\bi hear what you(?:'re| are) (?:sharing|saying),?\s*",
    r"\bit sounds like\s+",
    r"\bit seems like\s+",
    r"\bi understand that\s+",
)

MEMORY_REFERENCE = re.compile(
    r"\byou (?:mentioned|said|told me|indicated)\b|\bearlier you\b|\bpreviously you\b|"
    r"\bwe (?:discussed|talked about)\b|\bi remember\b|\bas you (?:mentioned|said|noted)\b|"
    r"\bwe've been\b|\blast time we (?:spoke|talked)\b|"
    r"\bin our (?:previous|last|earlier) (?:conversation|session|discussion)\b",
    _I,
)

# Specific claims about what the user said, checked against history.
MEMORY_CLAIM = re.compile(
    r"\byou (?:mentioned|said|told me) (?:that |about )?([^,.!?]+)", _I
)
QUOTED_TEXT = re.compile(r"\"([^\"]{4,})\"")

# Ordered hedges: the first matching rewrite wins for each span.
MEMORY_HEDGES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(p, _I), r)
    for p, r in (
        (r"\bas we (?:discussed|talked about)(?: (?:earlier|before|previously))?,?\s*",
         "it sounds like "),
        (r"\bas you (?:mentioned|said|noted)(?: (?:earlier|before|previously))?,?\s*",
         "from what you're saying, "),
        (r"\b(?:earlier|previously) you (?:mentioned|said|indicated)\b", "you just shared"),
        (r"\byou (?:mentioned|told me) about\b", "you're describing"),
        (r"\byou (?:mentioned|said|told me|indicated) that\b", "it sounds like"),
        (r"\byou (?:mentioned|said|told me)\b", "it sounds like"),
        (r"\bI remember you saying\b", "I understand"),
        (r"\bI remember(?: that)?\b", "I understand"),
        (r"\bwe (?:discussed|talked about)\b", "regarding"),
        (r"\b(?:from|in) our (?:previous|last|earlier) (?:conversation|session|discussion)\b",
         "from what you've shared"),
        (r"\blast time we (?:spoke|talked)\b", "just now"),
        (r"\bwe've been (?:talking|discussing|focusing)(?: on| about)?\b",
         "you're describing"),
    )
)


# ---------------------------------------------------------------------------
# Domain risk rules
# ---------------------------------------------------------------------------

MEDICAL_DIRECTIVES = _compile(
    r"\byou should (?:take|start taking|stop taking|increase|decrease|double|switch)\b",
    r"\b(?:take|try) \d+\s?(?:mg|milligrams|pills?|tablets?)\b",
    r"\bI (?:recommend|suggest|prescribe) (?:taking|that you take|a dose|medication|"
    r"an? (?:antidepressant|ssri|benzodiazepine|sleeping pill))",
    r"\b(?:stop|quit) taking your (?:medication|meds|pills)\b",
    r"\byou (?:have|are suffering from|definitely have) (?:clinical depression|bipolar|ptsd|"
    r"an anxiety disorder|adhd|ocd|a personality disorder)\b",
)

CREDENTIAL_CLAIMS = _compile(
    r"\bI(?:'m| am) (?:a |an |your )?(?:licensed|certified|board[- ]certified) "
    r"(?:\w+ )?(?:counselor|therapist|psychologist|psychiatrist|physician|doctor|professional)\b",
    r"\bI(?:'m| am) (?:a |an |your )(?:doctor|physician|psychiatrist|psychologist|lawyer|"
    r"attorney|nurse)\b",
    r"\bas (?:a|your) (?:licensed|certified) \w+",
    r"\bI hold (?:a|an) (?:license|licence|certification)\b",
)

SERVICE_CLAIMS = _compile(
    r"\bI (?:can|will|could) (?:diagnose|prescribe|treat|cure|heal)\b",
    r"\bI(?:'ll| will) be your (?:therapist|counselor)\b",
    r"\bI(?:'ll| will) provide (?:your )?(?:therapy|treatment)\b",
    r"\blet me (?:diagnose|treat|prescribe)\b",
    r"\bI(?:'m| am) (?:diagnosing|treating) you\b",
    r"\bmy diagnosis is\b",
)

PRICE_PATTERN = re.compile(r"\$\s?(\d+(?:\.\d{2})?)")


@dataclass(frozen=True)
class OrganizationFacts:
    """Facts about the practice that replies may state without being flagged."""

    names: tuple[str, ...]
    services: tuple[str, ...]
    prices: tuple[str, ...]
    providers: tuple[str, ...]
    insurers: tuple[str, ...]
    statutes: tuple[str, ...]
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        terms = (
            *self.names, *self.services, *self.providers, *self.insurers, *self.statutes
        )
        alternatives = [re.escape(t) for t in sorted(terms, key=len, reverse=True)]
        alternatives += [re.escape(p) + r"\b" for p in self.prices]
        object.__setattr__(
            self, "pattern", re.compile(r"(?:" + "|".join(alternatives) + r")", _I)
        )

    def mentioned_in(self, text: str) -> bool:
        return bool(self.pattern.search(text))


ORGANIZATION = OrganizationFacts(
    names=("Cuyahoga Valley Mindful Health and Wellness", "CVMHW"),
    services=(
        "individual therapy", "family counseling", "play therapy", "life coaching",
        "athletic coaching", "telehealth", "Doxy.me", "sliding fee scale",
        "trauma treatment", "veteran services",
    ),
    prices=("$120",),
    providers=("Eric Riesterer", "Wendy Nathan"),
    insurers=(
        "Aetna", "AmeriHealth", "Anthem", "Blue Cross", "Blue Shield", "Buckeye",
        "CareSource", "Humana", "Medicaid", "Medical Mutual", "Molina", "Paramount",
        "UnitedHealthcare",
    ),
    statutes=("HIPAA", "42 CFR Part 2", "Ohio Revised Code 4757"),
)


# ---------------------------------------------------------------------------
# Replies the core may emit on its own
# ---------------------------------------------------------------------------

FALLBACK_RESPONSES: tuple[str, ...] = (
    "I want to make sure I respond accurately. Could you tell me more about what "
    "you're experiencing?",
    "I appreciate you sharing that with me. To better understand your situation, could "
    "you provide some additional context?",
    "Thank you for your patience. I want to be helpful, so could you share a bit more "
    "about what's on your mind?",
    "I'm listening and want to give you a thoughtful response. Could you say more about "
    "what you're going through?",
    "I'd like to make sure I understand correctly before responding. Could you tell me "
    "more about your situation?",
    "To offer the most meaningful support, I'd appreciate it if you could share more "
    "about what you're experiencing right now.",
)

SIMPLIFY_QUESTION_LONG = (
    "I'd like to understand more about what you're experiencing. Could you share more "
    "about that?"
)
SIMPLIFY_QUESTION_SHORT = (
    "Would you mind sharing more about your experience so I can better understand?"
)
REPHRASE_PREFIX = "Can you help me understand a little more about that?"


# ---------------------------------------------------------------------------
# Tokenising and sessions
# ---------------------------------------------------------------------------

STOP_WORDS = frozenset(
    """a an the and or but if then so of to in on at by for with about from as is are was
    were be been being it its this that these those i me my you your we our they them he
    she his her do does did have has had not no just very really can could would should
    will what how when where who which there here than too also into""".split()
)

DETERMINERS = frozenset("a an the this that these those".split())

RESET_PHRASES = re.compile(
    r"\b(?:start over|new conversation|start fresh|let'?s start again|"
    r"reset (?:the |our )?(?:chat|conversation))\b",
    _I,
)

REINTRODUCTION_PATTERNS = _compile(
    r"\bmy name is [a-z]+",
    r"^(?:hi|hello|hey)[,!.]?\s+(?:i'?m|i am) [a-z]+[.!]?$",
    r"^nice to meet you\b",
)


@dataclass(frozen=True)
class Lexicon:
    """All tables for one locale."""

    locale: str
    emotions: dict[str, dict[str, tuple[str, ...]]] = field(
        default_factory=lambda: EMOTION_LEXICON
    )
    situational_triggers: tuple[SituationalTrigger, ...] = SITUATIONAL_TRIGGERS
    implicit_phrases: tuple[SituationalTrigger, ...] = IMPLICIT_PHRASES
    depression: re.Pattern[str] = DEPRESSION_PATTERN
    depression_acknowledgment: re.Pattern[str] = DEPRESSION_ACKNOWLEDGMENT
    mixed_cues: re.Pattern[str] = MIXED_EMOTION_CUES
    temporal_distress: re.Pattern[str] = TEMPORAL_DISTRESS
    temporal_acknowledgment: re.Pattern[str] = TEMPORAL_ACKNOWLEDGMENT
    negation: re.Pattern[str] = NEGATION_BEFORE
    negation_words: frozenset[str] = NEGATION_WORDS
    ambiguous_terms: frozenset[str] = AMBIGUOUS_EMOTION_TERMS
    generic_follow_ups: tuple[re.Pattern[str], ...] = GENERIC_FOLLOW_UPS
    emotion_follow_ups: dict[str, str] = field(default_factory=lambda: EMOTION_FOLLOW_UPS)
    crisis: tuple[re.Pattern[str], ...] = CRISIS_PATTERNS
    crisis_markers: tuple[re.Pattern[str], ...] = CRISIS_RESOURCE_MARKERS
    crisis_statement: str = CRISIS_RESOURCE_STATEMENT
    concerns: tuple[ConcernDomain, ...] = SPECIALIZED_CONCERNS
    formulaic_openers: tuple[re.Pattern[str], ...] = FORMULAIC_OPENERS
    memory_reference: re.Pattern[str] = MEMORY_REFERENCE
    memory_claim: re.Pattern[str] = MEMORY_CLAIM
    quoted_text: re.Pattern[str] = QUOTED_TEXT
    memory_hedges: tuple[tuple[re.Pattern[str], str], ...] = MEMORY_HEDGES
    medical_directives: tuple[re.Pattern[str], ...] = MEDICAL_DIRECTIVES
    credential_claims: tuple[re.Pattern[str], ...] = CREDENTIAL_CLAIMS
    service_claims: tuple[re.Pattern[str], ...] = SERVICE_CLAIMS
    price: re.Pattern[str] = PRICE_PATTERN
    organization: OrganizationFacts = ORGANIZATION
    fallbacks: tuple[str, ...] = FALLBACK_RESPONSES
    simplify_question_long: str = SIMPLIFY_QUESTION_LONG
    simplify_question_short: str = SIMPLIFY_QUESTION_SHORT
    rephrase_prefix: str = REPHRASE_PREFIX
    stop_words: frozenset[str] = STOP_WORDS
    determiners: frozenset[str] = DETERMINERS
    reset_phrases: re.Pattern[str] = RESET_PHRASES
    reintroductions: tuple[re.Pattern[str], ...] = REINTRODUCTION_PATTERNS

    def has_crisis(self, text: str) -> bool:
        return any(p.search(text) for p in self.crisis)

    def has_crisis_resource(self, text: str) -> bool:
        return any(p.search(text) for p in self.crisis_markers)


LEXICONS: dict[str, Lexicon] = {"en-US": Lexicon(locale="en-US")}


def get_lexicon(locale: str = "en-US") -> Lexicon:
    """Return the lexicon registered for ``locale``.

    Raises:
        KeyError: If no lexicon is registered for the locale.
    """
    try:
        return LEXICONS[locale]
    except KeyError:
        known = ", ".join(sorted(LEXICONS))
        raise KeyError(f"No lexicon for locale {locale!r} (known: {known})") from None
