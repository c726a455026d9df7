"""Configuration for the support agent.

Loads settings from environment variables (via a .env file or the system
environment). Every value has a default so the package can be imported
when no env vars are set, which CI and the test suite rely on.

The verifier thresholds live here too. They were tuned by hand in the
past, so each one is an env var rather than a constant buried in the
scoring code.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (it won't exist in CI or Docker)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# --- LLM (Large Language Model) ---
# The API key for Anthropic's Claude, which writes the candidate replies.
# Without it the agent answers with a placeholder (see agent.py).
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")

# --- Logging ---
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# --- Lexicon ---
# Which pattern library the detectors use. Only "en-US" ships with the core.
LEXICON_LOCALE: str = os.getenv("LEXICON_LOCALE", "en-US")

# --- Conversation sessions ---
# How many utterances (user + agent) a session keeps before evicting the oldest.
SESSION_CAPACITY: int = _int("SESSION_CAPACITY", 40)
# A gap longer than this between user messages starts a new session.
SESSION_GAP_MINUTES: float = _float("SESSION_GAP_MINUTES", 30.0)
# The agent keeps at most this many live sessions; the least recently used go first.
MAX_SESSIONS: int = _int("MAX_SESSIONS", 1000)
# How many previous agent replies the repetition check compares against.
REPETITION_LOOKBACK: int = _int("REPETITION_LOOKBACK", 5)

# --- Verifier thresholds ---
# Confidence starts here and only goes down. Must stay below 1.0.
CONFIDENCE_CEILING: float = _float("CONFIDENCE_CEILING", 0.95)
PREVENT_THRESHOLD: float = _float("PREVENT_THRESHOLD", 0.35)
SIMPLIFY_THRESHOLD: float = _float("SIMPLIFY_THRESHOLD", 0.55)
DELAY_THRESHOLD: float = _float("DELAY_THRESHOLD", 0.9)
ROLLBACK_THRESHOLD: float = _float("ROLLBACK_THRESHOLD", 0.9)

# Rollback uses a logistic curve over the repetition score:
#   p = 1 / (1 + e^-(steepness * (score - midpoint)))
# and rolls back when p exceeds ROLLBACK_PROBABILITY.
ROLLBACK_SIGMOID_MIDPOINT: float = _float("ROLLBACK_SIGMOID_MIDPOINT", 0.6)
ROLLBACK_SIGMOID_STEEPNESS: float = _float("ROLLBACK_SIGMOID_STEEPNESS", 10.0)
ROLLBACK_PROBABILITY: float = _float("ROLLBACK_PROBABILITY", 0.7)

# Similarity above this counts as a near-duplicate phrase.
NEAR_DUPLICATE_THRESHOLD: float = _float("NEAR_DUPLICATE_THRESHOLD", 0.65)
NGRAM_SIZE: int = _int("NGRAM_SIZE", 3)

# --- Artificial response delay ---
#   delay_ms = base + log10(1 + (1 - confidence) * k) * scale, capped at max
RESPONSE_DELAY_ENABLED: bool = os.getenv("RESPONSE_DELAY_ENABLED", "true").lower() in (
    "1",
    "true",
    "yes",
)
DELAY_BASE_MS: float = _float("DELAY_BASE_MS", 625.0)
DELAY_SCALE_MS: float = _float("DELAY_SCALE_MS", 1875.0)
DELAY_K: float = _float("DELAY_K", 12.5)
DELAY_MAX_MS: float = _float("DELAY_MAX_MS", 3750.0)
