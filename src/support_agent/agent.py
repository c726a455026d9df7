"""Support agent: Claude writes a reply, the verification pipeline vets it.

This module wires together:
- An LLM (Claude) that writes a candidate reply from the conversation
- A system prompt that keeps Claude in the role of a supportive assistant
- One TurnPipeline per session, which checks and corrects every candidate
  before it is returned

The flow for one message:
1. Look up (or create) the session's pipeline
2. Under the session lock, ask Claude for a candidate reply given the
   committed history
3. Run the candidate through the pipeline (verify, correct, commit)
4. Return the final text; diagnostics only go to the log
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import SecretStr

from support_agent.config import ANTHROPIC_API_KEY, ANTHROPIC_MODEL, MAX_SESSIONS
from support_agent.verification import Role, TurnPipeline, Utterance

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# System prompt: instructions for Claude
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
You are a supportive conversational assistant for Cuyahoga Valley Mindful \
Health and Wellness (CVMHW), a counseling practice.
You listen, reflect what the person is feeling, and help them find the right \
next step.

RULES:
- Reflect the person's feelings in their own words. Never call someone \
"neutral" when they describe a feeling.
- Only refer to earlier parts of the conversation that actually happened.
- You are not a clinician. Never diagnose, prescribe, or claim a license.
- Only state practice facts you were given (services, fees, providers).
- If someone mentions suicide or self-harm, share the 988 Suicide and Crisis \
Lifeline and encourage them to reach out right away.
- Keep replies short: two to four sentences, ending with one open question.
"""

# ---------------------------------------------------------------------------
# Response generator
# ---------------------------------------------------------------------------
# Built lazily so importing this module doesn't fail when
# ANTHROPIC_API_KEY is not set (e.g., in CI).

_model: ChatAnthropic | None = None


def _get_model() -> ChatAnthropic:
    """Create the Claude chat model (lazily, on first call)."""
    global _model  # noqa: PLW0603
    if _model is not None:
        return _model

    # mypy can't see Pydantic model fields as constructor kwargs, so we
    # suppress the type error here. This works correctly at runtime.
    _model = ChatAnthropic(
        model_name=ANTHROPIC_MODEL,  # type: ignore[call-arg]
        anthropic_api_key=SecretStr(ANTHROPIC_API_KEY),  # type: ignore[call-arg]
    )
    return _model


def _to_messages(message: str, history: tuple[Utterance, ...]) -> list[BaseMessage]:
    messages: list[BaseMessage] = [SystemMessage(content=SYSTEM_PROMPT)]
    for utterance in history:
        if utterance.role is Role.USER:
            messages.append(HumanMessage(content=utterance.text))
        else:
            messages.append(AIMessage(content=utterance.text))
    messages.append(HumanMessage(content=message))
    return messages


async def generate_candidate(message: str, history: tuple[Utterance, ...] = ()) -> str:
    """Ask Claude for a candidate reply.

    When ANTHROPIC_API_KEY is not set (e.g., in CI), returns a placeholder
    so the pipeline and tests work without real API credentials.

    Args:
        message: The user's latest message.
        history: Earlier utterances in this session, oldest first.

    Returns:
        The candidate reply text. Not yet verified.
    """
    if not ANTHROPIC_API_KEY:
        return f"[Agent placeholder, no API key configured] You said: {message}"

    result = await _get_model().ainvoke(_to_messages(message, history))
    return str(result.content)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

# Least recently used first. Capped at MAX_SESSIONS.
_pipelines: OrderedDict[str, TurnPipeline] = OrderedDict()


def get_pipeline(session_id: str) -> TurnPipeline:
    """Return the pipeline for ``session_id``, creating it on first use.

    Creating one beyond MAX_SESSIONS evicts the least recently used session.
    """
    pipeline = _pipelines.get(session_id)
    if pipeline is not None:
        _pipelines.move_to_end(session_id)
        return pipeline

    pipeline = TurnPipeline()
    _pipelines[session_id] = pipeline
    logger.info("Created session %s", session_id)
    while len(_pipelines) > MAX_SESSIONS:
        evicted, _ = _pipelines.popitem(last=False)
        logger.info("Evicted least recently used session %s", evicted)
    return pipeline


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_agent(message: str, session_id: str | None = None) -> tuple[str, str]:
    """Process a user message and return the verified reply.

    This is the main entry point that the FastAPI server calls.

    Args:
        message: The user's message.
        session_id: Existing session to continue. A new one is created
            when omitted or unknown.

    Returns:
        A ``(reply, session_id)`` tuple.
    """
    session_id = session_id or str(uuid.uuid4())
    pipeline = get_pipeline(session_id)

    reply, diagnostics = await pipeline.generate_and_process(generate_candidate, message)

    logger.info(
        "Session %s: action=%s confidence=%.3f issues=%s",
        session_id,
        diagnostics.action.value,
        diagnostics.confidence_score,
        diagnostics.issues,
    )
    return reply, session_id
