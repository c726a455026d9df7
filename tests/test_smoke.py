"""Smoke tests: verify the package is wired up correctly.

They ensure that:
1. All modules can be imported without errors
2. The FastAPI app starts up properly
3. Configuration loads with default values

This is the first thing CI runs, so if these fail, nothing else will work.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient


def test_imports() -> None:
    """Verify all modules can be imported without crashing."""
    import support_agent  # noqa: F401
    import support_agent.agent  # noqa: F401
    import support_agent.app  # noqa: F401
    import support_agent.config  # noqa: F401
    import support_agent.verification  # noqa: F401
    import support_agent.verification.controller  # noqa: F401
    import support_agent.verification.emotion  # noqa: F401
    import support_agent.verification.lexicon  # noqa: F401
    import support_agent.verification.pipeline  # noqa: F401
    import support_agent.verification.repetition  # noqa: F401
    import support_agent.verification.risk  # noqa: F401
    import support_agent.verification.similarity  # noqa: F401
    import support_agent.verification.verifier  # noqa: F401


def test_config_defaults() -> None:
    """Config should load with sensible defaults even without a .env file."""
    from support_agent.config import CONFIDENCE_CEILING, LEXICON_LOCALE, PREVENT_THRESHOLD

    assert LEXICON_LOCALE == "en-US"
    assert 0.0 < PREVENT_THRESHOLD < CONFIDENCE_CEILING < 1.0


def test_health_endpoint() -> None:
    """The /agent/health endpoint should return 200 OK."""
    from support_agent.app import app

    client = TestClient(app)
    response = client.get("/agent/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@patch("support_agent.agent.ANTHROPIC_API_KEY", "")
def test_chat_endpoint_placeholder() -> None:
    """The /agent/chat endpoint should accept a message and return a response."""
    from support_agent.app import app

    client = TestClient(app)
    response = client.post("/agent/chat", json={"message": "Hello"})
    assert response.status_code == 200
    data = response.json()
    assert "Hello" in data["response"]
    assert data["session_id"]
