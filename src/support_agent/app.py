"""FastAPI server, the HTTP entry point for the support agent.

It exposes two endpoints:

- GET  /agent/health   Simple check that the server is running
- POST /agent/chat     Send a message, get back the verified reply

Verification diagnostics are written to the log and never returned to
the client.

Run locally with:
    uvicorn support_agent.app:app --reload
"""

import logging

from fastapi import FastAPI
from pydantic import BaseModel

from support_agent.agent import run_agent
from support_agent.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Support Agent",
    description="Conversational support agent with response verification",
    version="0.1.0",
)


class ChatRequest(BaseModel):
    """What the client sends to the /agent/chat endpoint."""

    message: str  # The user's message
    session_id: str | None = None  # Optional: continue an existing conversation


class ChatResponse(BaseModel):
    """What the /agent/chat endpoint sends back."""

    response: str  # The verified reply
    session_id: str  # The session ID (new or existing) for follow-up messages


@app.get("/agent/health")
async def health() -> dict[str, str]:
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok"}


@app.post("/agent/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    """Process a chat message through the agent.

    The reply is written by the model, then checked and corrected by the
    verification pipeline before it is returned.

    Include a session_id to continue a previous conversation. If omitted,
    a new session is created and its ID is returned in the response.
    """
    response_text, session_id = await run_agent(
        request.message, session_id=request.session_id
    )
    return ChatResponse(response=response_text, session_id=session_id)
