"""GoalPilot - HTTP boundary for a presentation layer."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .errors import BusyError, GoalPilotError, ValidationError
from .models import Message, StateSnapshot
from .session import Session

logger = logging.getLogger(__name__)

session = Session()


class TextIntent(BaseModel):
    """Goal or chat text submitted by the user."""
    text: str = Field(..., description="Goal for a new run, or a chat turn")


class IntentResponse(BaseModel):
    message: str = "success"
    detail: Optional[str] = None
    ready_to_summarize: bool = False


def _raise_http(e: GoalPilotError):
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, BusyError):
        raise HTTPException(status_code=409, detail=str(e))
    logger.error(f"Backend call failed: {e}", exc_info=True)
    raise HTTPException(status_code=502, detail=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the backend client on shutdown."""
    yield
    await session.aclose()


app = FastAPI(
    title="GoalPilot",
    description="Decompose a goal into tasks and drive them through a reasoning backend",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "goalpilot"}


@app.get("/api/state", response_model=StateSnapshot)
async def get_state():
    """Snapshot of the run, message log and summarize flag."""
    return session.snapshot()


@app.get("/api/messages", response_model=list[Message])
async def get_messages():
    """The message log, oldest first."""
    return list(session.snapshot().messages)


@app.post("/api/intents/text", response_model=IntentResponse)
async def submit_text(intent: TextIntent):
    """Start a run for a goal, or chat about the current one."""
    try:
        await session.submit_text(intent.text)
    except GoalPilotError as e:
        _raise_http(e)
    return IntentResponse(ready_to_summarize=session.ready_to_summarize)


@app.post("/api/intents/summary", response_model=IntentResponse)
async def request_summary():
    """Stream a report over all task results."""
    try:
        report = await session.request_summary()
    except GoalPilotError as e:
        _raise_http(e)
    return IntentResponse(detail=report, ready_to_summarize=session.ready_to_summarize)


@app.post("/api/intents/image", response_model=IntentResponse)
async def submit_image(request: Request):
    """Upload the raw request body as an image."""
    data = await request.body()
    content_type = request.headers.get("content-type")
    if content_type == "application/octet-stream":
        # Generic uploads are sniffed by the orchestrator
        content_type = None
    try:
        url = await session.submit_image(data, content_type=content_type)
    except GoalPilotError as e:
        _raise_http(e)
    return IntentResponse(message="Image uploaded", detail=url)
