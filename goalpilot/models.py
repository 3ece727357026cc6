"""Pydantic models for GoalPilot."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

from . import config


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    """Kinds of entries in the user-visible message log."""
    USER_INPUT = "user_input"
    TASK_ADDED = "task_added"
    STARTING_TASK = "starting_task"
    ANALYZING_TASK = "analyzing_task"
    EXECUTING_TASK = "executing_task"
    GENERATED_REPORT = "generated_response"


class Phase(str, Enum):
    """Orchestrator state-machine position."""
    IDLE = "idle"
    STARTED = "started"
    ANALYZING = "analyzing"
    EXECUTING = "executing"
    RECONCILING = "reconciling"


# Message types whose detail is filled from a backend stream
STREAMED_TYPES = frozenset([MessageType.EXECUTING_TASK, MessageType.GENERATED_REPORT])


class Message(BaseModel):
    """One entry in the message log."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    type: MessageType
    role: Literal["user", "assistant"] = "assistant"
    timestamp: datetime = Field(default_factory=_utcnow)
    image_url: Optional[str] = None
    detail: Optional[str] = None


class ModelSettings(BaseModel):
    """Model configuration. Only the model name is sent to the backend."""
    model: str = config.DEFAULT_MODEL
    temperature: float = config.DEFAULT_TEMPERATURE
    max_tokens: int = config.DEFAULT_MAX_TOKENS
    language: str = config.DEFAULT_LANGUAGE

    def to_payload(self) -> dict:
        return {"customModelName": self.model}


class Analysis(BaseModel):
    """Backend-proposed action for a task, passed through uninterpreted."""
    reasoning: str = ""
    action: str
    arg: str = ""


class StartResponse(BaseModel):
    """Response of the start and create-follow-on-tasks operations."""
    model_config = ConfigDict(populate_by_name=True)

    run_id: str
    new_tasks: list[str] = Field(default_factory=list, alias="newTasks")


class UploadImageResponse(BaseModel):
    url: str


class RunSnapshot(BaseModel):
    """Read-only view of the active run."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    run_id: str
    goal: str
    model_settings: ModelSettings
    vision_model_settings: ModelSettings
    image_url: Optional[str] = None
    tasks: tuple[str, ...] = ()
    pending: tuple[str, ...] = ()
    completed: tuple[str, ...] = ()
    last_task: Optional[str] = None
    last_result: Optional[str] = None
    results: tuple[str, ...] = ()


class StateSnapshot(BaseModel):
    """Read-only view of everything the presentation layer may see."""
    model_config = ConfigDict(frozen=True)

    run: Optional[RunSnapshot] = None
    messages: tuple[Message, ...] = ()
    phase: Phase = Phase.IDLE
    ready_to_summarize: bool = False
