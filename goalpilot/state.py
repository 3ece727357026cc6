"""Run state owned by the orchestrator.

The presentation layer only ever sees copies produced by snapshot();
all mutation goes through the orchestrator.
"""

import logging
import threading
from typing import Iterable, Optional

from . import config
from .models import (
    Message,
    MessageType,
    ModelSettings,
    Phase,
    RunSnapshot,
    StateSnapshot,
    STREAMED_TYPES,
)

logger = logging.getLogger(__name__)


class Run:
    """Progress of one goal: task lists, results and last-task context."""

    def __init__(
        self,
        run_id: str,
        goal: str,
        model_settings: ModelSettings,
        vision_model_settings: ModelSettings,
        image_url: Optional[str] = None,
    ):
        self.run_id = run_id
        self.goal = goal
        self.model_settings = model_settings
        self.vision_model_settings = vision_model_settings
        self.image_url = image_url
        self.tasks: list[str] = []
        self.pending: list[str] = []
        self.completed: list[str] = []
        self.last_task: Optional[str] = None
        self.last_result: Optional[str] = None
        self.results: list[str] = []

    def add_tasks(self, tasks: Iterable[str]) -> list[str]:
        """Append tasks not already known to both the full and pending lists.

        Dedup is by exact text. Returns the tasks actually added, in order.
        """
        added = []
        for task in tasks:
            if task in self.tasks:
                continue
            self.tasks.append(task)
            self.pending.append(task)
            added.append(task)
        return added

    def complete_head(self, result: str) -> str:
        """Move the head of pending to completed and record its result."""
        if not self.pending:
            raise IndexError("no pending task to complete")
        task = self.pending.pop(0)
        self.completed.append(task)
        self.last_task = task
        self.last_result = result
        self.results.append(result)
        return task

    def copy(self) -> "Run":
        """Independent copy, used to stage a loop step before committing it."""
        clone = Run(
            self.run_id,
            self.goal,
            self.model_settings,
            self.vision_model_settings,
            self.image_url,
        )
        clone.tasks = list(self.tasks)
        clone.pending = list(self.pending)
        clone.completed = list(self.completed)
        clone.last_task = self.last_task
        clone.last_result = self.last_result
        clone.results = list(self.results)
        return clone

    def context_payload(self) -> dict:
        """Fields shared by create, summarize and chat requests."""
        return {
            "goal": self.goal,
            "model_settings": self.model_settings.to_payload(),
            "vision_model_settings": self.vision_model_settings.to_payload(),
            "image_url": self.image_url or "",
            "run_id": self.run_id,
        }

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            run_id=self.run_id,
            goal=self.goal,
            model_settings=self.model_settings.model_copy(),
            vision_model_settings=self.vision_model_settings.model_copy(),
            image_url=self.image_url,
            tasks=tuple(self.tasks),
            pending=tuple(self.pending),
            completed=tuple(self.completed),
            last_task=self.last_task,
            last_result=self.last_result,
            results=tuple(self.results),
        )


class MessageHandle:
    """Write access to the detail of one streamed message."""

    def __init__(self, log: "MessageLog", message: Message):
        self._log = log
        self._message = message

    @property
    def id(self) -> str:
        return self._message.id

    @property
    def detail(self) -> str:
        with self._log._lock:
            return self._message.detail or ""

    def append(self, chunk: str):
        """Append a streamed chunk to this message's detail."""
        if self._message.detail is None:
            raise ValueError(f"{self._message.type.value} messages have no detail")
        with self._log._lock:
            self._message.detail += chunk


class MessageLog:
    """Append-only, time-ordered log of user-visible messages."""

    def __init__(self):
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    def append(
        self,
        text: str,
        message_type: MessageType,
        role: str = "assistant",
        image_url: Optional[str] = None,
    ) -> MessageHandle:
        message = Message(
            text=text,
            type=message_type,
            role=role,
            image_url=image_url,
            detail="" if message_type in STREAMED_TYPES else None,
        )
        with self._lock:
            self._messages.append(message)
        return MessageHandle(self, message)

    def snapshot(self) -> tuple[Message, ...]:
        with self._lock:
            return tuple(m.model_copy() for m in self._messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)


class RunState:
    """Everything the orchestrator owns: the active run, staged inputs and the log."""

    def __init__(
        self,
        model_settings: Optional[ModelSettings] = None,
        vision_model_settings: Optional[ModelSettings] = None,
    ):
        self.model_settings = model_settings or ModelSettings()
        self.vision_model_settings = vision_model_settings or ModelSettings(
            model=config.DEFAULT_VISION_MODEL
        )
        self.image_url: Optional[str] = None
        self.run: Optional[Run] = None
        self.messages = MessageLog()

    @property
    def goal(self) -> Optional[str]:
        return self.run.goal if self.run else None

    def new_run(self, run_id: str, goal: str) -> Run:
        """Build a run from the current settings. Not active until install_run()."""
        return Run(
            run_id=run_id,
            goal=goal,
            model_settings=self.model_settings.model_copy(),
            vision_model_settings=self.vision_model_settings.model_copy(),
            image_url=self.image_url,
        )

    def install_run(self, run: Run):
        """Replace the active run in one assignment."""
        if self.run is not None and self.run.run_id != run.run_id:
            logger.info(f"Replacing run {self.run.run_id} with {run.run_id}")
        self.run = run

    def snapshot(self, phase: Phase = Phase.IDLE) -> StateSnapshot:
        return StateSnapshot(
            run=self.run.snapshot() if self.run else None,
            messages=self.messages.snapshot(),
            phase=phase,
        )
