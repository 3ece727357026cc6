"""Goal orchestrator loop.

Owns the run state and is the only writer of it. Backend calls are
issued strictly one after another: each step depends on the task list
and last result left behind by the previous one.
"""

import asyncio
import logging
import mimetypes
from typing import Optional

from .. import config
from ..client import BackendClient
from ..errors import BusyError, ValidationError
from ..models import (
    Analysis,
    MessageType,
    Phase,
    RunSnapshot,
    StartResponse,
    StateSnapshot,
    UploadImageResponse,
)
from ..state import Run, RunState
from .pacing import PacingPolicy, no_pacing

logger = logging.getLogger(__name__)

# Leading bytes of the image formats the backend accepts
IMAGE_SIGNATURES = {
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"\xff\xd8\xff": "image/jpeg",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
    b"BM": "image/bmp",
}


def sniff_image_type(data: bytes) -> Optional[str]:
    """Guess an image content type from the file's leading bytes."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, content_type in IMAGE_SIGNATURES.items():
        if data.startswith(signature):
            return content_type
    return None


class Orchestrator:
    """Drives one goal at a time through start, analyze, execute and follow-on creation."""

    def __init__(
        self,
        client: Optional[BackendClient] = None,
        state: Optional[RunState] = None,
        pacing: PacingPolicy = no_pacing,
    ):
        self.client = client or BackendClient()
        self.state = state or RunState()
        self.pacing = pacing
        self.phase = Phase.IDLE
        self._loop_lock = asyncio.Lock()
        # Only one backend stream may write into the log at a time
        self._stream_lock = asyncio.Lock()

    @property
    def looping(self) -> bool:
        """True while start() or resume() is draining the queue."""
        return self._loop_lock.locked()

    def snapshot(self) -> StateSnapshot:
        return self.state.snapshot(self.phase)

    async def start(self, goal: str) -> RunSnapshot:
        """Start a new run for goal and drain its task queue.

        The new run only replaces the current one once the backend has
        accepted the goal; a failed start leaves the previous state intact.

        Raises:
            ValidationError: goal is empty
            BusyError: a task loop is already running
            TransportError, DecodeError: backend failures, unrecovered
        """
        if not goal or not goal.strip():
            raise ValidationError("Goal must not be empty")
        if self._loop_lock.locked():
            logger.warning("Rejected start: a task loop is already running")
            raise BusyError("A goal is already being processed")

        async with self._loop_lock:
            try:
                messages = self.state.messages
                messages.append(goal, MessageType.USER_INPUT, role="user")
                self.phase = Phase.STARTED
                messages.append(goal, MessageType.STARTING_TASK)

                response = await self.client.post_json(
                    "start",
                    {
                        "goal": goal,
                        "modelSettings": self.state.model_settings.to_payload(),
                        "visionModelSettings": self.state.vision_model_settings.to_payload(),
                        "image_url": self.state.image_url or "",
                    },
                    StartResponse,
                )

                run = self.state.new_run(response.run_id, goal)
                added = run.add_tasks(response.new_tasks)
                self.state.install_run(run)
                logger.info(f"Run {run.run_id} started with {len(added)} tasks")

                await self._announce_tasks(added)
                await self._drain()
            finally:
                self.phase = Phase.IDLE

        return self.state.run.snapshot()

    async def resume(self) -> RunSnapshot:
        """Re-enter the loop from the current pending head, e.g. after a failed step."""
        run = self._require_run()
        if self._loop_lock.locked():
            logger.warning("Rejected resume: a task loop is already running")
            raise BusyError("A goal is already being processed")

        async with self._loop_lock:
            try:
                logger.info(f"Resuming run {run.run_id} with {len(run.pending)} pending")
                await self._drain()
            finally:
                self.phase = Phase.IDLE

        return self.state.run.snapshot()

    async def _drain(self):
        while self.state.run.pending:
            await self._step()
        logger.info(f"Run {self.state.run.run_id} drained: {len(self.state.run.completed)} completed")

    async def _step(self):
        """Process the head of pending.

        The run is only updated after follow-on tasks have been fetched, so
        a failure anywhere in the step leaves the task at the head of pending
        and last_task/last_result/results untouched.
        """
        run = self.state.run
        task = run.pending[0]

        self.phase = Phase.ANALYZING
        analysis = await self.analyze(task)

        self.phase = Phase.EXECUTING
        result = await self.execute(task, analysis)

        self.phase = Phase.RECONCILING
        staged = run.copy()
        staged.complete_head(result)
        response = await self.client.post_json(
            "create",
            {
                **staged.context_payload(),
                "tasks": list(staged.tasks),
                "last_task": staged.last_task or "",
                "result": staged.last_result or "",
                "completed_tasks": list(staged.completed),
            },
            StartResponse,
        )
        added = staged.add_tasks(response.new_tasks)
        # An image uploaded while the step ran wins over the staged copy
        staged.image_url = run.image_url
        self.state.install_run(staged)
        logger.info(f"Completed task '{task}' ({len(staged.pending)} pending, {len(added)} new)")

        await self._announce_tasks(added)

    async def _announce_tasks(self, tasks: list[str]):
        for task in tasks:
            self.state.messages.append(task, MessageType.TASK_ADDED)
            await self.pacing()

    async def analyze(self, task: str) -> Analysis:
        """Ask the backend how to approach task. The analysis is returned as-is."""
        run = self._require_run()
        self.state.messages.append(task, MessageType.ANALYZING_TASK)
        return await self.client.post_json(
            "analyze",
            {
                "goal": run.goal,
                "task": task,
                "model_settings": run.model_settings.to_payload(),
                "run_id": run.run_id,
            },
            Analysis,
        )

    async def execute(self, task: str, analysis: Analysis) -> str:
        """Execute task, streaming output into a new executing-task message.

        Returns:
            The concatenation of every streamed chunk
        """
        run = self._require_run()
        handle = self.state.messages.append(
            f"{analysis.action} {analysis.arg}", MessageType.EXECUTING_TASK
        )
        chunks: list[str] = []

        def on_chunk(chunk: str):
            handle.append(chunk)
            chunks.append(chunk)

        async with self._stream_lock:
            await self.client.stream_text(
                "execute",
                {
                    "goal": run.goal,
                    "task": task,
                    "analysis": analysis.model_dump(),
                    "run_id": run.run_id,
                },
                on_chunk,
            )

        return "".join(chunks)

    async def summarize(self) -> str:
        """Stream a report over all results into a new generated-report message."""
        run = self._require_run()
        if not run.results:
            raise ValidationError("Nothing to summarize yet")

        payload = {**run.context_payload(), "results": list(run.results)}
        return await self._stream_report("summarize", payload)

    async def chat(self, text: str) -> str:
        """Send a free-text turn about the run; the task queue is not touched."""
        if not text or not text.strip():
            raise ValidationError("Message must not be empty")
        run = self._require_run()

        payload = {**run.context_payload(), "results": list(run.results), "message": text}
        return await self._stream_report("chat", payload)

    async def _stream_report(self, route: str, payload: dict) -> str:
        handle = self.state.messages.append("", MessageType.GENERATED_REPORT)
        async with self._stream_lock:
            await self.client.stream_text(route, payload, handle.append)
        return handle.detail

    async def upload_image(
        self,
        data: bytes,
        filename: str = "image",
        content_type: Optional[str] = None,
    ) -> str:
        """Upload an image and attach it to the current and any future run.

        Returns:
            The URL the backend stored the image under
        """
        if not data:
            raise ValidationError("Image is empty")
        content_type = (
            content_type
            or mimetypes.guess_type(filename)[0]
            or sniff_image_type(data)
            or ""
        )
        if not content_type.startswith("image/"):
            raise ValidationError(f"Not an image: {content_type or 'unknown type'}")

        response = await self.client.upload(
            "upload_image", "image", filename, data, content_type, UploadImageResponse
        )
        self.state.messages.append(
            config.UPLOAD_SUCCESS_TEXT,
            MessageType.USER_INPUT,
            role="user",
            image_url=response.url,
        )
        self.state.image_url = response.url
        if self.state.run:
            self.state.run.image_url = response.url
        logger.info(f"Image uploaded to {response.url}")
        return response.url

    def _require_run(self) -> Run:
        if self.state.run is None:
            raise ValidationError("No goal has been started")
        return self.state.run
