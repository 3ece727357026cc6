"""Presentation-layer boundary.

A UI talks to the core only through this facade: it reads snapshots and
emits three intents - submit text, request a summary, submit an image.
"""

import logging
from typing import Optional

from . import config
from .errors import ValidationError
from .models import StateSnapshot
from .orchestrator import Orchestrator, fixed_delay

logger = logging.getLogger(__name__)


class Session:
    """One user conversation backed by a single orchestrator."""

    def __init__(self, orchestrator: Optional[Orchestrator] = None):
        self.orchestrator = orchestrator or Orchestrator(
            pacing=fixed_delay(config.MESSAGE_DELAY)
        )
        self._submitted = False

    @property
    def ready_to_summarize(self) -> bool:
        """True once a submission has finished and there are results to summarize."""
        run = self.orchestrator.state.run
        return (
            self._submitted
            and not self.orchestrator.looping
            and run is not None
            and bool(run.results)
        )

    async def submit_text(self, text: str) -> None:
        """Start a run if no goal is set yet, otherwise send a chat turn."""
        if not text or not text.strip():
            raise ValidationError("Text must not be empty")

        try:
            if self.orchestrator.state.goal is None:
                logger.info("No active goal, starting a run")
                await self.orchestrator.start(text)
            else:
                await self.orchestrator.chat(text)
        finally:
            self._submitted = True

    async def request_summary(self) -> str:
        return await self.orchestrator.summarize()

    async def submit_image(
        self,
        data: bytes,
        filename: str = "image",
        content_type: Optional[str] = None,
    ) -> str:
        return await self.orchestrator.upload_image(data, filename, content_type)

    def snapshot(self) -> StateSnapshot:
        return self.orchestrator.snapshot().model_copy(
            update={"ready_to_summarize": self.ready_to_summarize}
        )

    async def aclose(self):
        await self.orchestrator.client.aclose()
