"""Error taxonomy for GoalPilot."""

from typing import Optional


class GoalPilotError(Exception):
    """Base class for all GoalPilot errors."""


class TransportError(GoalPilotError):
    """Network or HTTP failure talking to the backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(GoalPilotError):
    """Backend response did not match the expected shape."""


class ValidationError(GoalPilotError):
    """Caller input was rejected before reaching the backend."""


class BusyError(GoalPilotError):
    """A task loop is already running on this orchestrator."""
