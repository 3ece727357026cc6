"""Task orchestration for GoalPilot.

Turns a goal into a task queue and drains it against the backend:
1. Ask the backend for an initial task list
2. Analyze the head of the queue
3. Execute it, streaming output into the message log
4. Record the result and ask for follow-on tasks
5. Repeat until nothing is pending
"""

from .loop import Orchestrator
from .pacing import PacingPolicy, fixed_delay, no_pacing

__all__ = ["Orchestrator", "PacingPolicy", "fixed_delay", "no_pacing"]
