"""GoalPilot - decompose a goal into tasks and drive them through a reasoning backend."""

__version__ = "0.1.0"
