"""Pacing policies for announcing new tasks.

A policy is awaited after each task-added message. Pacing only affects
how the log fills up for a watching user, never what ends up in it.
"""

import asyncio
from typing import Awaitable, Callable

PacingPolicy = Callable[[], Awaitable[None]]


async def no_pacing() -> None:
    """Default policy: announce tasks back to back."""
    return None


def fixed_delay(seconds: float) -> PacingPolicy:
    """Sleep a fixed interval after each announced task."""
    if seconds <= 0:
        return no_pacing

    async def _pace() -> None:
        await asyncio.sleep(seconds)

    return _pace
