"""Injectable clock and sleep, so retry and sharing loops can be tested without waiting."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


async def sleep_unless_set(sleep: Sleep, delay: float, cancel: asyncio.Event | None) -> bool:
    """Wait ``delay`` seconds. Returns False if ``cancel`` was set before or during the wait."""
    if cancel is None:
        await sleep(delay)
        return True
    if cancel.is_set():
        return False

    sleeper = asyncio.ensure_future(sleep(delay))
    stopper = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, stopper):
            if not task.done():
                task.cancel()
    return not cancel.is_set()
