"""In-process asyncio queue implementation of EventQueue."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from safeguard.core.models import SessionEvent


class AsyncioEventQueue:
    """EventQueue backed by asyncio.Queue. Zero dependencies."""

    def __init__(self, max_size: int = 10_000) -> None:
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=max_size)

    def put_nowait(self, event: SessionEvent) -> None:
        """Raises asyncio.QueueFull when the queue is at capacity."""
        self._queue.put_nowait(event)

    async def get(self) -> SessionEvent:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()
