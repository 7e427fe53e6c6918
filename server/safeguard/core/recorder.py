"""Event recorder — stamps session events and enqueues them for the session log.

It depends on the EventQueue and EventStorage protocols, not concrete
implementations. Recording never blocks the caller: a full queue drops the
event and logs an error.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from safeguard.core.models import SessionEvent

if TYPE_CHECKING:
    from safeguard.core.stats import EngineStats
    from safeguard.queue.base import EventQueue
    from safeguard.storage.base import EventStorage

log = structlog.get_logger()


class EventRecorder:
    """Feeds session events to storage through the queue."""

    def __init__(
        self,
        queue: EventQueue,
        storage: EventStorage,
        stats: EngineStats,
    ) -> None:
        self._queue = queue
        self._storage = storage
        self._stats = stats
        self._next_record_id = 1

    @property
    def storage(self) -> EventStorage:
        return self._storage

    def record(self, session_id: str, kind: str, payload: dict | None = None) -> SessionEvent:
        event = SessionEvent(
            session_id=session_id,
            kind=kind,
            timestamp_ms=int(time.time() * 1000),
            payload=payload or {},
            record_id=self._next_record_id,
        )
        self._next_record_id += 1

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.error("event_queue_full", session=session_id, kind=kind,
                      record_id=event.record_id)
            self._stats.record_storage_error()
        self._stats.update_queue_depth(self._queue.qsize())
        return event

    async def run_storage_consumer(self) -> None:
        """Consume from the queue and write to storage. Runs as a background task."""
        log.info("storage_consumer_started")
        while True:
            event = await self._queue.get()
            try:
                await self._storage.store(event)
                self._stats.record_stored()
                self._stats.update_queue_depth(self._queue.qsize())
            except Exception:
                log.error("storage_write_failed", record_id=event.record_id,
                          exc_info=True)
                self._stats.record_storage_error()
