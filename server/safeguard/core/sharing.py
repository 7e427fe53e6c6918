"""Continuous location sharing with a fixed set of contacts for a limited time."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable, Sequence

import structlog

from safeguard.core.geo import MAP_LINK_BASE, map_link
from safeguard.core.timing import Clock, Sleep, sleep_unless_set

if TYPE_CHECKING:
    from safeguard.core.dispatcher import AlertDispatcher
    from safeguard.core.models import EmergencyContact, LocationSample

log = structlog.get_logger()

DEFAULT_INTERVAL_SECONDS = 10.0


class LocationSharing:
    """Sends the latest location link to contacts every ``interval_seconds``.

    Only one sharing loop runs at a time; starting again while active updates
    the contacts and deadline of the running loop. Stopping lets a send that
    is already in flight finish, then ends the loop.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        location_source: Callable[[], LocationSample | None],
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        channel_selector: str = "both",
        map_link_base: str = MAP_LINK_BASE,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.time,
    ) -> None:
        self._dispatcher = dispatcher
        self._location_source = location_source
        self._interval = interval_seconds
        self._selector = channel_selector
        self._map_link_base = map_link_base
        self._sleep = sleep
        self._clock = clock

        self._contacts: list[EmergencyContact] = []
        self._deadline = 0.0
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.updates_sent = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, contacts: Sequence[EmergencyContact], duration_seconds: float) -> None:
        self._contacts = list(contacts)
        self._deadline = self._clock() + duration_seconds
        if self.active:
            log.info("location_sharing_extended", contacts=len(self._contacts),
                     duration_seconds=duration_seconds)
            return

        self._stop = asyncio.Event()
        self.updates_sent = 0
        self._task = asyncio.create_task(self._run())
        log.info("location_sharing_started", contacts=len(self._contacts),
                 duration_seconds=duration_seconds)

    async def stop(self) -> None:
        """Idempotent. Waits for an in-flight update to complete."""
        if self._task is None:
            return
        self._stop.set()
        task, self._task = self._task, None
        try:
            await task
        except Exception:
            log.error("location_sharing_failed", exc_info=True)

    async def wait(self) -> None:
        """Wait for the current sharing loop to end on its own."""
        if self._task is not None:
            await self._task

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "contacts": [c.id for c in self._contacts] if self.active else [],
            "until": self._deadline if self.active else None,
            "updates_sent": self.updates_sent,
        }

    async def _run(self) -> None:
        while not self._stop.is_set() and self._clock() < self._deadline:
            sample = self._location_source()
            if sample is not None and self._contacts:
                link = map_link(sample.latitude, sample.longitude, self._map_link_base)
                await self._dispatcher.send(
                    self._contacts,
                    f"Live location update: {link}",
                    self._selector,
                    max_retries=1,
                )
                self.updates_sent += 1
            if not await sleep_unless_set(self._sleep, self._interval, self._stop):
                break
        log.info("location_sharing_ended", updates_sent=self.updates_sent)
