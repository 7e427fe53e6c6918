"""Storage interface (port) for persisting the session log."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from safeguard.core.models import SessionEvent


class EventStorage(Protocol):
    """Port: persists session events to durable storage."""

    async def store(self, event: SessionEvent) -> None: ...

    def read_session(self, session_id: str) -> list[dict]: ...
