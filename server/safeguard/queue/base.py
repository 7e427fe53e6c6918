"""Queue interface (port) for session event ingestion."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from safeguard.core.models import SessionEvent


class EventQueue(Protocol):
    """Port: accepts session events and delivers them to consumers."""

    def put_nowait(self, event: SessionEvent) -> None: ...

    async def get(self) -> SessionEvent: ...

    def qsize(self) -> int: ...
