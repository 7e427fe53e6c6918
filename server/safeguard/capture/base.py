"""Evidence capture interface (port). Recording itself happens on the device."""

from __future__ import annotations

from typing import Protocol


class CaptureHandle(Protocol):
    """A running capture. ``stop`` must be safe to call more than once."""

    capture_id: str

    @property
    def active(self) -> bool: ...

    async def stop(self) -> None: ...

    def to_dict(self) -> dict: ...


class EvidenceCapture(Protocol):
    """Port: starts audio/video evidence capture for a reason."""

    async def start(self, reason: str) -> CaptureHandle: ...
