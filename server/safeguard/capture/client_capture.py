"""Evidence capture delegated to the client device.

The server cannot record anything itself: it raises a capture request that
the client picks up from the session status and fulfils with the browser's
media APIs. The handle tracks whether that request is still open.
"""

from __future__ import annotations

import time
import uuid

import structlog

log = structlog.get_logger()


class ClientCaptureRequest:
    def __init__(self, reason: str) -> None:
        self.capture_id = uuid.uuid4().hex
        self.reason = reason
        self.requested_at = time.time()
        self.stopped_at: float | None = None

    @property
    def active(self) -> bool:
        return self.stopped_at is None

    async def stop(self) -> None:
        if self.stopped_at is None:
            self.stopped_at = time.time()
            log.info("evidence_capture_stopped", capture=self.capture_id[:8])

    def to_dict(self) -> dict:
        return {
            "capture_id": self.capture_id,
            "reason": self.reason,
            "requested_at": self.requested_at,
            "active": self.active,
        }


class ClientEvidenceCapture:
    """EvidenceCapture that hands the recording over to the client."""

    async def start(self, reason: str) -> ClientCaptureRequest:
        request = ClientCaptureRequest(reason)
        log.info("evidence_capture_requested", capture=request.capture_id[:8],
                 reason=reason)
        return request
