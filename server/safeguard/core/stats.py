"""Engine statistics and active-session tracking.

Tracks in-memory counters and a sliding window of recently active sessions.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    MONITOR,
    TRIGGER_EMERGENCY,
    WARN,
    DispatchSummary,
)


@dataclass
class SessionActivity:
    """Tracks a single session's recent activity."""
    last_seen: float          # time.monotonic() timestamp
    mode: str                 # "monitoring" or "emergency"
    updates: int = 0


class EngineStats:
    """Thread-safe engine statistics with active-session tracking.

    A session is "active" if it sent a location update, SOS or status request
    within ``active_window_seconds``. Its mode is "emergency" while its
    emergency session is running, "monitoring" otherwise.
    """

    def __init__(self, active_window_seconds: float = 120.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.location_updates: int = 0
        self.assessments: dict[str, int] = {
            MONITOR: 0, WARN: 0, TRIGGER_EMERGENCY: 0, CRITICAL_EMERGENCY: 0,
        }
        self.emergencies_triggered: int = 0
        self.triggers_suppressed: int = 0
        self.manual_sos: int = 0
        self.contacts_notified: int = 0
        self.contacts_failed: int = 0
        self.alert_attempts: int = 0
        self.events_stored: int = 0
        self.storage_errors: int = 0
        self.queue_depth: int = 0
        self.queue_max_depth: int = 0

        # Session tracking: session_id → SessionActivity
        self._sessions: dict[str, SessionActivity] = {}

    def _touch(self, session_id: str, emergency: bool, now: float) -> SessionActivity:
        """Caller holds lock."""
        mode = "emergency" if emergency else "monitoring"
        activity = self._sessions.get(session_id)
        if activity is None:
            activity = SessionActivity(last_seen=now, mode=mode)
            self._sessions[session_id] = activity
        activity.last_seen = now
        activity.mode = mode
        return activity

    def record_update(self, session_id: str, action: str, *, emergency: bool = False) -> None:
        """Record a location update and the action its assessment produced."""
        now = time.monotonic()
        with self._lock:
            self.location_updates += 1
            self.assessments[action] = self.assessments.get(action, 0) + 1
            self._touch(session_id, emergency, now).updates += 1

    def record_seen(self, session_id: str, *, emergency: bool = False) -> None:
        with self._lock:
            self._touch(session_id, emergency, time.monotonic())

    def record_trigger(self, *, manual: bool = False) -> None:
        with self._lock:
            self.emergencies_triggered += 1
            if manual:
                self.manual_sos += 1

    def record_suppressed(self) -> None:
        with self._lock:
            self.triggers_suppressed += 1

    def record_dispatch(self, summary: DispatchSummary) -> None:
        with self._lock:
            self.contacts_notified += summary.successful
            self.contacts_failed += summary.failed
            self.alert_attempts += summary.total_attempts

    def record_stored(self, count: int = 1) -> None:
        with self._lock:
            self.events_stored += count

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def update_queue_depth(self, depth: int) -> None:
        with self._lock:
            self.queue_depth = depth
            if depth > self.queue_max_depth:
                self.queue_max_depth = depth

    def _prune_stale_sessions(self, now: float) -> None:
        """Remove sessions not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [sid for sid, act in self._sessions.items() if act.last_seen < cutoff]
        for sid in stale:
            del self._sessions[sid]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_sessions(now_mono)

            emergency = sum(1 for act in self._sessions.values() if act.mode == "emergency")

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "location_updates": self.location_updates,
                "assessments": dict(self.assessments),
                "emergencies_triggered": self.emergencies_triggered,
                "triggers_suppressed": self.triggers_suppressed,
                "manual_sos": self.manual_sos,
                "contacts_notified": self.contacts_notified,
                "contacts_failed": self.contacts_failed,
                "alert_attempts": self.alert_attempts,
                "events_stored": self.events_stored,
                "storage_errors": self.storage_errors,
                "queue_depth": self.queue_depth,
                "queue_max_depth_ever": self.queue_max_depth,
                "active_sessions": {
                    "total": len(self._sessions),
                    "monitoring": len(self._sessions) - emergency,
                    "emergency": emergency,
                    "window_seconds": self._active_window,
                },
            }
