"""Safety session, the per-user facade over the risk engine and emergency response.

Each user session owns its own history, sensitivity, coordinator and location
sharing; nothing is shared between sessions. Location updates are serialized
by a per-session lock because every assessment depends on the history left
by the previous one.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Sequence
from zoneinfo import ZoneInfo

import structlog

from safeguard.core.coordinator import EmergencySessionCoordinator
from safeguard.core.history import SignalHistory, derive_route_deviation_km
from safeguard.core.models import (
    DispatchSummary,
    LocationSample,
    RiskAssessmentInput,
)
from safeguard.core.risk import RiskAssessmentEngine, safe_float
from safeguard.core.sensitivity import SensitivityController
from safeguard.core.sharing import LocationSharing
from safeguard.core.timing import Clock, Sleep

if TYPE_CHECKING:
    from safeguard.capture.base import EvidenceCapture
    from safeguard.core.dispatcher import AlertDispatcher
    from safeguard.core.geo import GeoRiskLookup
    from safeguard.core.models import EmergencyContact
    from safeguard.core.recorder import EventRecorder
    from safeguard.core.stats import EngineStats

log = structlog.get_logger()

Route = Sequence[tuple[float, float]]


@dataclass
class SessionSettings:
    history_capacity: int = 50
    sensitivity_window: int = 10
    initial_sensitivity: float = 1.0
    cooldown_seconds: float = 300.0
    session_timeout_seconds: float = 3600.0
    capture_timeout_seconds: float = 5.0
    default_channels: str = "both"
    sharing_interval_seconds: float = 10.0
    sharing_duration_seconds: float = 3600.0
    map_link_base: str = "https://maps.google.com/?q="
    timezone: str = "Asia/Kolkata"


@dataclass(frozen=True)
class LocationContext:
    """Optional signals that accompany a location update."""
    voice_emotion: str = "neutral"
    ambient_light: str = "normal"
    location_zone: str = "urban"
    time_of_day: str | None = None
    speed_kmh: float | None = None
    captured_at_ms: int | None = None
    expected_route: tuple[tuple[float, float], ...] | None = None


@dataclass
class SafetySession:
    """Everything one user session needs, wired together."""
    session_id: str
    lookup: GeoRiskLookup
    dispatcher: AlertDispatcher
    capture: EvidenceCapture
    settings: SessionSettings = field(default_factory=SessionSettings)
    contacts: list[EmergencyContact] = field(default_factory=list)
    expected_route: Route | None = None
    recorder: EventRecorder | None = None
    stats: EngineStats | None = None
    clock: Clock = time.time
    sleep: Sleep = asyncio.sleep

    def __post_init__(self) -> None:
        s = self.settings
        self.history = SignalHistory(capacity=s.history_capacity)
        self.sensitivity = SensitivityController(initial=s.initial_sensitivity,
                                                 window_size=s.sensitivity_window)
        self.engine = RiskAssessmentEngine(self.lookup)
        self.sharing = LocationSharing(
            self.dispatcher,
            lambda: self.history.latest_sample,
            interval_seconds=s.sharing_interval_seconds,
            channel_selector=s.default_channels,
            map_link_base=s.map_link_base,
            sleep=self.sleep,
            clock=self.clock,
        )
        self.coordinator = EmergencySessionCoordinator(
            self.dispatcher,
            self.capture,
            self.sharing,
            cooldown_seconds=s.cooldown_seconds,
            session_timeout_seconds=s.session_timeout_seconds,
            capture_timeout_seconds=s.capture_timeout_seconds,
            sharing_duration_seconds=s.sharing_duration_seconds,
            default_channels=s.default_channels,
            map_link_base=s.map_link_base,
            clock=self.clock,
            on_event=self._on_coordinator_event,
        )
        self._tz = ZoneInfo(s.timezone)
        self._lock = asyncio.Lock()

    @property
    def emergency_active(self) -> bool:
        return self.coordinator.state.active

    def set_contacts(self, contacts: Sequence[EmergencyContact]) -> None:
        self.contacts = list(contacts)
        self._record("contacts_updated", {"contacts": [c.id for c in self.contacts]})

    def set_expected_route(self, route: Route | None) -> None:
        self.expected_route = list(route) if route else None

    def _local_time_of_day(self, timestamp_ms: int) -> str:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=self._tz).strftime("%H:%M")

    def _capture_time(self, captured_at_ms) -> tuple[int, str]:
        """Device timestamp and its local HH:MM, or the clock when the timestamp is unusable."""
        if captured_at_ms:
            try:
                timestamp = int(captured_at_ms)
                return timestamp, self._local_time_of_day(timestamp)
            except (TypeError, ValueError, OverflowError, OSError):
                log.warning("bad_capture_time", session=self.session_id,
                            captured_at_ms=repr(captured_at_ms))
        timestamp = int(self.clock() * 1000)
        return timestamp, self._local_time_of_day(timestamp)

    async def update_location(
        self,
        lat: float,
        lng: float,
        context: LocationContext | None = None,
    ) -> dict:
        """Record a location, assess risk and react. Returns analysis and assessment."""
        context = context or LocationContext()
        async with self._lock:
            await self.coordinator.expire_if_timed_out()

            captured_at, local_time = self._capture_time(context.captured_at_ms)
            device_speed = None
            if context.speed_kmh is not None:
                device_speed = max(0.0, safe_float(context.speed_kmh))
            sample = LocationSample(latitude=lat, longitude=lng, captured_at_ms=captured_at)
            speed = self.history.record(sample, device_speed)

            route = context.expected_route if context.expected_route is not None else self.expected_route
            data = RiskAssessmentInput(
                latitude=lat,
                longitude=lng,
                speed_kmh=speed,
                route_deviation_km=derive_route_deviation_km(sample, route),
                time_of_day=context.time_of_day or local_time,
                voice_emotion=context.voice_emotion,
                ambient_light=context.ambient_light,
                location_zone=context.location_zone,
                prior_alert_count=self.history.prior_alert_count(),
            )
            record = self.engine.assess(data, self.history, self.sensitivity.value)
            self.sensitivity.adjust(self.history)
            analysis = self.lookup.analyze_area(lat, lng)

            log.info("assessment_recorded", session=self.session_id,
                     risk_score=record.risk_score, action=record.action,
                     sensitivity=record.sensitivity)
            self._record("assessment", {
                "latitude": lat,
                "longitude": lng,
                "speed_kmh": round(speed, 2),
                **record.to_dict(),
            })

            response = await self.coordinator.handle_assessment(record, sample, self.contacts)
            if self.stats is not None:
                self.stats.record_update(self.session_id, record.action,
                                         emergency=self.emergency_active)

        return {
            "analysis": analysis.to_dict(),
            "assessment": record.to_dict(),
            "emergency": response.to_dict(),
            "speed_kmh": round(speed, 1),
            "sensitivity": self.sensitivity.value,
        }

    async def trigger_manual_sos(
        self,
        contacts: Sequence[EmergencyContact] | None = None,
        *,
        wait: bool = True,
    ) -> dict:
        """Manual SOS. Never suppressed; waits for delivery unless ``wait`` is False."""
        targets = list(contacts) if contacts else list(self.contacts)
        async with self._lock:
            response = await self.coordinator.trigger_manual(self.history.latest_sample, targets)
            if self.stats is not None:
                self.stats.record_seen(self.session_id, emergency=True)

        if not wait or response.dispatch is None:
            return {"alerts_sent": None, "summary": None, "results": [],
                    "emergency": response.to_dict()}

        results = await response.dispatch
        summary = DispatchSummary.from_results(results)
        return {
            "alerts_sent": summary.successful,
            "summary": summary.to_dict(),
            "results": [r.to_dict() for r in results],
            "emergency": response.to_dict(),
        }

    async def get_status(self) -> dict:
        await self.coordinator.expire_if_timed_out()
        if self.stats is not None:
            self.stats.record_seen(self.session_id, emergency=self.emergency_active)
        last = self.history.latest_assessment
        latest = self.history.latest_sample
        return {
            "session_id": self.session_id,
            "session_active": self.emergency_active,
            "sensitivity": self.sensitivity.value,
            "last_assessment": last.to_dict() if last is not None else None,
            "location": (
                {"lat": latest.latitude, "lng": latest.longitude,
                 "captured_at_ms": latest.captured_at_ms}
                if latest is not None else None
            ),
            "contacts": len(self.contacts),
            "emergency": self.coordinator.to_dict(),
            "sharing": self.sharing.to_dict(),
        }

    def start_continuous_sharing(
        self,
        contacts: Sequence[EmergencyContact] | None = None,
        duration_seconds: float | None = None,
    ) -> None:
        targets = list(contacts) if contacts else list(self.contacts)
        duration = self.settings.sharing_duration_seconds if duration_seconds is None else duration_seconds
        self.sharing.start(targets, duration)
        self._record("sharing_started", {"contacts": [c.id for c in targets],
                                         "duration_seconds": duration})

    async def stop_continuous_sharing(self) -> None:
        await self.sharing.stop()
        self._record("sharing_stopped", {})

    async def stop_emergency(self, reason: str = "stopped by user") -> bool:
        return await self.coordinator.stop(reason)

    async def close(self) -> None:
        await self.coordinator.stop("session closed")
        await self.sharing.stop()

    def _on_coordinator_event(self, kind: str, payload: dict) -> None:
        self._record(kind, payload)
        if self.stats is None:
            return
        if kind == "emergency_triggered":
            self.stats.record_trigger(manual=payload.get("reason") == "manual SOS")
        elif kind == "trigger_suppressed":
            self.stats.record_suppressed()
        elif kind == "alerts_dispatched" and self.coordinator.last_summary is not None:
            self.stats.record_dispatch(self.coordinator.last_summary)

    def _record(self, kind: str, payload: dict) -> None:
        if self.recorder is not None:
            self.recorder.record(self.session_id, kind, payload)


class SessionRegistry:
    """Creates and looks up safety sessions by id."""

    def __init__(self, factory: Callable[[str], SafetySession]) -> None:
        self._factory = factory
        self._sessions: dict[str, SafetySession] = {}

    def create(
        self,
        session_id: str | None = None,
        contacts: Sequence[EmergencyContact] = (),
        expected_route: Route | None = None,
    ) -> SafetySession:
        session_id = session_id or uuid.uuid4().hex
        session = self._sessions.get(session_id)
        if session is None:
            session = self._factory(session_id)
            self._sessions[session_id] = session
            log.info("session_created", session=session_id)
        if contacts:
            session.set_contacts(contacts)
        if expected_route is not None:
            session.set_expected_route(expected_route)
        return session

    def get(self, session_id: str) -> SafetySession | None:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> bool:
        """Close a session and forget it. False if the id is unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        log.info("session_removed", session=session_id)
        return True

    async def close_all(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
