"""Emergency session coordinator. Reacts to high-risk assessments and manual SOS.

The coordinator is idle until an emergency action (or a manual SOS) arrives.
Activation starts evidence capture and location sharing, then dispatches the
alert as a tracked background task so the caller is not blocked by retries.
Automatic triggers inside the cooldown window are suppressed; a manual SOS
never is. The session returns to idle on an explicit stop or after the
session timeout.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Sequence

import structlog

from safeguard.core.geo import MAP_LINK_BASE, map_link
from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    EMERGENCY_ACTIONS,
    WARN,
    AlertAttemptResult,
    DispatchSummary,
    EmergencySessionState,
)
from safeguard.core.timing import Clock

if TYPE_CHECKING:
    from safeguard.capture.base import CaptureHandle, EvidenceCapture
    from safeguard.core.dispatcher import AlertDispatcher
    from safeguard.core.models import EmergencyContact, LocationSample, RiskAssessmentRecord
    from safeguard.core.sharing import LocationSharing

log = structlog.get_logger()

COOLDOWN_SECONDS = 300.0
SESSION_TIMEOUT_SECONDS = 3600.0
CAPTURE_TIMEOUT_SECONDS = 5.0
SHARING_DURATION_SECONDS = 3600.0

EventSink = Callable[[str, dict], None]


@dataclass
class EmergencyResponse:
    """What the coordinator did with one assessment or SOS."""
    status: str  # "none", "advisory", "suppressed" or "triggered"
    reason: str = ""
    maximal_response: bool = False
    dispatch: asyncio.Task | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "reason": self.reason,
            "maximal_response": self.maximal_response,
            "alerts_pending": self.dispatch is not None and not self.dispatch.done(),
        }


def compose_alert_message(
    risk_score: float | None,
    reasons: Sequence[str],
    location: LocationSample | None,
    map_link_base: str = MAP_LINK_BASE,
) -> str:
    lines = ["EMERGENCY ALERT"]
    if risk_score is None:
        lines.append("SOS triggered manually. Please check on me immediately.")
    else:
        lines.append(f"Automatic risk detection. Risk score: {risk_score:.1f}/10")
    if reasons:
        lines.append(f"Reasons: {'; '.join(reasons)}")
    if location is not None:
        lines.append(f"Location: {map_link(location.latitude, location.longitude, map_link_base)}")
    else:
        lines.append("Location: unavailable")
    return "\n".join(lines)


class EmergencySessionCoordinator:
    """Owns the emergency state of one user session."""

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        capture: EvidenceCapture,
        sharing: LocationSharing,
        *,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        session_timeout_seconds: float = SESSION_TIMEOUT_SECONDS,
        capture_timeout_seconds: float = CAPTURE_TIMEOUT_SECONDS,
        sharing_duration_seconds: float = SHARING_DURATION_SECONDS,
        default_channels: str = "both",
        map_link_base: str = MAP_LINK_BASE,
        clock: Clock = time.time,
        on_event: EventSink | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._capture_service = capture
        self._sharing = sharing
        self._cooldown = cooldown_seconds
        self._timeout = session_timeout_seconds
        self._capture_timeout = capture_timeout_seconds
        self._sharing_duration = sharing_duration_seconds
        self._default_channels = default_channels
        self._map_link_base = map_link_base
        self._clock = clock
        self._on_event = on_event

        self.state = EmergencySessionState()
        self.capture: CaptureHandle | None = None
        self.last_results: list[AlertAttemptResult] = []
        self.last_summary: DispatchSummary | None = None
        self._cancel = asyncio.Event()
        self._dispatch: asyncio.Task | None = None

    def cooldown_remaining(self) -> float:
        if self.state.last_trigger_at is None:
            return 0.0
        return max(0.0, self._cooldown - (self._clock() - self.state.last_trigger_at))

    async def handle_assessment(
        self,
        record: RiskAssessmentRecord,
        location: LocationSample | None,
        contacts: Sequence[EmergencyContact],
    ) -> EmergencyResponse:
        await self.expire_if_timed_out()

        if record.action == WARN:
            log.info("pre_alert_warning", risk_score=record.risk_score)
            return EmergencyResponse(status="advisory", reason="; ".join(record.reasons))
        if record.action not in EMERGENCY_ACTIONS:
            return EmergencyResponse(status="none")

        remaining = self.cooldown_remaining()
        if remaining > 0:
            log.warning("trigger_suppressed", action=record.action,
                        risk_score=record.risk_score,
                        cooldown_remaining=round(remaining, 1))
            self._emit("trigger_suppressed", {
                "action": record.action,
                "risk_score": record.risk_score,
                "cooldown_remaining": round(remaining, 1),
            })
            return EmergencyResponse(status="suppressed", reason="cooldown in effect")

        maximal = record.action == CRITICAL_EMERGENCY
        message = compose_alert_message(record.risk_score, record.reasons, location,
                                        self._map_link_base)
        reason = f"{record.action} (risk score {record.risk_score:.1f})"
        return await self._activate(reason, message, contacts, maximal)

    async def trigger_manual(
        self,
        location: LocationSample | None,
        contacts: Sequence[EmergencyContact],
    ) -> EmergencyResponse:
        """Manual SOS: bypasses the risk engine and the cooldown, always maximal."""
        await self.expire_if_timed_out()
        message = compose_alert_message(None, (), location, self._map_link_base)
        return await self._activate("manual SOS", message, contacts, maximal=True)

    async def _activate(
        self,
        reason: str,
        message: str,
        contacts: Sequence[EmergencyContact],
        maximal: bool,
    ) -> EmergencyResponse:
        now = self._clock()
        if not self.state.active:
            self._cancel = asyncio.Event()
        # the session timeout restarts with every trigger
        self.state.started_at = now
        self.state.active = True
        self.state.reason = reason
        self.state.last_trigger_at = now
        self.state.maximal_response = self.state.maximal_response or maximal
        self.state.involved_contacts = tuple(c.id for c in contacts)

        log.warning("emergency_triggered", reason=reason, maximal=maximal,
                    contacts=len(contacts))
        self._emit("emergency_triggered", {"reason": reason, "maximal_response": maximal})

        await self._ensure_capture(reason)
        if not self._sharing.active:
            self._sharing.start(contacts, self._sharing_duration)

        selector = "all" if maximal else self._default_channels
        self._dispatch = asyncio.create_task(self._run_dispatch(contacts, message, selector))
        return EmergencyResponse(status="triggered", reason=reason,
                                 maximal_response=maximal, dispatch=self._dispatch)

    async def _ensure_capture(self, reason: str) -> None:
        if self.capture is not None and self.capture.active:
            return
        try:
            self.capture = await asyncio.wait_for(
                self._capture_service.start(reason), timeout=self._capture_timeout,
            )
        except asyncio.TimeoutError:
            log.error("evidence_capture_timeout", timeout=self._capture_timeout)
        except Exception:
            log.error("evidence_capture_failed", exc_info=True)

    async def _run_dispatch(
        self,
        contacts: Sequence[EmergencyContact],
        message: str,
        selector: str,
    ) -> list[AlertAttemptResult]:
        results = await self._dispatcher.send(contacts, message, selector, cancel=self._cancel)
        self.last_results = results
        self.last_summary = DispatchSummary.from_results(results)
        self._emit("alerts_dispatched", {
            "selector": selector,
            **self.last_summary.to_dict(),
            "results": [r.to_dict() for r in results],
        })
        return results

    async def wait_for_dispatch(self) -> list[AlertAttemptResult]:
        """Wait for the latest alert dispatch and return its per-contact results."""
        if self._dispatch is None:
            return self.last_results
        return await self._dispatch

    async def stop(self, reason: str = "stopped") -> bool:
        """Return to idle. Idempotent; in-flight sends finish, pending retries do not run."""
        if not self.state.active:
            return False
        self._cancel.set()
        if self.capture is not None:
            await self.capture.stop()
        await self._sharing.stop()

        self.state.active = False
        self.state.maximal_response = False
        log.info("emergency_session_stopped", reason=reason)
        self._emit("emergency_stopped", {"reason": reason})
        return True

    async def expire_if_timed_out(self) -> bool:
        if (
            self.state.active
            and self.state.started_at is not None
            and self._clock() - self.state.started_at >= self._timeout
        ):
            return await self.stop("timeout")
        return False

    def to_dict(self) -> dict:
        data = self.state.to_dict()
        data["cooldown_remaining"] = round(self.cooldown_remaining(), 1)
        data["evidence_capture"] = self.capture.to_dict() if self.capture is not None else None
        data["last_alert_summary"] = (
            self.last_summary.to_dict() if self.last_summary is not None else None
        )
        return data

    def _emit(self, kind: str, payload: dict) -> None:
        if self._on_event is not None:
            self._on_event(kind, payload)
