"""SafeGuard — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON request bodies are converted to/from these at the API boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Assessment actions, in increasing order of severity.
MONITOR = "monitor"
WARN = "warn"
TRIGGER_EMERGENCY = "trigger_emergency"
CRITICAL_EMERGENCY = "critical_emergency"

EMERGENCY_ACTIONS = frozenset({TRIGGER_EMERGENCY, CRITICAL_EMERGENCY})


@dataclass(frozen=True)
class LocationSample:
    latitude: float
    longitude: float
    captured_at_ms: int


@dataclass(frozen=True)
class RiskAssessmentInput:
    latitude: float
    longitude: float
    speed_kmh: float = 0.0
    route_deviation_km: float = 0.0
    time_of_day: str | None = None  # "HH:MM"
    voice_emotion: str = "neutral"
    ambient_light: str = "normal"  # "normal" or "low"
    location_zone: str = "urban"  # "urban", "remote" or "isolated"
    prior_alert_count: int = 0


@dataclass(frozen=True)
class RiskAssessmentRecord:
    timestamp_iso: str
    risk_score: float
    action: str
    reasons: tuple[str, ...]
    sensitivity: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp_iso,
            "risk_score": self.risk_score,
            "action": self.action,
            "reasons": list(self.reasons),
            "sensitivity": self.sensitivity,
        }


@dataclass(frozen=True)
class CrimeProfile:
    risk_level: float
    total_crimes: int = 0
    violent_crimes: int = 0
    thefts: int = 0
    assaults: int = 0
    burglaries: int = 0
    recent_incidents: int = 0
    safety_score: int = 0

    def to_dict(self) -> dict:
        return {
            "risk_level": self.risk_level,
            "total_crimes": self.total_crimes,
            "violent_crimes": self.violent_crimes,
            "thefts": self.thefts,
            "assaults": self.assaults,
            "burglaries": self.burglaries,
            "recent_incidents": self.recent_incidents,
            "safety_score": self.safety_score,
        }


@dataclass(frozen=True)
class Region:
    region_id: str
    center_lat: float
    center_lng: float
    radius_km: float
    profile: CrimeProfile


@dataclass(frozen=True)
class RegionMatch:
    region_id: str
    profile: CrimeProfile


@dataclass(frozen=True)
class AreaAnalysis:
    region_id: str
    status: str  # "safe", "moderate" or "risk"
    risk_level: float
    profile: CrimeProfile
    recommendations: tuple[str, ...]
    timestamp_iso: str

    def to_dict(self) -> dict:
        return {
            "region": self.region_id,
            "status": self.status,
            "risk_level": self.risk_level,
            "crime_stats": self.profile.to_dict(),
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp_iso,
        }


@dataclass(frozen=True)
class EmergencyContact:
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    chat_id: str | None = None
    push_subscription: dict | None = None


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    success: bool
    provider_id: str | None = None
    message_id: str | None = None
    error: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.provider_id is not None:
            data["provider_id"] = self.provider_id
        if self.message_id is not None:
            data["message_id"] = self.message_id
        if self.error is not None:
            data["error"] = self.error
        if self.skipped:
            data["skipped"] = True
        return data


@dataclass
class AlertAttemptResult:
    contact_id: str
    channel_results: dict[str, ChannelResult] = field(default_factory=dict)
    attempts_used: int = 0
    overall_success: bool = False
    error: str | None = None
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            "contact_id": self.contact_id,
            "channel_results": {
                name: result.to_dict() for name, result in self.channel_results.items()
            },
            "attempts_used": self.attempts_used,
            "overall_success": self.overall_success,
            "error": self.error,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True)
class DispatchSummary:
    total_contacts: int
    successful: int
    failed: int
    total_attempts: int

    @classmethod
    def from_results(cls, results: list[AlertAttemptResult]) -> DispatchSummary:
        successful = sum(1 for r in results if r.overall_success)
        return cls(
            total_contacts=len(results),
            successful=successful,
            failed=len(results) - successful,
            total_attempts=sum(r.attempts_used for r in results),
        )

    def to_dict(self) -> dict:
        return {
            "total_contacts": self.total_contacts,
            "successful": self.successful,
            "failed": self.failed,
            "total_attempts": self.total_attempts,
        }


@dataclass
class EmergencySessionState:
    active: bool = False
    started_at: float | None = None
    reason: str = ""
    involved_contacts: tuple[str, ...] = ()
    last_trigger_at: float | None = None
    maximal_response: bool = False

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "started_at": self.started_at,
            "reason": self.reason,
            "involved_contacts": list(self.involved_contacts),
            "last_trigger_at": self.last_trigger_at,
            "maximal_response": self.maximal_response,
        }


@dataclass(frozen=True)
class SessionEvent:
    """A session log entry, written by the event recorder."""
    session_id: str
    kind: str
    timestamp_ms: int
    payload: dict = field(default_factory=dict)
    record_id: int = 0
