"""Risk assessment engine: additive scoring scaled by the adaptive sensitivity.

Each signal contributes a fixed amount when its condition holds. The raw sum
is multiplied by the current sensitivity, clamped to [0, 10] and rounded to
one decimal; the action is chosen from thresholds on that final score.
Missing or malformed signals fall back to their neutral value and never raise.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    MONITOR,
    TRIGGER_EMERGENCY,
    WARN,
    RiskAssessmentInput,
    RiskAssessmentRecord,
)

if TYPE_CHECKING:
    from safeguard.core.geo import GeoRiskLookup
    from safeguard.core.history import SignalHistory

log = structlog.get_logger()

MAX_SCORE = 10.0

# Action thresholds on the scaled score, highest first.
ACTION_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (9.0, CRITICAL_EMERGENCY),
    (7.0, TRIGGER_EMERGENCY),
    (5.0, WARN),
)

RUNNING_SPEED_KMH = 15.0
STOPPED_SPEED_KMH = 0.5
MOVING_SPEED_KMH = 5.0
ROUTE_DEVIATION_KM = 0.2
HIGH_RISK_LEVEL = 0.6
MODERATE_RISK_LEVEL = 0.4
PRIOR_ALERTS_LIMIT = 2
DISTRESS_EMOTIONS = frozenset({"panic", "fear", "distress"})
ZONE_SCORES = {"isolated": 2, "remote": 1}


def safe_float(value, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def parse_hour(time_of_day: str | None) -> int | None:
    """Hour from an "HH:MM" string, or None when it cannot be parsed."""
    if not time_of_day:
        return None
    try:
        hour = int(str(time_of_day).split(":", 1)[0])
    except ValueError:
        return None
    return hour if 0 <= hour <= 23 else None


def action_for_score(score: float) -> str:
    for threshold, action in ACTION_THRESHOLDS:
        if score >= threshold:
            return action
    return MONITOR


class RiskAssessmentEngine:
    """Scores one set of signals against the session's history."""

    def __init__(self, lookup: GeoRiskLookup) -> None:
        self._lookup = lookup

    def score_signals(
        self,
        data: RiskAssessmentInput,
        previous_speed_kmh: float | None = None,
    ) -> tuple[int, list[str]]:
        """Return the raw additive score and the ordered reasons."""
        score = 0
        reasons: list[str] = []

        speed = safe_float(data.speed_kmh)
        if speed > RUNNING_SPEED_KMH:
            score += 2
            reasons.append(f"High speed detected ({speed:.1f} km/h), possible running")
        elif (
            speed < STOPPED_SPEED_KMH
            and previous_speed_kmh is not None
            and previous_speed_kmh > MOVING_SPEED_KMH
        ):
            score += 2
            reasons.append("Sudden stop after high speed")

        # Deviation is in km; the percentage is relative to one kilometer.
        deviation = safe_float(data.route_deviation_km)
        if deviation > ROUTE_DEVIATION_KM:
            score += 3
            reasons.append(
                f"High route deviation: {deviation * 100:.0f}% ({deviation:.2f} km off route)"
            )

        hour = parse_hour(data.time_of_day)
        if hour is not None and (hour >= 22 or hour <= 5):
            score += 2
            reasons.append("Late-night travel")

        lat = safe_float(data.latitude)
        lng = safe_float(data.longitude)
        region = self._lookup.lookup(lat, lng)
        risk_level = region.profile.risk_level
        if risk_level > HIGH_RISK_LEVEL:
            score += 3
            reasons.append(f"High-risk zone ({region.region_id})")
        elif risk_level > MODERATE_RISK_LEVEL:
            score += 2
            reasons.append(f"Moderate-risk zone ({region.region_id})")

        emotion = (data.voice_emotion or "neutral").lower()
        if emotion in DISTRESS_EMOTIONS:
            score += 3
            reasons.append(f"Voice analysis detected {emotion}")

        if int(safe_float(data.prior_alert_count)) > PRIOR_ALERTS_LIMIT:
            score += 1
            reasons.append("Multiple recent alerts")

        if (data.ambient_light or "normal").lower() == "low":
            score += 1
            reasons.append("Low light conditions")

        zone = (data.location_zone or "urban").lower()
        if zone in ZONE_SCORES:
            score += ZONE_SCORES[zone]
            reasons.append(f"{zone.capitalize()} location")

        return score, reasons

    def assess(
        self,
        data: RiskAssessmentInput,
        history: SignalHistory,
        sensitivity: float,
    ) -> RiskAssessmentRecord:
        """Score the input, append the record to ``history`` and return it."""
        raw, reasons = self.score_signals(data, history.previous_speed_kmh())
        scaled = min(MAX_SCORE, max(0.0, raw * sensitivity))
        risk_score = round(scaled, 1)
        action = action_for_score(risk_score)

        record = RiskAssessmentRecord(
            timestamp_iso=datetime.now(timezone.utc).isoformat(),
            risk_score=risk_score,
            action=action,
            reasons=tuple(reasons),
            sensitivity=sensitivity,
        )
        history.append_assessment(record)
        log.debug("risk_assessed", raw_score=raw, risk_score=risk_score,
                  action=action, sensitivity=sensitivity)
        return record
