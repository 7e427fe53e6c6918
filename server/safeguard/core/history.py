"""Signal history: a bounded, time-ordered store of recent samples and assessments.

Both stores evict their oldest entry once they reach capacity, so the most
recent entries are always available in insertion order.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from safeguard.core.geo import haversine_km
from safeguard.core.models import MONITOR, LocationSample, RiskAssessmentRecord

HISTORY_CAPACITY = 50


def derive_speed(sample: LocationSample, previous: LocationSample) -> float:
    """Speed in km/h between two samples. Zero when no time has elapsed."""
    elapsed_ms = sample.captured_at_ms - previous.captured_at_ms
    if elapsed_ms <= 0:
        return 0.0
    distance_km = haversine_km(previous.latitude, previous.longitude,
                               sample.latitude, sample.longitude)
    return distance_km / (elapsed_ms / 3_600_000)


def derive_route_deviation_km(
    sample: LocationSample,
    expected_route: Iterable[tuple[float, float]] | None,
) -> float:
    """Distance in km from the sample to the nearest vertex of the expected route."""
    if not expected_route:
        return 0.0
    distances = [
        haversine_km(sample.latitude, sample.longitude, lat, lng)
        for lat, lng in expected_route
    ]
    return min(distances) if distances else 0.0


class SignalHistory:
    """Recent location samples (with their derived speeds) and assessment records."""

    def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
        self.capacity = capacity
        self._samples: deque[LocationSample] = deque(maxlen=capacity)
        self._speeds: deque[float] = deque(maxlen=capacity)
        self._assessments: deque[RiskAssessmentRecord] = deque(maxlen=capacity)

    def record(self, sample: LocationSample, speed_kmh: float | None = None) -> float:
        """Append a sample and return its speed.

        The speed is derived against the previous sample unless the device
        reported one itself.
        """
        if speed_kmh is not None:
            speed = speed_kmh
        elif self._samples:
            speed = derive_speed(sample, self._samples[-1])
        else:
            speed = 0.0
        self._samples.append(sample)
        self._speeds.append(speed)
        return speed

    def append_assessment(self, record: RiskAssessmentRecord) -> None:
        self._assessments.append(record)

    @property
    def samples(self) -> list[LocationSample]:
        return list(self._samples)

    @property
    def assessments(self) -> list[RiskAssessmentRecord]:
        return list(self._assessments)

    @property
    def latest_sample(self) -> LocationSample | None:
        return self._samples[-1] if self._samples else None

    @property
    def latest_assessment(self) -> RiskAssessmentRecord | None:
        return self._assessments[-1] if self._assessments else None

    def previous_speed_kmh(self) -> float | None:
        """Speed derived for the sample recorded just before the latest one."""
        if len(self._speeds) < 2:
            return None
        return self._speeds[-2]

    def prior_alert_count(self) -> int:
        return sum(1 for r in self._assessments if r.action != MONITOR)

    def recent_assessments(self, n: int) -> list[RiskAssessmentRecord]:
        if n <= 0:
            return []
        return list(self._assessments)[-n:]

    def __len__(self) -> int:
        return len(self._samples)
