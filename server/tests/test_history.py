"""Tests for SignalHistory and the derived signals."""

from __future__ import annotations

import pytest

from safeguard.core.history import SignalHistory, derive_route_deviation_km, derive_speed
from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    MONITOR,
    WARN,
    LocationSample,
    RiskAssessmentRecord,
)


def _record(action: str, score: float = 1.0) -> RiskAssessmentRecord:
    return RiskAssessmentRecord(timestamp_iso="2024-01-01T00:00:00+00:00", risk_score=score,
                                action=action, reasons=(), sensitivity=1.0)


def test_derive_speed():
    a = LocationSample(28.6, 77.2, 0)
    # 0.01 degree of latitude is about 1.11 km; covered in one minute.
    b = LocationSample(28.61, 77.2, 60_000)
    assert derive_speed(b, a) == pytest.approx(66.7, rel=0.01)


def test_derive_speed_without_elapsed_time():
    a = LocationSample(28.6, 77.2, 1000)
    b = LocationSample(28.7, 77.2, 1000)
    assert derive_speed(b, a) == 0.0
    assert derive_speed(a, b) == 0.0


def test_route_deviation():
    sample = LocationSample(28.6, 77.2, 0)
    assert derive_route_deviation_km(sample, None) == 0.0
    assert derive_route_deviation_km(sample, []) == 0.0
    route = [(28.6, 77.2), (28.7, 77.2)]
    assert derive_route_deviation_km(sample, route) == 0.0
    assert derive_route_deviation_km(sample, [(28.61, 77.2)]) == pytest.approx(1.11, rel=0.01)


def test_record_uses_device_speed():
    history = SignalHistory()
    assert history.record(LocationSample(28.6, 77.2, 0), speed_kmh=12.5) == 12.5
    assert history.record(LocationSample(28.6, 77.2, 1000)) == 0.0
    assert history.previous_speed_kmh() == 12.5


def test_first_sample_has_zero_speed():
    history = SignalHistory()
    assert history.record(LocationSample(28.6, 77.2, 0)) == 0.0
    assert history.previous_speed_kmh() is None


def test_capacity_evicts_oldest():
    history = SignalHistory(capacity=50)
    for i in range(51):
        history.record(LocationSample(28.6, 77.2, i * 1000))
        history.append_assessment(_record(MONITOR, score=float(i % 10)))

    assert len(history) == 50
    assert history.samples[0].captured_at_ms == 1000
    assert history.samples[-1].captured_at_ms == 50_000
    assert len(history.assessments) == 50


def test_prior_alert_count_counts_non_monitor():
    history = SignalHistory()
    history.append_assessment(_record(MONITOR))
    history.append_assessment(_record(WARN))
    history.append_assessment(_record(CRITICAL_EMERGENCY))
    assert history.prior_alert_count() == 2


def test_recent_assessments():
    history = SignalHistory()
    for i in range(5):
        history.append_assessment(_record(MONITOR, score=float(i)))
    assert [r.risk_score for r in history.recent_assessments(3)] == [2.0, 3.0, 4.0]
    assert len(history.recent_assessments(10)) == 5
    assert history.recent_assessments(0) == []
    assert history.latest_assessment.risk_score == 4.0
