"""Tests for the risk assessment engine."""

from __future__ import annotations

import pytest

from safeguard.core.geo import GeoRiskLookup
from safeguard.core.history import SignalHistory
from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    MONITOR,
    TRIGGER_EMERGENCY,
    WARN,
    CrimeProfile,
    LocationSample,
    Region,
    RiskAssessmentInput,
)
from safeguard.core.risk import RiskAssessmentEngine, action_for_score, parse_hour

DELHI = (28.6139, 77.2090)
LONDON = (51.5074, -0.1278)
CHENNAI = (13.0827, 80.2707)


@pytest.fixture
def engine():
    return RiskAssessmentEngine(GeoRiskLookup())


def _input(lat_lng=DELHI, **kwargs) -> RiskAssessmentInput:
    kwargs.setdefault("time_of_day", "14:00")
    return RiskAssessmentInput(latitude=lat_lng[0], longitude=lat_lng[1], **kwargs)


def test_night_run_in_high_risk_zone_with_panic_is_critical(engine):
    data = _input(speed_kmh=20, time_of_day="23:30", voice_emotion="panic",
                  ambient_light="normal", location_zone="urban", prior_alert_count=0)
    record = engine.assess(data, SignalHistory(), 1.0)

    assert record.risk_score == 10.0
    assert record.action == CRITICAL_EMERGENCY
    assert record.reasons == (
        "High speed detected (20.0 km/h), possible running",
        "Late-night travel",
        "High-risk zone (delhi)",
        "Voice analysis detected panic",
    )


def test_quiet_afternoon_walk_in_low_risk_zone_is_monitor():
    calm = Region("calm", 12.0, 79.0, 20.0, CrimeProfile(risk_level=0.2))
    engine = RiskAssessmentEngine(GeoRiskLookup(regions=[calm]))
    data = _input((12.0, 79.0), speed_kmh=5, time_of_day="14:00")
    record = engine.assess(data, SignalHistory(), 1.0)

    assert record.risk_score == 0.0
    assert record.action == MONITOR
    assert record.reasons == ()


@pytest.mark.parametrize("score,action", [
    (10.0, CRITICAL_EMERGENCY),
    (9.0, CRITICAL_EMERGENCY),
    (8.9, TRIGGER_EMERGENCY),
    (7.0, TRIGGER_EMERGENCY),
    (6.9, WARN),
    (5.0, WARN),
    (4.9, MONITOR),
    (0.0, MONITOR),
])
def test_action_thresholds(score, action):
    assert action_for_score(score) == action


def test_exact_threshold_through_assess(engine):
    # 2 (speed) + 2 (night) + 3 (high-risk zone) + 2 (isolated) = 9
    data = _input(speed_kmh=20, time_of_day="23:30", location_zone="isolated")
    record = engine.assess(data, SignalHistory(), 1.0)
    assert record.risk_score == 9.0
    assert record.action == CRITICAL_EMERGENCY


def test_sensitivity_scales_score_below_threshold(engine):
    data = _input(speed_kmh=20, time_of_day="23:30", voice_emotion="fear")
    record = engine.assess(data, SignalHistory(), 0.89)
    assert record.risk_score == 8.9
    assert record.action == TRIGGER_EMERGENCY
    assert record.sensitivity == 0.89


def test_score_is_clamped_to_ten(engine):
    data = _input(speed_kmh=30, route_deviation_km=1.0, time_of_day="02:00",
                  voice_emotion="distress", prior_alert_count=5, ambient_light="low",
                  location_zone="isolated")
    raw, reasons = engine.score_signals(data)
    assert raw == 17
    assert len(reasons) == 8

    record = engine.assess(data, SignalHistory(), 1.5)
    assert record.risk_score == 10.0


def test_sudden_stop_after_high_speed(engine):
    history = SignalHistory()
    history.record(LocationSample(*DELHI, 0), speed_kmh=12.0)
    history.record(LocationSample(*DELHI, 10_000), speed_kmh=0.2)

    data = _input(CHENNAI, speed_kmh=0.2)
    record = engine.assess(data, history, 1.0)
    assert record.reasons == ("Sudden stop after high speed",)
    assert record.risk_score == 2.0


def test_no_sudden_stop_without_previous_speed(engine):
    raw, reasons = engine.score_signals(_input(LONDON, speed_kmh=0.0), None)
    assert "Sudden stop after high speed" not in reasons


def test_route_deviation(engine):
    raw, reasons = engine.score_signals(_input(LONDON, route_deviation_km=0.35))
    assert "High route deviation: 35% (0.35 km off route)" in reasons

    raw, reasons = engine.score_signals(_input(LONDON, route_deviation_km=0.2))
    assert not any("route deviation" in r for r in reasons)


def test_moderate_zone(engine):
    # The default profile outside every region has risk level 0.5.
    raw, reasons = engine.score_signals(_input(LONDON))
    assert raw == 2
    assert reasons == ["Moderate-risk zone (default)"]


@pytest.mark.parametrize("time_of_day,late", [
    ("21:59", False),
    ("22:00", True),
    ("00:15", True),
    ("05:59", True),
    ("06:00", False),
])
def test_late_night_window(engine, time_of_day, late):
    raw, reasons = engine.score_signals(_input(LONDON, time_of_day=time_of_day))
    assert ("Late-night travel" in reasons) is late


def test_prior_alerts_need_more_than_two(engine):
    _, reasons = engine.score_signals(_input(LONDON, prior_alert_count=2))
    assert "Multiple recent alerts" not in reasons
    _, reasons = engine.score_signals(_input(LONDON, prior_alert_count=3))
    assert "Multiple recent alerts" in reasons


def test_zone_contributions(engine):
    _, reasons = engine.score_signals(_input(LONDON, location_zone="remote"))
    assert "Remote location" in reasons
    raw_isolated, _ = engine.score_signals(_input(LONDON, location_zone="isolated"))
    raw_remote, _ = engine.score_signals(_input(LONDON, location_zone="remote"))
    assert raw_isolated - raw_remote == 1


def test_malformed_signals_fall_back_to_neutral(engine):
    data = RiskAssessmentInput(latitude=LONDON[0], longitude=LONDON[1],
                               speed_kmh="fast", route_deviation_km=None,
                               time_of_day="late", voice_emotion=None,
                               ambient_light=None, location_zone=None,
                               prior_alert_count="many")
    record = engine.assess(data, SignalHistory(), 1.0)
    assert record.reasons == ("Moderate-risk zone (default)",)


def test_assess_appends_to_history(engine):
    history = SignalHistory()
    record = engine.assess(_input(), history, 1.0)
    assert history.latest_assessment is record


def test_assess_is_deterministic(engine):
    data = _input(speed_kmh=16, time_of_day="22:30", ambient_light="low")
    first = engine.assess(data, SignalHistory(), 1.2)
    second = engine.assess(data, SignalHistory(), 1.2)
    assert (first.risk_score, first.action, first.reasons) == \
        (second.risk_score, second.action, second.reasons)


@pytest.mark.parametrize("value,hour", [
    ("23:30", 23), ("7:05", 7), ("00:00", 0), ("24:00", None), ("", None), (None, None), ("noon", None),
])
def test_parse_hour(value, hour):
    assert parse_hour(value) == hour
