"""Tests for the adaptive sensitivity feedback loop."""

from __future__ import annotations

import random

import pytest

from safeguard.core.history import SignalHistory
from safeguard.core.models import (
    CRITICAL_EMERGENCY,
    MONITOR,
    TRIGGER_EMERGENCY,
    WARN,
    RiskAssessmentRecord,
)
from safeguard.core.sensitivity import MAX_SENSITIVITY, MIN_SENSITIVITY, SensitivityController


def _history(*actions: str) -> SignalHistory:
    history = SignalHistory()
    for action in actions:
        history.append_assessment(RiskAssessmentRecord(
            timestamp_iso="2024-01-01T00:00:00+00:00", risk_score=0.0,
            action=action, reasons=(), sensitivity=1.0,
        ))
    return history


def test_too_many_triggers_lower_sensitivity():
    controller = SensitivityController()
    assert controller.adjust(_history(*[TRIGGER_EMERGENCY] * 10)) == 0.9


def test_quiet_window_raises_sensitivity():
    controller = SensitivityController()
    assert controller.adjust(_history(*[MONITOR] * 10)) == 1.05


def test_short_history_leaves_sensitivity_unchanged():
    controller = SensitivityController()
    assert controller.adjust(_history(*[CRITICAL_EMERGENCY] * 9)) == 1.0


@pytest.mark.parametrize("triggers,expected", [
    (0, 1.05),
    (1, 1.0),
    (3, 1.0),
    (4, 0.9),
])
def test_rate_boundaries(triggers, expected):
    actions = [CRITICAL_EMERGENCY] * triggers + [MONITOR] * (10 - triggers)
    assert SensitivityController().adjust(_history(*actions)) == expected


def test_warnings_do_not_count_as_triggers():
    controller = SensitivityController()
    assert controller.adjust(_history(*[WARN] * 10)) == 1.05


def test_only_the_latest_window_counts():
    actions = [CRITICAL_EMERGENCY] * 20 + [MONITOR] * 10
    assert SensitivityController().adjust(_history(*actions)) == 1.05


def test_floor_and_ceiling():
    low = SensitivityController(initial=0.5)
    assert low.adjust(_history(*[TRIGGER_EMERGENCY] * 10)) == MIN_SENSITIVITY

    high = SensitivityController(initial=1.5)
    assert high.adjust(_history(*[MONITOR] * 10)) == MAX_SENSITIVITY


def test_initial_value_is_clamped():
    assert SensitivityController(initial=3.0).value == MAX_SENSITIVITY
    assert SensitivityController(initial=0.1).value == MIN_SENSITIVITY


def test_random_walk_stays_in_bounds():
    rng = random.Random(42)
    controller = SensitivityController()
    history = SignalHistory()
    actions = (MONITOR, WARN, TRIGGER_EMERGENCY, CRITICAL_EMERGENCY)
    for _ in range(500):
        history.append_assessment(RiskAssessmentRecord(
            timestamp_iso="2024-01-01T00:00:00+00:00", risk_score=0.0,
            action=rng.choice(actions), reasons=(), sensitivity=controller.value,
        ))
        previous = controller.value
        value = controller.adjust(history)
        assert MIN_SENSITIVITY <= value <= MAX_SENSITIVITY
        assert abs(value - previous) <= 0.1 + 1e-9
