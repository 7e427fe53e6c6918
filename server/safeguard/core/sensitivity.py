"""Sensitivity controller: a slow feedback loop on the emergency trigger rate."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from safeguard.core.models import EMERGENCY_ACTIONS

if TYPE_CHECKING:
    from safeguard.core.history import SignalHistory

log = structlog.get_logger()

MIN_SENSITIVITY = 0.5
MAX_SENSITIVITY = 1.5
DEFAULT_SENSITIVITY = 1.0
WINDOW_SIZE = 10
HIGH_TRIGGER_RATE = 0.3
LOW_TRIGGER_RATE = 0.1
DECREASE_STEP = 0.1
INCREASE_STEP = 0.05


class SensitivityController:
    """Owns the sensitivity multiplier and nudges it after each assessment.

    Too many emergency triggers in the recent window lowers sensitivity by a
    large step; too few raises it by a small one. The value never leaves
    [MIN_SENSITIVITY, MAX_SENSITIVITY].
    """

    def __init__(
        self,
        initial: float = DEFAULT_SENSITIVITY,
        window_size: int = WINDOW_SIZE,
    ) -> None:
        self._value = min(MAX_SENSITIVITY, max(MIN_SENSITIVITY, initial))
        self._window = window_size

    @property
    def value(self) -> float:
        return self._value

    def adjust(self, history: SignalHistory) -> float:
        recent = history.recent_assessments(self._window)
        if len(recent) < self._window:
            return self._value

        triggers = sum(1 for r in recent if r.action in EMERGENCY_ACTIONS)
        rate = triggers / len(recent)

        previous = self._value
        if rate > HIGH_TRIGGER_RATE:
            self._value = round(max(MIN_SENSITIVITY, self._value - DECREASE_STEP), 2)
        elif rate < LOW_TRIGGER_RATE:
            self._value = round(min(MAX_SENSITIVITY, self._value + INCREASE_STEP), 2)

        if self._value != previous:
            log.info("sensitivity_adjusted", previous=previous,
                     sensitivity=self._value, trigger_rate=rate)
        return self._value
