"""Tests for EngineStats and active session tracking."""

from __future__ import annotations

import time

from safeguard.core.models import CRITICAL_EMERGENCY, MONITOR, WARN, DispatchSummary
from safeguard.core.stats import EngineStats


def test_initial_stats():
    stats = EngineStats()
    snap = stats.snapshot()
    assert snap["location_updates"] == 0
    assert snap["emergencies_triggered"] == 0
    assert snap["active_sessions"]["total"] == 0
    assert snap["active_sessions"]["monitoring"] == 0
    assert snap["active_sessions"]["emergency"] == 0


def test_record_update_counts_actions():
    stats = EngineStats()
    stats.record_update("session-a", MONITOR)
    stats.record_update("session-a", WARN)
    stats.record_update("session-b", CRITICAL_EMERGENCY, emergency=True)

    snap = stats.snapshot()
    assert snap["location_updates"] == 3
    assert snap["assessments"][MONITOR] == 1
    assert snap["assessments"][WARN] == 1
    assert snap["assessments"][CRITICAL_EMERGENCY] == 1
    assert snap["active_sessions"]["total"] == 2
    assert snap["active_sessions"]["monitoring"] == 1
    assert snap["active_sessions"]["emergency"] == 1


def test_session_mode_updates():
    """A session whose emergency ends goes back to monitoring."""
    stats = EngineStats()
    stats.record_update("session-c", CRITICAL_EMERGENCY, emergency=True)
    assert stats.snapshot()["active_sessions"]["emergency"] == 1

    stats.record_seen("session-c", emergency=False)

    snap = stats.snapshot()
    assert snap["active_sessions"]["emergency"] == 0
    assert snap["active_sessions"]["monitoring"] == 1
    assert snap["active_sessions"]["total"] == 1


def test_stale_sessions_pruned():
    """Sessions older than the active window should be pruned from stats."""
    stats = EngineStats(active_window_seconds=0.1)
    stats.record_update("session-d", MONITOR)

    snap = stats.snapshot()
    assert snap["active_sessions"]["total"] == 1

    time.sleep(0.15)

    snap = stats.snapshot()
    assert snap["active_sessions"]["total"] == 0
    assert snap["location_updates"] == 1


def test_queue_depth_tracking():
    stats = EngineStats()
    stats.update_queue_depth(50)
    stats.update_queue_depth(100)
    stats.update_queue_depth(30)

    snap = stats.snapshot()
    assert snap["queue_depth"] == 30
    assert snap["queue_max_depth_ever"] == 100


def test_trigger_and_dispatch_counters():
    stats = EngineStats()
    stats.record_trigger()
    stats.record_trigger(manual=True)
    stats.record_suppressed()
    stats.record_dispatch(DispatchSummary(total_contacts=3, successful=2, failed=1,
                                          total_attempts=7))
    stats.record_stored(4)
    stats.record_storage_error()

    snap = stats.snapshot()
    assert snap["emergencies_triggered"] == 2
    assert snap["manual_sos"] == 1
    assert snap["triggers_suppressed"] == 1
    assert snap["contacts_notified"] == 2
    assert snap["contacts_failed"] == 1
    assert snap["alert_attempts"] == 7
    assert snap["events_stored"] == 4
    assert snap["storage_errors"] == 1
