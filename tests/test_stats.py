"""
Brief: Tests for srvctl.stats.ReconcileStats and snapshot formatting.

Inputs:
  - None

Outputs:
  - None
"""

import json
import threading

import pytest

from srvctl.stats import (
    OUTCOME_RESOLUTION_FAILED,
    OUTCOME_UPSERTED,
    OUTCOMES,
    ReconcileStats,
    format_snapshot_json,
)


def test_record_outcome_counts_and_tracks_last_outcome():
    """
    Brief: Totals accumulate; domains keep only the most recent outcome.

    Inputs:
      - None

    Outputs:
      - None: Asserts totals and per-domain state
    """
    stats = ReconcileStats()
    stats.record_outcome("mongo", OUTCOME_UPSERTED)
    stats.record_outcome("mongo", OUTCOME_RESOLUTION_FAILED)
    stats.record_address_failure("_x._tcp.example")
    stats.record_address_failure("_x._tcp.example")
    stats.record_address_failure("_y._tcp.example")
    stats.record_cycle(0.25)

    snap = stats.snapshot()
    assert set(snap.totals) == set(OUTCOMES)
    assert snap.totals[OUTCOME_UPSERTED] == 1
    assert snap.totals[OUTCOME_RESOLUTION_FAILED] == 1
    assert snap.domains == {"mongo": OUTCOME_RESOLUTION_FAILED}
    assert snap.address_failures == 3
    assert snap.address_failures_by_srv == {"_x._tcp.example": 2, "_y._tcp.example": 1}
    assert snap.cycles == 1
    assert snap.last_cycle_seconds == 0.25


def test_record_outcome_rejects_unknown_names():
    """
    Brief: Unknown outcome names are programming errors.

    Inputs:
      - None

    Outputs:
      - None: Asserts ValueError
    """
    with pytest.raises(ValueError):
        ReconcileStats().record_outcome("mongo", "exploded")


def test_snapshot_reset_zeroes_counters():
    """
    Brief: snapshot(reset=True) returns current values and clears them.

    Inputs:
      - None

    Outputs:
      - None: Asserts counters before and after reset
    """
    stats = ReconcileStats()
    stats.record_outcome("a", OUTCOME_UPSERTED)
    assert stats.snapshot(reset=True).totals[OUTCOME_UPSERTED] == 1
    after = stats.snapshot()
    assert after.totals[OUTCOME_UPSERTED] == 0
    assert after.domains == {}
    assert after.last_cycle_seconds is None


def test_concurrent_updates_are_not_lost():
    """
    Brief: Counters stay exact under concurrent writers.

    Inputs:
      - None

    Outputs:
      - None: Asserts total equals number of updates
    """
    stats = ReconcileStats()

    def worker(n):
        for _ in range(500):
            stats.record_outcome(f"d{n}", OUTCOME_UPSERTED)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert stats.snapshot().totals[OUTCOME_UPSERTED] == 2000


def test_format_snapshot_json_is_single_line_json():
    """
    Brief: format_snapshot_json renders parseable, compact JSON.

    Inputs:
      - None

    Outputs:
      - None: Asserts decoded payload fields
    """
    stats = ReconcileStats()
    stats.record_outcome("b", OUTCOME_UPSERTED)
    stats.record_outcome("a", OUTCOME_UPSERTED)
    stats.record_address_failure("_s._tcp.example")
    stats.record_cycle(1.23456)
    text = format_snapshot_json(stats.snapshot())
    assert "\n" not in text
    payload = json.loads(text)
    assert payload["cycles"] == 1
    assert payload["last_cycle_seconds"] == 1.235
    assert list(payload["domains"]) == ["a", "b"]
    assert payload["totals"][OUTCOME_UPSERTED] == 2
    assert payload["address_failures_by_srv"] == {"_s._tcp.example": 1}
    assert "ts" in payload and "version" in payload
