"""
Thread-safe reconciliation statistics for srvctl.

Domain tasks and per-target address lookups run on worker threads, so every
counter update goes through a single RLock. Snapshots are plain dataclasses
that can be formatted and logged without holding the lock.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from . import SRVCTL_VERSION

logger = logging.getLogger(__name__)

OUTCOME_UPSERTED = "upserted"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_SKIPPED_EMPTY = "skipped_empty"
OUTCOME_RESOLUTION_FAILED = "resolution_failed"
OUTCOME_NOT_SUPPORTED = "not_supported"
OUTCOME_SINK_FAILED = "sink_failed"
OUTCOME_TIMED_OUT = "timed_out"
OUTCOME_ERROR = "error"

OUTCOMES = (
    OUTCOME_UPSERTED,
    OUTCOME_UNCHANGED,
    OUTCOME_SKIPPED_EMPTY,
    OUTCOME_RESOLUTION_FAILED,
    OUTCOME_NOT_SUPPORTED,
    OUTCOME_SINK_FAILED,
    OUTCOME_TIMED_OUT,
    OUTCOME_ERROR,
)

# Outcomes that mean the stored object could not be brought up to date.
FAILURE_OUTCOMES = frozenset(
    {
        OUTCOME_RESOLUTION_FAILED,
        OUTCOME_NOT_SUPPORTED,
        OUTCOME_SINK_FAILED,
        OUTCOME_TIMED_OUT,
        OUTCOME_ERROR,
    }
)


@dataclass
class ReconcileSnapshot:
    """
    Immutable view of reconciliation counters at one point in time.

    Inputs:
        created_at: Unix timestamp of the snapshot
        cycles: Number of completed poll passes
        last_cycle_seconds: Duration of the most recent pass (None before the first)
        totals: Outcome name -> count over all passes
        address_failures: Count of failed per-target A lookups
        address_failures_by_srv: SRV owner name -> failed A lookups under it
        domains: service_name -> last outcome

    Outputs:
        ReconcileSnapshot instance
    """

    created_at: float
    cycles: int
    last_cycle_seconds: Optional[float]
    totals: Dict[str, int]
    address_failures: int
    domains: Dict[str, str]
    address_failures_by_srv: Dict[str, int] = field(default_factory=dict)


class ReconcileStats:
    """
    Thread-safe counters for the reconciliation loop.

    Inputs (constructor):
        None

    Outputs:
        ReconcileStats instance

    Example:
        >>> stats = ReconcileStats()
        >>> stats.record_outcome("mongo", OUTCOME_UPSERTED)
        >>> stats.snapshot().totals["upserted"]
        1
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._cycles = 0
        self._last_cycle_seconds: Optional[float] = None
        self._totals: Dict[str, int] = defaultdict(int)
        self._address_failures = 0
        self._address_failures_by_srv: Dict[str, int] = defaultdict(int)
        self._domains: Dict[str, str] = {}

    def record_outcome(self, service_name: str, outcome: str) -> None:
        if outcome not in OUTCOMES:
            raise ValueError(f"unknown reconcile outcome {outcome!r}")
        with self._lock:
            self._totals[outcome] += 1
            self._domains[service_name] = outcome

    def record_address_failure(self, srv_hostname: str) -> None:
        with self._lock:
            self._address_failures += 1
            self._address_failures_by_srv[srv_hostname] += 1

    def record_cycle(self, seconds: float) -> None:
        with self._lock:
            self._cycles += 1
            self._last_cycle_seconds = max(0.0, float(seconds))

    def snapshot(self, reset: bool = False) -> ReconcileSnapshot:
        """
        Copy the current counters.

        Inputs:
            reset: When True, zero all counters after copying.

        Outputs:
            ReconcileSnapshot
        """
        with self._lock:
            snap = ReconcileSnapshot(
                created_at=time.time(),
                cycles=self._cycles,
                last_cycle_seconds=self._last_cycle_seconds,
                totals={k: int(self._totals.get(k, 0)) for k in OUTCOMES},
                address_failures=self._address_failures,
                domains=dict(self._domains),
                address_failures_by_srv=dict(self._address_failures_by_srv),
            )
            if reset:
                self._reset_locked()
        return snap


def format_snapshot_json(snapshot: ReconcileSnapshot) -> str:
    """
    Render a snapshot as a single JSON line for log output.

    Inputs:
        snapshot: ReconcileSnapshot

    Outputs:
        str: compact JSON with stable key order
    """
    payload = {
        "ts": datetime.fromtimestamp(snapshot.created_at, timezone.utc).isoformat(),
        "version": SRVCTL_VERSION,
        "cycles": snapshot.cycles,
        "last_cycle_seconds": (
            round(snapshot.last_cycle_seconds, 3)
            if snapshot.last_cycle_seconds is not None
            else None
        ),
        "totals": snapshot.totals,
        "address_failures": snapshot.address_failures,
        "address_failures_by_srv": dict(
            sorted(snapshot.address_failures_by_srv.items())
        ),
        "domains": dict(sorted(snapshot.domains.items())),
    }
    return json.dumps(payload, separators=(",", ":"))
