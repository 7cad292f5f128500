"""Reconciliation loop.

Brief:
  Reconciler periodically resolves every configured DomainSpec, synthesizes
  the desired EndpointObject and upserts it into the sink. Each domain is
  isolated: a resolution failure, an unsupported slice type or a sink error
  is logged and counted, and the pass moves on to the next domain.

Inputs:
  - DomainSpec list, ResolutionEngine, EndpointSynthesizer, BaseEndpointSink

Outputs:
  - CycleReport per pass; side effects in the sink
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .config.logging_config import resolve_level
from .errors import NotSupported, ResolutionError, SinkError
from .models import DomainSpec
from .resolver import ResolutionEngine
from .sinks.base import BaseEndpointSink
from .stats import (
    FAILURE_OUTCOMES,
    OUTCOME_ERROR,
    OUTCOME_NOT_SUPPORTED,
    OUTCOME_RESOLUTION_FAILED,
    OUTCOME_SINK_FAILED,
    OUTCOME_SKIPPED_EMPTY,
    OUTCOME_TIMED_OUT,
    OUTCOME_UNCHANGED,
    OUTCOME_UPSERTED,
    ReconcileStats,
    format_snapshot_json,
)
from .synth import EndpointSynthesizer

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_POLLING = "polling"

DEFAULT_POLL_INTERVAL_SECONDS = 30.0


@dataclass
class CycleReport:
    """Result of one poll pass.

    Inputs:
      - started_at: Unix timestamp when the pass began.
      - duration_seconds: Wall-clock duration of the pass.
      - outcomes: service_name -> outcome name (see srvctl.stats).
      - errors: service_name -> error text for failed domains.

    Outputs:
      - CycleReport instance.
    """

    started_at: float
    duration_seconds: float = 0.0
    outcomes: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return sorted(n for n, o in self.outcomes.items() if o in FAILURE_OUTCOMES)

    @property
    def ok(self) -> bool:
        return not self.failed


class Reconciler:
    """Converge the sink to the resolved state of every configured domain.

    Inputs (constructor):
      - domains: DomainSpec list; service_name values must be unique.
      - engine: ResolutionEngine.
      - synthesizer: EndpointSynthesizer.
      - sink: BaseEndpointSink receiving upserts.
      - poll_interval_seconds: Sleep between passes (default 30).
      - max_workers: Domains resolved concurrently within one pass.
      - cycle_timeout_seconds: Overall deadline for one pass; None disables it.
      - stats: Optional ReconcileStats; a private one is created when omitted.
      - report_level: Log level name for the per-pass statistics line, or None
        to disable it.

    Outputs:
      - Reconciler instance. The state is STATE_IDLE between passes and
        STATE_POLLING during one.

    Example:
        >>> rec = Reconciler(domains, engine, EndpointSynthesizer(), MemorySink())
        >>> report = rec.run_once()
        >>> report.outcomes
        {'mongo': 'upserted'}
    """

    def __init__(
        self,
        domains: Sequence[DomainSpec],
        engine: ResolutionEngine,
        synthesizer: EndpointSynthesizer,
        sink: BaseEndpointSink,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_workers: int = 4,
        cycle_timeout_seconds: Optional[float] = None,
        stats: Optional[ReconcileStats] = None,
        report_level: Optional[str] = "info",
    ) -> None:
        names = [d.service_name for d in domains]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate service_name values: {duplicates}")

        self.domains: Tuple[DomainSpec, ...] = tuple(domains)
        self.engine = engine
        self.synthesizer = synthesizer
        self.sink = sink
        self.poll_interval_seconds = max(0.0, float(poll_interval_seconds))
        self.max_workers = max(1, int(max_workers))
        self.cycle_timeout_seconds = (
            float(cycle_timeout_seconds) if cycle_timeout_seconds else None
        )
        self.stats = stats if stats is not None else ReconcileStats()
        self.report_level = resolve_level(report_level) if report_level else None

        self._locks: Dict[str, threading.Lock] = {n: threading.Lock() for n in names}
        self._stop_event = threading.Event()
        self._state = STATE_IDLE

    @property
    def state(self) -> str:
        return self._state

    def stop(self) -> None:
        """Ask run_forever() to return after the current pass."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run_forever(self, max_cycles: Optional[int] = None) -> int:
        """Brief: Poll until stop() is called.

        Inputs:
          - max_cycles: Optional cap on the number of passes.

        Outputs:
          - int: number of passes run.
        """

        cycles = 0
        logger.info(
            "Reconciling %d domain(s) every %.1fs",
            len(self.domains),
            self.poll_interval_seconds,
        )
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:  # pragma: no cover - run_once isolates domains
                logger.error("Reconcile pass failed", exc_info=True)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if self._stop_event.wait(self.poll_interval_seconds):
                break
        logger.info("Reconciler stopped after %d pass(es)", cycles)
        return cycles

    def run_once(self) -> CycleReport:
        """Brief: Run one full pass over all configured domains.

        Inputs:
          - None.

        Outputs:
          - CycleReport with one outcome per domain. Never raises for
            per-domain failures.
        """

        report = CycleReport(started_at=time.time())
        started = time.monotonic()
        self._state = STATE_POLLING
        expired = threading.Event()
        try:
            if self.domains:
                self._run_pass(report, expired)
        finally:
            self._state = STATE_IDLE

        report.duration_seconds = time.monotonic() - started
        self.stats.record_cycle(report.duration_seconds)
        for name, outcome in report.outcomes.items():
            self.stats.record_outcome(name, outcome)

        if report.failed:
            logger.warning(
                "Pass finished in %.2fs; %d/%d domain(s) failed: %s",
                report.duration_seconds,
                len(report.failed),
                len(self.domains),
                ", ".join(report.failed),
            )
        else:
            logger.info(
                "Pass finished in %.2fs for %d domain(s)",
                report.duration_seconds,
                len(self.domains),
            )
        if self.report_level is not None:
            logger.log(self.report_level, format_snapshot_json(self.stats.snapshot()))
        return report

    def _run_pass(self, report: CycleReport, expired: threading.Event) -> None:
        workers = min(self.max_workers, len(self.domains))
        executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="srvctl-reconcile"
        )
        futures: Dict[Future, DomainSpec] = {}
        not_done: set = set()
        try:
            for spec in self.domains:
                futures[executor.submit(self._reconcile_domain, spec, expired)] = spec
            _, not_done = wait(futures, timeout=self.cycle_timeout_seconds)
            expired.set()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for fut, spec in futures.items():
            name = spec.service_name
            if fut in not_done and not fut.done():
                logger.error(
                    "%s: resolution of %s did not finish within %.1fs",
                    name,
                    spec.hostname,
                    self.cycle_timeout_seconds or 0.0,
                )
                report.outcomes[name] = OUTCOME_TIMED_OUT
                report.errors[name] = "cycle deadline exceeded"
                continue
            if fut.cancelled():
                report.outcomes[name] = OUTCOME_TIMED_OUT
                report.errors[name] = "cancelled at cycle deadline"
                continue
            outcome, error = fut.result()
            report.outcomes[name] = outcome
            if error:
                report.errors[name] = error

    def _reconcile_domain(
        self, spec: DomainSpec, expired: threading.Event
    ) -> Tuple[str, Optional[str]]:
        try:
            return self._reconcile_domain_inner(spec, expired)
        except Exception as exc:
            logger.error(
                "%s: unexpected reconcile failure", spec.service_name, exc_info=True
            )
            return OUTCOME_ERROR, str(exc)

    def _reconcile_domain_inner(
        self, spec: DomainSpec, expired: threading.Event
    ) -> Tuple[str, Optional[str]]:
        name = spec.service_name
        try:
            result = self.engine.resolve(spec.hostname)
        except ResolutionError as exc:
            logger.error("%s: %s", name, exc)
            return OUTCOME_RESOLUTION_FAILED, str(exc)

        try:
            obj = self.synthesizer.synthesize(result, spec)
        except NotSupported as exc:
            logger.error("%s: %s; object left untouched", name, exc)
            return OUTCOME_NOT_SUPPORTED, str(exc)

        if obj is None:
            return OUTCOME_SKIPPED_EMPTY, None

        with self._locks[name]:
            # A late task from an expired pass must not overwrite state that
            # a newer pass may already have written.
            if expired.is_set():
                logger.warning("%s: pass deadline passed; dropping upsert", name)
                return OUTCOME_TIMED_OUT, "cycle deadline exceeded"
            try:
                changed = self.sink.upsert(obj)
            except SinkError as exc:
                logger.error("%s: %s", name, exc)
                return OUTCOME_SINK_FAILED, str(exc)
            except Exception as exc:
                logger.error("%s: sink upsert failed", name, exc_info=True)
                return OUTCOME_SINK_FAILED, str(exc)

        if changed:
            logger.info(
                "%s: upserted %d address(es) on port %d",
                name,
                len(obj.addresses),
                obj.port,
            )
            return OUTCOME_UPSERTED, None
        logger.debug("%s: unchanged", name)
        return OUTCOME_UNCHANGED, None
