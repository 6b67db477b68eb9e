"""Periodic relay driver.

Each tick runs a forward batch from the persisted cursor, then sweeps the
persisted retry set. The cursor is written after every attempt so progress
survives a failure later in the batch; store errors end the tick early and the
next tick starts from whatever was last written.

Forward-batch FAILED items are not added to the retry set unless
``retry_failed`` is enabled; NOT_READY items always are, and are written to the
retry set before the cursor moves past them. An unexpected exception from one
attempt is logged and counted as FAILED.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional

from compute_relayer.core.errors import StoreError
from compute_relayer.core.pipeline import AttemptOutcome, OutcomeStatus, SubmissionPipeline
from compute_relayer.core.store import SequenceStore
from compute_relayer.core.utils import U64_MAX, get_logger

LOGGER = get_logger("compute_relayer.scheduler")

DEFAULT_BATCH_SIZE = 10
DEFAULT_INTERVAL_SECONDS = 10.0
RETRY_SET_WARN_SIZE = 1000


@dataclass
class TickReport:
    """What a single tick did."""

    start_cursor: Optional[int] = None
    end_cursor: Optional[int] = None
    submitted: List[int] = field(default_factory=list)
    not_ready: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    retried_submitted: List[int] = field(default_factory=list)
    aborted: bool = False


class RelayScheduler:
    """Drives ``SubmissionPipeline`` forward from the stored cursor."""

    def __init__(
        self,
        *,
        store: SequenceStore,
        pipeline: SubmissionPipeline,
        batch_size: int = DEFAULT_BATCH_SIZE,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        retry_failed: bool = False,
        retry_warn_size: int = RETRY_SET_WARN_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if interval_seconds < 0:
            raise ValueError("interval_seconds cannot be negative")
        self.store = store
        self.pipeline = pipeline
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.retry_failed = retry_failed
        self.retry_warn_size = retry_warn_size

    def tick(self) -> TickReport:
        report = TickReport()
        try:
            self._run_forward_batch(report)
            self._run_retry_sweep(report)
        except StoreError as exc:
            LOGGER.error("Store error, ending tick early: %s", exc)
            report.aborted = True
        return report

    def run_forever(
        self,
        stop_event: Optional[threading.Event] = None,
        *,
        max_ticks: Optional[int] = None,
    ) -> int:
        """Run ticks every ``interval_seconds`` until stopped; returns ticks run."""
        stop_event = stop_event or threading.Event()
        ticks = 0
        LOGGER.info(
            "Starting relay loop (interval=%ss, batch_size=%s)", self.interval_seconds, self.batch_size
        )
        while not stop_event.is_set():
            report = self.tick()
            ticks += 1
            LOGGER.info(
                "Tick %s: cursor %s -> %s, submitted=%s not_ready=%s failed=%s retried=%s%s",
                ticks,
                report.start_cursor,
                report.end_cursor,
                len(report.submitted),
                len(report.not_ready),
                len(report.failed),
                len(report.retried_submitted),
                " (aborted)" if report.aborted else "",
            )
            if max_ticks is not None and ticks >= max_ticks:
                break
            stop_event.wait(self.interval_seconds)
        LOGGER.info("Relay loop stopped after %s ticks", ticks)
        return ticks

    def _attempt(self, seq_number: int) -> AttemptOutcome:
        try:
            return self.pipeline.attempt(seq_number)
        except StoreError:
            raise
        except Exception as exc:
            LOGGER.exception("Unexpected error attempting sequence %s", seq_number)
            return AttemptOutcome.failed(seq_number, f"{type(exc).__name__}: {exc}")

    def _run_forward_batch(self, report: TickReport) -> None:
        cursor = self.store.load_cursor()
        report.start_cursor = cursor
        report.end_cursor = cursor

        for offset in range(self.batch_size):
            seq_number = cursor + offset
            if seq_number >= U64_MAX:
                LOGGER.error("Sequence number space exhausted at %s", seq_number)
                break
            outcome = self._attempt(seq_number)
            deferred = False
            if outcome.status is OutcomeStatus.SUBMITTED:
                report.submitted.append(seq_number)
            elif outcome.status is OutcomeStatus.NOT_READY:
                report.not_ready.append(seq_number)
                deferred = True
            else:
                report.failed.append(seq_number)
                LOGGER.warning("Sequence %s failed: %s", seq_number, outcome.reason)
                deferred = self.retry_failed

            # The retry entry must be durable before the cursor moves past it.
            if deferred:
                self.store.store_retry_set(self.store.load_retry_set() | {seq_number})
            self.store.store_cursor(seq_number + 1)
            report.end_cursor = seq_number + 1

    def _run_retry_sweep(self, report: TickReport) -> None:
        pending = self.store.load_retry_set()
        if not pending:
            return
        if len(pending) > self.retry_warn_size:
            LOGGER.warning(
                "Retry set holds %s sequence numbers (sequencer may be idle or lagging)", len(pending)
            )
        else:
            LOGGER.info("Retrying %s deferred sequence numbers", len(pending))
        remaining = set(pending)
        for seq_number in sorted(pending):
            outcome = self._attempt(seq_number)
            if outcome.status is OutcomeStatus.SUBMITTED:
                remaining.discard(seq_number)
                self.store.store_retry_set(remaining)
                report.retried_submitted.append(seq_number)
            elif outcome.status is OutcomeStatus.FAILED:
                LOGGER.warning("Retry of sequence %s failed: %s", seq_number, outcome.reason)


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_INTERVAL_SECONDS",
    "RETRY_SET_WARN_SIZE",
    "RelayScheduler",
    "TickReport",
]
