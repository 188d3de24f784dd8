"""Single-flight batch processing of the PENDING backlog."""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from nudgescope.batch.metrics import AnalysisMetrics
from nudgescope.config import AnalysisSettings
from nudgescope.exceptions import TranscriptNotFoundError
from nudgescope.llm.retry import RetryPolicy, linear_backoff
from nudgescope.storage.database import Database
from nudgescope.storage.models import AnalysisStatus, TranscriptRecord
from nudgescope.storage.repository import Repository

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOP_REQUESTED = "STOP_REQUESTED"


@dataclass
class RunSummary:
    processed: int = 0
    failed: int = 0
    total: int = 0
    reclaimed: int = 0
    stopped: bool = False
    already_running: bool = False
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def attempted(self) -> int:
        return self.processed + self.failed


class BatchCoordinator:
    """Owns the backlog run.

    At most one backlog run is active against a database. The run state moves
    IDLE -> RUNNING -> (STOP_REQUESTED) -> IDLE under a lock, and the move to
    RUNNING also takes the `batch_lock` lease in the database so coordinators
    in other processes are shut out too. A caller that loses either race gets
    an "already running" summary back immediately.

    The lease is refreshed before every record. A lease whose heartbeat is
    older than `stale_after_minutes` belongs to a dead process and is taken
    over.

    Within a run records are processed one at a time, oldest first, with
    `processing_delay` between records and `page_delay` between pages.
    """

    def __init__(
        self,
        analyzer,
        gateway,
        db_path: Path,
        settings: AnalysisSettings | None = None,
        metrics: AnalysisMetrics | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.analyzer = analyzer
        self.gateway = gateway
        self.db_path = db_path
        self.settings = settings or AnalysisSettings()
        self.metrics = metrics or AnalysisMetrics()
        self.sleep = sleep

        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._executor: ThreadPoolExecutor | None = None
        self._future: Future | None = None
        self.holder = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    # ── Run state ──────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    def is_running(self) -> bool:
        return self.state != RunState.IDLE

    def _compare_and_set(self, expected: RunState, new: RunState) -> bool:
        with self._lock:
            if self._state != expected:
                return False
            self._state = new
            return True

    def request_stop(self) -> bool:
        """Ask the active run to stop after its current record."""
        if self._compare_and_set(RunState.RUNNING, RunState.STOP_REQUESTED):
            logger.warning("Batch processing stop requested")
            return True
        return False

    def _stop_requested(self) -> bool:
        return self.state == RunState.STOP_REQUESTED

    # ── Database lease ─────────────────────────────────────────────

    def _acquire_lease(self) -> bool:
        with Database(self.db_path) as db:
            return Repository(db).acquire_batch_lock(
                self.holder, timedelta(minutes=self.settings.stale_after_minutes)
            )

    def _heartbeat(self) -> bool:
        with Database(self.db_path) as db:
            if Repository(db).refresh_batch_lock(self.holder):
                return True
        logger.warning(f"Batch lease lost by {self.holder}, another process took over")
        return False

    def _release_lease(self):
        try:
            with Database(self.db_path) as db:
                Repository(db).release_batch_lock(self.holder)
        except Exception as e:
            logger.error(f"Failed to release batch lease: {e}", exc_info=True)

    def lease_holder(self) -> str | None:
        """Who holds the run lease in the database, if anyone."""
        with Database(self.db_path) as db:
            return Repository(db).get_batch_lock_holder(
                timedelta(minutes=self.settings.stale_after_minutes)
            )

    def is_busy(self) -> bool:
        """True when a run is active here or in another process."""
        return self.is_running() or self.lease_holder() is not None

    # ── Backlog run ────────────────────────────────────────────────

    def run_backlog(self) -> RunSummary:
        """Process PENDING transcripts until none are left or a stop is requested."""
        if not self._compare_and_set(RunState.IDLE, RunState.RUNNING):
            logger.info("Batch analysis is already running, skipping this execution")
            return RunSummary(already_running=True)

        try:
            leased = self._acquire_lease()
        except Exception as e:
            with self._lock:
                self._state = RunState.IDLE
            logger.error(f"Could not take the batch lease: {e}", exc_info=True)
            return RunSummary(error=str(e))
        if not leased:
            with self._lock:
                self._state = RunState.IDLE
            logger.info("Batch analysis is running in another process, skipping this execution")
            return RunSummary(already_running=True)

        summary = RunSummary()
        started = time.monotonic()
        try:
            logger.info(f"Batch analysis started - page size {self.settings.batch_size}")
            self._run_loop(summary)
        except Exception as e:
            summary.error = str(e)
            logger.error(f"Error during batch analysis process: {e}", exc_info=True)
        finally:
            summary.elapsed_seconds = time.monotonic() - started
            self._release_lease()
            with self._lock:
                self._state = RunState.IDLE

        logger.info(
            f"Batch analysis completed - Processed: {summary.processed}, "
            f"Failed: {summary.failed}"
            + (" (stopped)" if summary.stopped else "")
        )
        return summary

    def _run_loop(self, summary: RunSummary):
        with Database(self.db_path) as db:
            repo = Repository(db)
            summary.reclaimed = repo.reset_stale_processing(
                timedelta(minutes=self.settings.stale_after_minutes)
            )
            if summary.reclaimed:
                logger.warning(f"Reset {summary.reclaimed} stale PROCESSING consultations to PENDING")
            pending = repo.count_by_status(AnalysisStatus.PENDING)

        summary.total = pending
        logger.info(f"Found {pending} pending consultations for analysis")
        if pending == 0:
            return

        seen = 0
        # Bounded by the count taken at start so records that stay PENDING
        # cannot keep the loop alive.
        while seen < pending:
            if self._stop_requested():
                summary.stopped = True
                return

            with Database(self.db_path) as db:
                page = Repository(db).get_pending_page(self.settings.batch_size)
            if not page:
                break

            logger.info(
                f"Processing page of {len(page)} consultations (Total processed: {seen})"
            )
            for record in page:
                if seen > 0:
                    self.sleep(self.settings.processing_delay)
                if self._stop_requested():
                    summary.stopped = True
                    return

                if not self._heartbeat():
                    summary.stopped = True
                    return
                if self._process_with_retry(record):
                    summary.processed += 1
                else:
                    summary.failed += 1
                seen += 1

                if seen % self.settings.progress_interval == 0:
                    logger.info(f"Progress: {seen}/{pending} processed")
                if seen >= pending:
                    break

            if seen < pending:
                self.sleep(self.settings.page_delay)

    # ── Single record ──────────────────────────────────────────────

    def _process_with_retry(self, record: TranscriptRecord) -> bool:
        """Analyze one record, retrying when the analysis itself raises.

        Returns True when the record ended COMPLETED.
        """
        number = record.consultation_number
        policy = RetryPolicy(
            max_attempts=self.settings.max_retry_count,
            backoff=linear_backoff(self.settings.record_retry_delay),
            sleep=self.sleep,
            label=f"Analysis of consultation {number}",
        )

        self.metrics.record_start()
        started = time.monotonic()
        success = False
        try:
            result = policy.run(lambda: self.analyzer.analyze(record))
            if result.ok:
                success = result.value.success
            else:
                logger.error(f"Analysis failed for consultation: {number} - Error: {result.error}")
                self.gateway.mark_failed(record)
        finally:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self.metrics.record_complete(elapsed_ms, success)
        return success

    def run_one(self, consultation_number: str) -> bool:
        """Analyze a named transcript whatever its current status."""
        logger.info(f"Manual processing requested for consultation: {consultation_number}")
        with Database(self.db_path) as db:
            record = Repository(db).get_transcript(consultation_number)
        if record is None:
            raise TranscriptNotFoundError(consultation_number)
        return self._process_with_retry(record)

    # ── Manual trigger ─────────────────────────────────────────────

    def submit_backlog(self) -> bool:
        """Queue a backlog run on the single batch worker.

        Returns False when a run is already active or queued, here or in
        another process.
        """
        with self._lock:
            if self._state != RunState.IDLE:
                return False
            if self._future is not None and not self._future.done():
                return False
            holder = self.lease_holder()
            if holder is not None and holder != self.holder:
                logger.info(f"Batch lease held by {holder}, not starting a run")
                return False
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="nudgescope-batch"
                )
            self._future = self._executor.submit(self.run_backlog)
            return True

    def wait(self, timeout: float | None = None) -> RunSummary | None:
        """Block until the last submitted run finishes and return its summary."""
        future = self._future
        if future is None:
            return None
        return future.result(timeout=timeout)

    def shutdown(self, wait: bool = True):
        self.request_stop()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
