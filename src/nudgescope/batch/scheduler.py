"""Fixed-delay trigger for backlog runs."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class FixedDelayScheduler:
    """Calls `coordinator.run_backlog` on a background thread.

    The delay is measured from the end of one run to the start of the next,
    so runs never overlap on this thread. `trigger_now` cuts the current wait
    short.
    """

    def __init__(self, coordinator, interval: float = 300.0, initial_delay: float = 0.0):
        self.coordinator = coordinator
        self.interval = interval
        self.initial_delay = initial_delay
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None
        self.runs = 0

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._loop, name="nudgescope-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(f"Scheduler started - every {self.interval:g}s after each run")

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def trigger_now(self):
        self._wake.set()

    def stop(self, timeout: float | None = None):
        """Stop the timer and ask any active run to wind down."""
        self._stop.set()
        self._wake.set()
        self.coordinator.request_stop()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def _wait(self, seconds: float) -> bool:
        """Sleep until the delay passes or a wake-up; True when stopping."""
        self._wake.wait(seconds)
        self._wake.clear()
        return self._stop.is_set()

    def _loop(self):
        if self.initial_delay and self._wait(self.initial_delay):
            return
        while not self._stop.is_set():
            try:
                self.coordinator.run_backlog()
            except Exception as e:
                logger.error(f"Scheduled batch run failed: {e}", exc_info=True)
            self.runs += 1
            if self._wait(self.interval):
                return
