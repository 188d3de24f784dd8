"""Process-wide counters for analysis throughput."""

from __future__ import annotations

import threading


class AnalysisMetrics:
    """Thread-safe counters. Each counter only grows until `reset`."""

    def __init__(self):
        self._lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._processing_time_ms = 0
        self._in_flight = 0

    def record_start(self):
        with self._lock:
            self._in_flight += 1

    def record_complete(self, processing_time_ms: int, success: bool):
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            self._processing_time_ms += processing_time_ms
            if success:
                self._processed += 1
            else:
                self._failed += 1

    def snapshot(self) -> dict:
        with self._lock:
            processed = self._processed
            failed = self._failed
            total_time = self._processing_time_ms
            in_flight = self._in_flight

        finished = processed + failed
        return {
            "totalProcessed": processed,
            "totalFailed": failed,
            "successRate": processed / finished * 100 if finished else 0.0,
            "averageProcessingTimeMs": total_time // processed if processed else 0,
            "currentlyProcessing": in_flight,
        }

    def reset(self):
        with self._lock:
            self._processed = 0
            self._failed = 0
            self._processing_time_ms = 0
            self._in_flight = 0
