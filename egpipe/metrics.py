"""Metrics collector: thread-safe counters for published batches."""

import threading
import time

TRIGGERS = ("size", "timer", "final")


class MetricsCollector:
    """Collects counters about batch deliveries to the topic endpoint."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._batches_sent: int = 0
        self._events_sent: int = 0
        self._bytes_sent: int = 0
        self._failed_batches: int = 0
        self._failed_events: int = 0
        self._send_time_total_ms: float = 0.0
        self._send_time_max_ms: float = 0.0
        self._flush_triggers: dict = {trigger: 0 for trigger in TRIGGERS}
        self._start_time = time.monotonic()

    def record_batch(
        self,
        batch_size: int,
        bytes_sent: int,
        send_time_ms: float,
        trigger: str = "size",
    ) -> None:
        """Record a delivered batch.

        Args:
            batch_size: Number of events in the batch.
            bytes_sent: Request body size in bytes.
            send_time_ms: Round trip of the POST, in milliseconds.
            trigger: What caused the flush: "size", "timer" or "final".
        """
        with self._lock:
            self._batches_sent += 1
            self._events_sent += batch_size
            self._bytes_sent += bytes_sent
            self._send_time_total_ms += send_time_ms
            self._send_time_max_ms = max(self._send_time_max_ms, send_time_ms)
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def record_failure(self, batch_size: int) -> None:
        """Record a batch that was dropped because delivery failed."""
        with self._lock:
            self._failed_batches += 1
            self._failed_events += batch_size

    def snapshot(self) -> dict:
        """Return a point-in-time copy of all counters."""
        with self._lock:
            avg_send = (
                self._send_time_total_ms / self._batches_sent
                if self._batches_sent else 0.0
            )
            return {
                "batches_sent": self._batches_sent,
                "events_sent": self._events_sent,
                "bytes_sent": self._bytes_sent,
                "failed_batches": self._failed_batches,
                "failed_events": self._failed_events,
                "avg_send_time_ms": avg_send,
                "max_send_time_ms": self._send_time_max_ms,
                "flush_triggers": dict(self._flush_triggers),
                "uptime_seconds": time.monotonic() - self._start_time,
            }
