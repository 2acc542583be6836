"""Batching publisher: collects events and flushes them on size or time."""

import logging
import threading
import time

from egpipe.errors import PipeError
from egpipe.metrics import MetricsCollector
from egpipe.models import Event, serialize_batch
from egpipe.sender import EventSender

logger = logging.getLogger(__name__)


class FlushTimer:
    """Background ticker that calls on_tick every *interval* seconds.

    reset() restarts the countdown from now. If on_tick raises, the error is
    handed to on_error and the timer stops.
    """

    def __init__(self, interval: float, on_tick, on_error=None):
        self._interval = interval
        self._on_tick = on_tick
        self._on_error = on_error
        self._cond = threading.Condition()
        self._reset_requested = False
        self._stopped = False
        self._thread = threading.Thread(
            target=self._run, name="flush-timer", daemon=True
        )

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self):
        self._thread.start()

    def reset(self):
        with self._cond:
            self._reset_requested = True
            self._cond.notify()

    def stop(self, timeout: float | None = 5.0):
        with self._cond:
            self._stopped = True
            self._cond.notify()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self):
        deadline = time.monotonic() + self._interval
        while True:
            with self._cond:
                while not self._stopped:
                    if self._reset_requested:
                        self._reset_requested = False
                        deadline = time.monotonic() + self._interval
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(timeout=remaining)
                if self._stopped:
                    return
                deadline = time.monotonic() + self._interval

            # Tick outside the condition so reset() never waits on a flush.
            try:
                self._on_tick()
            except Exception as exc:
                if self._on_error is not None:
                    self._on_error(exc)
                else:
                    logger.exception("Flush timer callback failed")
                return


class EventPublisher:
    """Owns the pending batch and delivers it to the topic endpoint.

    Every read and write of the batch, including delivery itself, happens
    under one lock: flushes never overlap and always see a consistent batch,
    at the cost of stalling producers while a POST is in flight.

    A failed delivery drops the batch (at-most-once). Failures on the add
    path raise to the caller; failures on the timer path are kept in
    timer_error, set the shutdown event and are re-raised by check().
    """

    def __init__(
        self,
        sender: EventSender,
        max_batch_size: int = 10,
        flush_interval: float = 2.0,
        metrics: MetricsCollector | None = None,
        shutdown_event: threading.Event | None = None,
    ):
        self._sender = sender
        self._max_batch_size = max_batch_size
        self._flush_interval = flush_interval
        self._metrics = metrics or MetricsCollector()
        self._shutdown = shutdown_event

        self._pending: list[Event] = []
        self._lock = threading.Lock()
        self._timer_error: PipeError | None = None
        self._timer: FlushTimer | None = None
        if flush_interval > 0:
            self._timer = FlushTimer(
                flush_interval, self._timed_flush, self._handle_timer_error
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the flush timer, if timed flushes are enabled."""
        if self._timer is not None:
            self._timer.start()
            logger.debug("Flush timer started (interval=%.3fs)", self._flush_interval)

    def stop(self):
        """Stop the flush timer. Pending events are left untouched."""
        if self._timer is not None:
            self._timer.stop()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_event(self, event: Event):
        """Append *event*, flushing synchronously once the batch is full."""
        with self._lock:
            self._pending.append(event)
            if len(self._pending) == 1 and self._timer is not None:
                # A fresh batch gets a full interval before a timed flush.
                self._timer.reset()
        if self._max_batch_size > 0:
            self.flush_if_needed(self._max_batch_size, trigger="size")

    def flush_if_needed(self, threshold: int, trigger: str = "final"):
        """Deliver the pending batch if it holds at least *threshold* events.

        A threshold of 0 flushes whatever is pending; an empty batch is
        never sent.
        """
        with self._lock:
            if not self._pending or len(self._pending) < threshold:
                return
            self._deliver(trigger)

    def flush(self, trigger: str = "final"):
        """Deliver the pending batch regardless of its size."""
        with self._lock:
            if self._pending:
                self._deliver(trigger)

    def check(self):
        """Re-raise a delivery failure that happened on the timer thread."""
        if self._timer_error is not None:
            raise self._timer_error

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def timer_error(self) -> PipeError | None:
        return self._timer_error

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _deliver(self, trigger: str):
        """Serialize and POST the pending batch. Caller holds the lock."""
        batch_size = len(self._pending)
        try:
            body = serialize_batch(self._pending)
            start = time.monotonic()
            self._sender.send(body)
            elapsed_ms = (time.monotonic() - start) * 1000
        except PipeError:
            self._metrics.record_failure(batch_size)
            logger.debug("Dropped batch of %d events after failed delivery", batch_size)
            raise
        finally:
            self._pending.clear()

        self._metrics.record_batch(
            batch_size=batch_size,
            bytes_sent=len(body),
            send_time_ms=elapsed_ms,
            trigger=trigger,
        )
        logger.debug(
            "Flushed %d events (%d bytes, trigger=%s) in %.1fms",
            batch_size, len(body), trigger, elapsed_ms,
        )

    def _timed_flush(self):
        self.flush_if_needed(0, trigger="timer")

    def _handle_timer_error(self, exc: Exception):
        if not isinstance(exc, PipeError):
            logger.exception("Unexpected error in timed flush", exc_info=exc)
            exc = PipeError(f"timed flush failed: {exc}")
        logger.error("Timed flush failed: %s", exc)
        self._timer_error = exc
        if self._shutdown is not None:
            self._shutdown.set()
