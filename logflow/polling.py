"""
Periodic fetch scheduling for dashboard views.

A PollingController repeatedly invokes a fetch operation on a fixed interval.
It runs the timer loop in a daemon thread and each fetch in its own worker
thread, so a slow backend never delays the timer itself.

Guarantees:
    - At most one fetch per controller is outstanding at any instant. A tick
      that fires while a fetch is still running is skipped, not queued.
    - `start()` fetches immediately, before the first timer tick.
    - After `stop()` returns, no result or error from an earlier fetch is
      delivered. Every start() opens a new generation and late results from
      older generations are discarded on arrival.
    - Fetch failures are reported through `on_error` and polling continues.
"""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

FetchOp = Callable[[], Any]
ResultCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


class PollingController:
    """Owns the fetch lifecycle for one view."""

    def __init__(self, name: str = "poller"):
        self.name = name
        self._lock = threading.RLock()
        self._generation = 0
        self._running = False
        self._in_flight = False
        self._deferred_tick = False
        self._stale_in_flight = False
        self._stop_event: Optional[threading.Event] = None
        self._timer_thread: Optional[threading.Thread] = None
        self._fetch_op: Optional[FetchOp] = None
        self._on_result: Optional[ResultCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self.interval: Optional[float] = None
        self.skipped_ticks = 0
        self.completed_fetches = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(
        self,
        fetch_op: FetchOp,
        interval: Optional[float],
        on_result: ResultCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Begin polling, replacing any previous schedule.

        Args:
            fetch_op: Zero-argument callable performing one fetch.
            interval: Seconds between ticks, or None for a single fetch only.
            on_result: Called with each fetch result.
            on_error: Called with the exception of each failed fetch.
        """
        if interval is not None and interval <= 0:
            raise ValueError(f"Polling interval must be positive: {interval}")

        self.stop()

        with self._lock:
            self._generation += 1
            self._running = True
            self._fetch_op = fetch_op
            self._on_result = on_result
            self._on_error = on_error
            self.interval = interval
            stop_event = threading.Event()
            self._stop_event = stop_event
            generation = self._generation

        logger.debug(f"[{self.name}] start generation={generation} interval={interval}")
        self.tick()

        if interval is not None:
            thread = threading.Thread(
                target=self._timer_loop,
                args=(stop_event, interval),
                name=f"{self.name}-timer",
                daemon=True,
            )
            with self._lock:
                self._timer_thread = thread
            thread.start()

    def stop(self) -> None:
        """Cancel the timer and discard any in-flight result. Safe to call repeatedly."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._generation += 1
            if self._in_flight:
                self._stale_in_flight = True
            self._deferred_tick = False
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
            self._timer_thread = None
        logger.debug(f"[{self.name}] stopped")

    def _timer_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            self.tick()

    def tick(self) -> bool:
        """Dispatch one fetch unless one is already outstanding.

        Returns:
            True if a fetch was dispatched, False if the tick was skipped.
        """
        with self._lock:
            if not self._running:
                return False
            if self._in_flight:
                self.skipped_ticks += 1
                # A fresh generation whose first fetch is blocked by a stale
                # call gets it as soon as that call finishes.
                if self._stale_in_flight:
                    self._deferred_tick = True
                logger.debug(f"[{self.name}] tick skipped: previous fetch still in flight")
                return False
            self._in_flight = True
            self._stale_in_flight = False
            generation = self._generation
            fetch_op = self._fetch_op

        worker = threading.Thread(
            target=self._invoke,
            args=(generation, fetch_op),
            name=f"{self.name}-fetch",
            daemon=True,
        )
        worker.start()
        return True

    def _invoke(self, generation: int, fetch_op: FetchOp) -> None:
        result = None
        error: Optional[Exception] = None
        try:
            result = fetch_op()
        except Exception as e:
            error = e

        with self._lock:
            self._in_flight = False
            self._stale_in_flight = False
            self.completed_fetches += 1
            current = self._running and generation == self._generation
            run_deferred = self._deferred_tick and self._running
            self._deferred_tick = False

            if not current:
                logger.debug(f"[{self.name}] discarding result of stopped generation {generation}")
            elif error is not None:
                logger.warning(f"[{self.name}] fetch failed: {type(error).__name__}: {error}")
                if self._on_error is not None:
                    self._on_error(error)
            elif self._on_result is not None:
                self._on_result(result)

        if run_deferred:
            self.tick()
