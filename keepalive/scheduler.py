"""Fixed-interval keepalive ticker.

Cluster keepalive: periodic liveness operations against a MongoDB cluster.
"""

import logging
import threading
import time
from typing import Callable, Optional

from keepalive.operations import OperationError, OperationExecutor
from keepalive.utils.durations import format_duration


class KeepaliveScheduler:
    """
    Runs the executor once per interval on a background thread.

    The first tick fires one interval after start(). Ticks run synchronously
    and never overlap; deadlines missed while a tick was running are dropped,
    not replayed. Failures are logged and never stop the loop.
    """

    def __init__(self, executor: OperationExecutor, interval: float,
                 clock: Callable[[], float] = time.monotonic):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.executor = executor
        self.interval = interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.tick_count = 0
        self.failure_count = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the ticker thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="keepalive-ticker", daemon=True)
        self._thread.start()
        logging.info(f"Keeping cluster alive with operations every {format_duration(self.interval)}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the ticker and wait for an in-flight tick to finish."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logging.warning("Keepalive ticker did not stop within the timeout")
                return
        self._thread = None

    def _run(self) -> None:
        next_tick = self._clock() + self.interval
        while not self._stop_event.wait(max(0.0, next_tick - self._clock())):
            self.tick()
            next_tick += self.interval
            now = self._clock()
            if next_tick <= now:
                # Tick overran one or more deadlines; drop them like a ticker would
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval
                self.skipped_ticks += missed
                logging.debug(f"Keepalive tick overran, skipped {missed} tick(s)")

    def tick(self) -> bool:
        """Run one keepalive operation and log the outcome.

        Returns:
            True if the operation succeeded
        """
        self.tick_count += 1
        try:
            outcome = self.executor.run_once()
        except OperationError as e:
            self.failure_count += 1
            logging.error(f"Error performing keepalive operation: {e}")
            return False
        except Exception as e:
            self.failure_count += 1
            logging.error(f"Unexpected error in keepalive tick: {e}", exc_info=True)
            return False

        logging.info(
            f"Successfully performed keepalive operation: {outcome.describe()} "
            f"({outcome.elapsed_seconds * 1000:.1f} ms)"
        )
        return True
