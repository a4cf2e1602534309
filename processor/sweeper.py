"""Periodic reduction sweep over all registered timelines."""

import threading
import time

from config import configure_logging
from timeline.registry import TimelineRegistry


class ReductionSweeper:
    """
    Calls ``TimelineRegistry.reduce_all_raw`` every ``interval_sec`` seconds
    on a daemon thread. Sweeps are idempotent, so running several sweepers
    against the same Redis is safe.
    """

    def __init__(self, registry: TimelineRegistry, interval_sec: float = 10, log_level: str = "INFO"):
        self.log = configure_logging("reduction-sweeper", log_level)
        self._registry = registry
        self.interval_sec = interval_sec
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.sweeps = 0

    def sweep_once(self) -> dict[str, int]:
        started = time.monotonic()
        results = self._registry.reduce_all_raw()
        self.sweeps += 1
        self.log.info(
            "sweep_completed",
            sensors=len(results),
            reduced=sum(results.values()),
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return results

    def _loop(self):
        while not self._stop.wait(self.interval_sec):
            try:
                self.sweep_once()
            except Exception as e:
                self.log.error("sweep_error", error=str(e))

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="reduction-sweeper", daemon=True)
        self._thread.start()
        self.log.info("sweeper_started", interval_sec=self.interval_sec)

    def stop(self, timeout: float | None = 5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.log.info("sweeper_stopped", sweeps=self.sweeps)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
