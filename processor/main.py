"""Reduction service: loads configured timelines and sweeps them on a fixed cadence."""

import signal
import threading

from config import Settings, configure_logging
from processor.sweeper import ReductionSweeper
from storage.redis_client import RedisClient
from timeline.registry import TimelineRegistry


class ReductionService:
    """Wires Settings → Redis → TimelineRegistry → ReductionSweeper."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.log = configure_logging("reduction-service", settings.log_level)
        self._redis = RedisClient(settings)
        self.registry = TimelineRegistry.from_settings(settings, self._redis)
        self._sweeper = ReductionSweeper(
            self.registry,
            interval_sec=settings.reduce_sweep_interval_sec,
            log_level=settings.log_level,
        )
        self._shutdown = threading.Event()

    def stop(self, *_):
        self._shutdown.set()

    def run(self):
        self.log.info("reduction_service_starting", timelines=self.registry.names)
        signal.signal(signal.SIGTERM, self.stop)
        signal.signal(signal.SIGINT, self.stop)
        self._sweeper.start()
        try:
            self._shutdown.wait()
        finally:
            self._sweeper.stop()
            # final pass so finished intervals are not left to expire unreduced
            self._sweeper.sweep_once()
            self._redis.close()
            self.log.info("reduction_service_stopped")


if __name__ == "__main__":
    settings = Settings()
    service = ReductionService(settings)
    service.run()
