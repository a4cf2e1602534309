"""Process-level registry of timeline sensors and the batch reduction driver."""

import redis

from config import Settings, TimelineDefinition, get_logger
from storage.redis_client import RedisClient
from timeline.errors import ConfigurationError, UnknownTimelineError
from timeline.sensor import Timeline
from timeline.strategies import build_strategy


class TimelineRegistry:
    def __init__(self, client: RedisClient):
        self._client = client
        self._timelines: dict[str, Timeline] = {}
        self.log = get_logger("timeline-registry")

    @classmethod
    def from_settings(cls, settings: Settings, client: RedisClient, **timeline_kwargs) -> "TimelineRegistry":
        registry = cls(client)
        for definition in settings.timelines:
            registry.create(definition, **timeline_kwargs)
        return registry

    def create(self, definition: TimelineDefinition, **timeline_kwargs) -> Timeline:
        sensor = Timeline(
            definition.name,
            self._client,
            build_strategy(definition.strategy, definition.percentile),
            interval=definition.interval,
            ttl=definition.ttl,
            raw_data_ttl=definition.raw_data_ttl,
            reduce_delay=definition.reduce_delay,
            **timeline_kwargs,
        )
        return self.register(sensor)

    def register(self, sensor: Timeline) -> Timeline:
        if sensor.name in self._timelines:
            raise ConfigurationError(f"timeline {sensor.name!r} is already registered")
        self._timelines[sensor.name] = sensor
        self.log.info("timeline_registered", sensor=sensor.name, strategy=sensor.strategy.name)
        return sensor

    def get(self, name: str) -> Timeline:
        try:
            return self._timelines[name]
        except KeyError:
            raise UnknownTimelineError(name) from None

    def unregister(self, name: str) -> Timeline:
        sensor = self.get(name)
        del self._timelines[name]
        return sensor

    def cleanup(self, name: str) -> int:
        """Delete all data of a timeline and forget it."""
        removed = self.get(name).cleanup()
        self.unregister(name)
        return removed

    def reduce_all_raw(self) -> dict[str, int]:
        """
        Run ``reduce_all_raw`` on every timeline.

        A store failure on one sensor is logged and the sweep moves on;
        the next scheduled sweep picks the sensor up again.
        """
        results = {}
        for name, sensor in list(self._timelines.items()):
            try:
                results[name] = sensor.reduce_all_raw()
            except redis.RedisError as e:
                self.log.error("sweep_failed", sensor=name, error=str(e))
        return results

    def __contains__(self, name: str) -> bool:
        return name in self._timelines

    def __iter__(self):
        return iter(list(self._timelines.values()))

    def __len__(self) -> int:
        return len(self._timelines)

    @property
    def names(self) -> list[str]:
        return sorted(self._timelines)
