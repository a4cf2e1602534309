"""Timelined sensor, a series of values, one per consecutive time interval.

Events land in a raw bucket for the current interval (sliding ``raw_data_ttl``).
A periodic sweep reduces each finished bucket to one summarized value that
lives for ``ttl`` seconds. Range queries read summarized values and fall back
to summarizing raw buckets in memory for intervals not reduced yet.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from config import get_logger
from storage.redis_client import RedisClient
from timeline.clock import IntervalClock
from timeline.errors import InvalidRangeError
from timeline.options import validate_name, validate_options
from timeline.strategies import AggregationStrategy

MAX_TIMESPAN_POINTS = 1000


@dataclass(frozen=True)
class SensorData:
    timestamp: int
    value: Any = None  # None: no raw or summarized data for the interval

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "value": self.value}


def to_epoch(moment) -> int:
    """Whole unix seconds for a ``datetime`` or a real number.

    Naive datetimes are taken as UTC so bucketing does not depend on the host timezone.
    """
    if isinstance(moment, datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return math.floor(moment.timestamp())
    if isinstance(moment, bool) or not isinstance(moment, (int, float)):
        raise InvalidRangeError(f"expected datetime or unix timestamp, got {moment!r}")
    if not math.isfinite(moment):
        raise InvalidRangeError(f"timestamp must be finite, got {moment!r}")
    return math.floor(moment)


def _bounds(start, end) -> tuple[int, int]:
    start_time, end_time = to_epoch(start), to_epoch(end)
    if start_time >= end_time:
        raise InvalidRangeError(f"range start {start_time} must precede end {end_time}")
    return start_time, end_time


class Timeline:
    """
    One named sensor backed by Redis.

    Keys:
      <namespace>:raw:<name>:<interval_id>   raw bucket, owned by the strategy
      <namespace>:data:<name>:<interval_id>  summarized scalar
    """

    def __init__(
        self,
        name: str,
        client: RedisClient,
        strategy: AggregationStrategy,
        *,
        interval: int | None = None,
        ttl: int | None = None,
        raw_data_ttl: int | None = None,
        reduce_delay: int | None = None,
        now: Callable[[], float] = time.time,
    ):
        self.name = validate_name(name)
        self.options = validate_options(
            interval=interval,
            ttl=ttl,
            raw_data_ttl=raw_data_ttl,
            reduce_delay=reduce_delay,
        )
        self.strategy = strategy
        self.clock = IntervalClock(self.options.interval, now)
        self._client = client
        self._namespace = client.namespace
        self.log = get_logger("timeline", sensor=name)

    @property
    def interval(self) -> int:
        return self.options.interval

    @property
    def ttl(self) -> int:
        return self.options.ttl

    @property
    def raw_data_ttl(self) -> int:
        return self.options.raw_data_ttl

    @property
    def reduce_delay(self) -> int:
        return self.options.reduce_delay

    # ─── Keys ───────────────────────────────────────────────────────

    def raw_data_key(self, interval_id) -> str:
        return f"{self._namespace}:raw:{self.name}:{interval_id}"

    def data_key(self, interval_id) -> str:
        return f"{self._namespace}:data:{self.name}:{interval_id}"

    def current_raw_data_key(self) -> str:
        return self.raw_data_key(self.clock.current_interval_id())

    def _raw_keys(self, r) -> list[str]:
        return list(r.scan_iter(match=self.raw_data_key("*"), count=100))

    def _data_keys(self, r) -> list[str]:
        return list(r.scan_iter(match=self.data_key("*"), count=100))

    # ─── Recording ──────────────────────────────────────────────────

    def event(self, value=None):
        """Fold one event into the current interval's raw bucket."""
        key = self.current_raw_data_key()

        def _build(pipe):
            self.strategy.combine(pipe, key, value)
            pipe.expire(key, self.raw_data_ttl)

        self._client.atomic(_build)
        self.log.debug("event_recorded", key=key)

    record = event

    # ─── Reduction ──────────────────────────────────────────────────

    def reduce(self, interval_id: int) -> bool:
        """Replace an interval's raw bucket with its summarized value.

        Returns False without writing anything when the raw bucket is gone,
        so repeated calls are harmless.
        """
        raw_key = self.raw_data_key(interval_id)
        data_key = self.data_key(interval_id)

        def _summarize(r):
            if not r.exists(raw_key):
                return False, None
            return True, self.strategy.summarize(r, raw_key)

        present, summary = self._client.execute(_summarize)
        if not present:
            return False

        def _build(pipe):
            pipe.delete(raw_key)
            if summary is not None:
                pipe.set(data_key, summary)
                pipe.expire(data_key, self.ttl)

        self._client.atomic(_build)
        self.log.info("interval_reduced", interval_id=int(interval_id), value=summary)
        return True

    def reduce_all_raw(self) -> int:
        """Reduce every raw bucket old enough that no late events are expected."""
        min_time = self.clock.now() - self.reduce_delay - self.interval
        reduced = 0
        for key in self._client.execute(self._raw_keys):
            interval_id = int(key.rsplit(":", 1)[1])
            if interval_id > min_time:
                continue
            if self.reduce(interval_id):
                reduced += 1
        if reduced:
            self.log.info("raw_sweep_done", reduced=reduced)
        return reduced

    # ─── Queries ────────────────────────────────────────────────────

    def optimized_interval(self, start_time: int, end_time: int) -> int:
        """Smallest power-of-two multiple of the interval keeping the range under MAX_TIMESPAN_POINTS."""
        width = self.interval
        timespan = end_time - start_time
        while timespan / width > MAX_TIMESPAN_POINTS - 1:
            width *= 2
        return width

    def timeline(self, time_ago: int) -> list[SensorData]:
        """Values for the last ``time_ago`` seconds."""
        if isinstance(time_ago, bool) or not isinstance(time_ago, (int, float)) or time_ago <= 0:
            raise InvalidRangeError(f"time_ago must be a positive number, got {time_ago!r}")
        now = self.clock.now()
        return self.timeline_within(now - time_ago, now)

    def timeline_within(self, start, end) -> list[SensorData]:
        """
        One SensorData per step of the optimized interval, oldest first.

        The bucket containing ``start`` is excluded; steps run while below ``end``.
        """
        start_time, end_time = _bounds(start, end)
        width = self.optimized_interval(start_time, end_time)
        ids = list(range(self.clock.interval_id(start_time) + width, end_time, width))
        if not ids:
            return []

        values = self._client.execute(lambda r: r.mget([self.data_key(i) for i in ids]))
        result = []
        for interval_id, stored in zip(ids, values):
            if stored is None:
                result.append(self.get_raw_value(interval_id))
            else:
                result.append(SensorData(interval_id, self.strategy.parse(stored)))
        return result

    def get_raw_value(self, interval_id: int) -> SensorData:
        """Summarize a raw bucket in memory without persisting or deleting it."""
        raw_key = self.raw_data_key(interval_id)

        def _read(r):
            if not r.exists(raw_key):
                return None
            return self.strategy.summarize(r, raw_key)

        return SensorData(interval_id, self._client.execute(_read))

    # ─── Deletion ───────────────────────────────────────────────────

    def drop_within(self, start, end) -> int:
        """Delete raw and summarized data in the range; returns the number of keys removed."""
        start_time, end_time = _bounds(start, end)
        keys = []
        for interval_id in range(
            self.clock.interval_id(start_time) + self.interval, end_time, self.interval
        ):
            keys.append(self.data_key(interval_id))
            keys.append(self.raw_data_key(interval_id))
        if not keys:
            return 0
        removed = self._client.execute(lambda r: r.delete(*keys))
        self.log.info("range_dropped", start=start_time, end=end_time, removed=removed)
        return removed

    def cleanup(self) -> int:
        """Delete every raw and summarized key of this sensor."""
        keys = self._client.execute(lambda r: self._raw_keys(r) + self._data_keys(r))

        def _build(pipe):
            for key in keys:
                pipe.delete(key)

        removed = sum(self._client.atomic(_build)) if keys else 0
        self.log.info("timeline_cleaned", removed=removed)
        return removed

    def __repr__(self) -> str:
        return (
            f"Timeline(name={self.name!r}, strategy={self.strategy.name!r}, "
            f"interval={self.interval}, ttl={self.ttl})"
        )
