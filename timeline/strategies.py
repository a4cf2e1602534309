"""Aggregation strategies: how events fold into a raw bucket and how a bucket is summarized.

A strategy never owns keys. ``combine`` only queues commands on the pipeline
it is handed (the recorder's MULTI/EXEC batch) and ``summarize`` only reads.
Every ``combine`` here is commutative, so concurrent writers may apply events
in any order.
"""

import math
import uuid
from abc import ABC, abstractmethod

import redis

from timeline.errors import ConfigurationError


class AggregationStrategy(ABC):
    name: str = "abstract"

    @abstractmethod
    def combine(self, pipe: redis.client.Pipeline, key: str, value) -> None:
        """Queue the commands folding ``value`` into the raw bucket at ``key``."""

    @abstractmethod
    def summarize(self, conn: redis.Redis, key: str):
        """Reduce the raw bucket at ``key`` to one scalar, or ``None`` if it is empty."""

    def parse(self, stored: str):
        """Decode a summarized value as read back from the store."""
        return float(stored)


def _number(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return value


class CounterStrategy(AggregationStrategy):
    """Counts events; the event value is ignored."""

    name = "counter"

    def combine(self, pipe, key, value=None):
        pipe.incrby(key, 1)

    def summarize(self, conn, key):
        raw = conn.get(key)
        return None if raw is None else int(raw)

    def parse(self, stored):
        return int(stored)


class SumStrategy(AggregationStrategy):
    name = "sum"

    def combine(self, pipe, key, value):
        pipe.incrbyfloat(key, _number(value))

    def summarize(self, conn, key):
        raw = conn.get(key)
        return None if raw is None else float(raw)


class MaxStrategy(AggregationStrategy):
    """Keeps distinct values in a sorted set scored by themselves."""

    name = "max"

    def combine(self, pipe, key, value):
        value = _number(value)
        pipe.zadd(key, {repr(float(value)): value})

    def summarize(self, conn, key):
        top = conn.zrevrange(key, 0, 0, withscores=True)
        return top[0][1] if top else None


class MinStrategy(MaxStrategy):
    name = "min"

    def summarize(self, conn, key):
        bottom = conn.zrange(key, 0, 0, withscores=True)
        return bottom[0][1] if bottom else None


class AverageStrategy(AggregationStrategy):
    name = "average"

    def combine(self, pipe, key, value):
        pipe.hincrbyfloat(key, "sum", _number(value))
        pipe.hincrby(key, "count", 1)

    def summarize(self, conn, key):
        raw = conn.hgetall(key)
        count = int(raw.get("count", 0))
        if not count:
            return None
        return float(raw["sum"]) / count


class PercentileStrategy(AggregationStrategy):
    """
    Stores every event in a sorted set. Members carry a random suffix so equal
    values from different events are not collapsed.
    """

    name = "percentile"

    def __init__(self, percentile: float):
        if not 0 < percentile <= 1:
            raise ConfigurationError(f"percentile must be in (0, 1], got {percentile!r}")
        self.percentile = percentile

    def combine(self, pipe, key, value):
        value = _number(value)
        pipe.zadd(key, {f"{value}:{uuid.uuid4().hex}": value})

    def summarize(self, conn, key):
        count = conn.zcard(key)
        if not count:
            return None
        idx = max(0, math.ceil(count * self.percentile) - 1)
        picked = conn.zrange(key, idx, idx, withscores=True)
        return picked[0][1] if picked else None


class MedianStrategy(PercentileStrategy):
    name = "median"

    def __init__(self):
        super().__init__(0.5)


STRATEGIES: dict[str, type[AggregationStrategy]] = {
    cls.name: cls
    for cls in (
        CounterStrategy,
        SumStrategy,
        MaxStrategy,
        MinStrategy,
        AverageStrategy,
        PercentileStrategy,
        MedianStrategy,
    )
}


def build_strategy(kind: str, percentile: float | None = None) -> AggregationStrategy:
    """Instantiate a strategy by its configuration name."""
    cls = STRATEGIES.get(kind)
    if cls is None:
        raise ConfigurationError(
            f"unknown aggregation strategy {kind!r}; expected one of {sorted(STRATEGIES)}"
        )
    if cls is PercentileStrategy:
        if percentile is None:
            raise ConfigurationError("percentile strategy requires a 'percentile' option")
        return cls(percentile)
    return cls()
