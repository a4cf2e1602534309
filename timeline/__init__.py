from .clock import IntervalClock
from .errors import ConfigurationError, InvalidRangeError, TimelineError, UnknownTimelineError
from .options import TimelineOptions
from .registry import TimelineRegistry
from .sensor import MAX_TIMESPAN_POINTS, SensorData, Timeline
from .strategies import (
    AggregationStrategy,
    AverageStrategy,
    CounterStrategy,
    MaxStrategy,
    MedianStrategy,
    MinStrategy,
    PercentileStrategy,
    SumStrategy,
    build_strategy,
)

__all__ = [
    "AggregationStrategy",
    "AverageStrategy",
    "ConfigurationError",
    "CounterStrategy",
    "IntervalClock",
    "InvalidRangeError",
    "MAX_TIMESPAN_POINTS",
    "MaxStrategy",
    "MedianStrategy",
    "MinStrategy",
    "PercentileStrategy",
    "SensorData",
    "SumStrategy",
    "Timeline",
    "TimelineError",
    "TimelineOptions",
    "TimelineRegistry",
    "UnknownTimelineError",
    "build_strategy",
]
