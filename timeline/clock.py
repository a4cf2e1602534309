"""Maps wall-clock time to fixed-width interval ids."""

import time
from typing import Callable

from timeline.errors import ConfigurationError


class IntervalClock:
    """An interval id is the unix time of its bucket's lower bound."""

    __slots__ = ("width", "_now")

    def __init__(self, width: int, now: Callable[[], float] = time.time):
        if isinstance(width, bool) or not isinstance(width, int) or width <= 0:
            raise ConfigurationError(f"interval width must be a positive integer, got {width!r}")
        self.width = width
        self._now = now

    def now(self) -> float:
        return self._now()

    def interval_id(self, timestamp: float) -> int:
        return int(timestamp // self.width) * self.width

    def current_interval_id(self) -> int:
        return self.interval_id(self._now())
