"""Exceptions raised by timeline sensors."""


class TimelineError(Exception):
    pass


class ConfigurationError(TimelineError, ValueError):
    """Sensor options, name or strategy are invalid. Raised before any store access."""


class InvalidRangeError(TimelineError, ValueError):
    """Query bounds are not time values or are out of order."""


class UnknownTimelineError(TimelineError, KeyError):
    pass
