"""Validated sensor options."""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import is_key_segment
from timeline.errors import ConfigurationError

DEFAULT_RAW_DATA_TTL = 3600
DEFAULT_REDUCE_DELAY = 60


class TimelineOptions(BaseModel):
    model_config = ConfigDict(frozen=True, strict=True)

    interval: int = Field(gt=0, description="Bucket width in seconds")
    ttl: int = Field(gt=0, description="Lifetime of a summarized value")
    raw_data_ttl: int = Field(default=DEFAULT_RAW_DATA_TTL, gt=0)
    reduce_delay: int = Field(default=DEFAULT_REDUCE_DELAY, gt=0)


def validate_options(**options) -> TimelineOptions:
    """Build options, dropping ``None`` so defaults apply to unset values."""
    try:
        return TimelineOptions(**{k: v for k, v in options.items() if v is not None})
    except ValidationError as exc:
        raise ConfigurationError(f"invalid timeline options: {exc}") from exc


def validate_name(name) -> str:
    if not is_key_segment(name):
        raise ConfigurationError(f"invalid sensor name: {name!r}")
    return name
