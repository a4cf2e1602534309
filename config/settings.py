"""Centralized configuration using pydantic-settings. All values are env-configurable."""

import re

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ":" separates key segments and glob characters would widen SCAN patterns
KEY_SEGMENT_RE = re.compile(r"^[^:*?\[\]\\\s]+$")


def is_key_segment(value) -> bool:
    """True if ``value`` can sit between colons in a Redis key and in a SCAN pattern."""
    return isinstance(value, str) and KEY_SEGMENT_RE.match(value) is not None


class TimelineDefinition(BaseModel):
    """One timeline sensor as declared in configuration."""

    name: str
    strategy: str
    interval: int
    ttl: int
    raw_data_ttl: int | None = None
    reduce_delay: int | None = None
    percentile: float | None = None  # only for strategy="percentile"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PULSE_")

    # Redis
    redis_url: str = "redis://redis:6379/0"
    redis_pool_size: int = 20
    key_namespace: str = "pulse_meter"

    # Reduction
    reduce_sweep_interval_sec: int = 10

    # Sensors, e.g. PULSE_TIMELINES='[{"name": "requests", "strategy": "counter", ...}]'
    timelines: list[TimelineDefinition] = []

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Monitoring
    log_level: str = "INFO"

    @field_validator("key_namespace")
    @classmethod
    def _check_namespace(cls, value: str) -> str:
        if not is_key_segment(value):
            raise ValueError(f"invalid key namespace: {value!r}")
        return value
