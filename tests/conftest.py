"""Shared test fixtures."""

import fakeredis
import pytest

from config import Settings
from storage.redis_client import RedisClient
from timeline import SumStrategy, Timeline

# Lower bound of a 60 s bucket
T0 = 1_700_000_040


class FakeClock:
    """Callable standing in for ``time.time``."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def settings():
    """Test settings with localhost defaults."""
    return Settings(
        redis_url="redis://localhost:6379/1",
        log_level="WARNING",
    )


@pytest.fixture
def conn():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def client(settings, conn):
    return RedisClient(settings, connection=conn)


@pytest.fixture
def clock():
    return FakeClock(T0 + 5)


@pytest.fixture
def make_timeline(client, clock):
    def _make(name="requests", strategy=None, **options):
        options.setdefault("interval", 60)
        options.setdefault("ttl", 3600)
        options.setdefault("raw_data_ttl", 120)
        options.setdefault("reduce_delay", 30)
        return Timeline(name, client, strategy or SumStrategy(), now=clock, **options)

    return _make


@pytest.fixture
def t0():
    return T0
