"""Redis client with connection pooling and circuit breaker.

This is the store adapter every timeline talks to. It deliberately does not
retry: store failures reach the caller, and schedulers decide what to do.
"""

import time
from typing import Any, Callable

import redis

from config import Settings, configure_logging, is_key_segment


class CircuitBreaker:
    """
    Three-state circuit breaker: CLOSED → OPEN → HALF_OPEN.

    CLOSED: Normal operation. Track consecutive failures.
    OPEN:   After failure_threshold failures, reject all calls immediately.
    HALF_OPEN: After recovery_timeout, allow one test call through.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.state = "closed"
        self.failure_count = 0
        self.last_failure_time = 0.0

    def can_execute(self) -> bool:
        if self.state == "closed":
            return True
        if self.state == "open":
            if self._clock() - self.last_failure_time > self.recovery_timeout:
                self.state = "half_open"
                return True
            return False
        return True

    def record_success(self):
        self.failure_count = 0
        self.state = "closed"

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = self._clock()
        # a failed probe in half_open reopens immediately
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self.state = "open"


class CircuitOpenError(redis.ConnectionError):
    """Raised without touching Redis while the breaker is open."""


class RedisClient:
    """Redis wrapper shared by all timelines of a process.

    Pass ``connection`` to run against an existing ``redis.Redis`` instead of
    building a pool from ``settings.redis_url``.
    """

    def __init__(self, settings: Settings, connection: redis.Redis | None = None):
        self.log = configure_logging("redis-client", settings.log_level)
        if not is_key_segment(settings.key_namespace):
            raise ValueError(f"invalid key namespace: {settings.key_namespace!r}")
        self.namespace = settings.key_namespace
        self._pool = None
        self._connection = connection
        if connection is None:
            self._pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                max_connections=settings.redis_pool_size,
                decode_responses=True,
            )
            self.log.info(
                "redis_pool_created",
                url=settings.redis_url,
                pool_size=settings.redis_pool_size,
            )
        self._circuit = CircuitBreaker(failure_threshold=5, recovery_timeout=30)

    def get_client(self) -> redis.Redis:
        if self._connection is not None:
            return self._connection
        return redis.Redis(connection_pool=self._pool)

    def execute(self, func: Callable[[redis.Redis], Any]) -> Any:
        """Run one Redis operation under the circuit breaker.

        Connection and timeout errors are counted against the breaker and
        re-raised; nothing is retried here.
        """
        if not self._circuit.can_execute():
            raise CircuitOpenError("Redis circuit breaker is OPEN, failing fast")
        try:
            result = func(self.get_client())
        except (redis.ConnectionError, redis.TimeoutError) as e:
            self._circuit.record_failure()
            self.log.warning(
                "redis_call_failed",
                error=str(e),
                circuit=self._circuit.state,
            )
            raise
        self._circuit.record_success()
        return result

    def atomic(self, build: Callable[[redis.client.Pipeline], None]) -> list:
        """Queue commands via ``build`` and run them as one MULTI/EXEC batch."""

        def _op(r):
            pipe = r.pipeline(transaction=True)
            build(pipe)
            return pipe.execute()

        return self.execute(_op)

    def ping(self) -> bool:
        try:
            return self.execute(lambda r: r.ping())
        except redis.RedisError:
            return False

    def close(self):
        if self._pool is not None:
            self._pool.disconnect()
            self.log.info("redis_pool_closed")

    @property
    def circuit_state(self) -> str:
        return self._circuit.state
