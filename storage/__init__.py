from .redis_client import CircuitBreaker, CircuitOpenError, RedisClient

__all__ = ["CircuitBreaker", "CircuitOpenError", "RedisClient"]
