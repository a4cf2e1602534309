"""FastAPI dependency injection."""

from fastapi import Depends, HTTPException, Request

from storage.redis_client import RedisClient
from timeline import Timeline, TimelineRegistry, UnknownTimelineError


def get_redis(request: Request) -> RedisClient:
    return request.app.state.redis


def get_registry(request: Request) -> TimelineRegistry:
    return request.app.state.registry


def get_timeline(name: str, registry: TimelineRegistry = Depends(get_registry)) -> Timeline:
    try:
        return registry.get(name)
    except UnknownTimelineError:
        raise HTTPException(status_code=404, detail=f"unknown timeline {name!r}") from None
