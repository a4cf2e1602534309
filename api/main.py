"""FastAPI application factory with lifespan management."""

import time
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, configure_logging
from storage.redis_client import RedisClient
from timeline import TimelineRegistry
from api.routers import health, timelines


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    settings = Settings()
    log = configure_logging("api", settings.log_level)

    redis_client = RedisClient(settings)
    registry = TimelineRegistry.from_settings(settings, redis_client)

    # Store in app state for dependency injection
    app.state.redis = redis_client
    app.state.registry = registry
    app.state.start_time = time.time()
    log.info("api_started", timelines=registry.names)

    yield

    redis_client.close()


async def store_unavailable(request: Request, exc: redis.RedisError):
    return JSONResponse(
        status_code=503,
        content={"detail": "store unavailable", "error": type(exc).__name__},
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Pulse Timeline API",
        version="1.0.0",
        description="Interval-bucketed metric timelines backed by Redis",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(redis.RedisError, store_unavailable)

    app.include_router(health.router)
    app.include_router(timelines.router)

    return app


app = create_app()
