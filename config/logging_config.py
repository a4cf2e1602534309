"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def configure_logging(
    component: str, level: str = "INFO", json_output: bool = True
) -> structlog.BoundLogger:
    """Configure structlog for a process and return a bound logger for the component.

    Services call this once at startup. Library code (timelines, registry)
    uses :func:`get_logger` so that importing it never reconfigures output.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(component=component)


def get_logger(component: str, **context) -> structlog.BoundLogger:
    return structlog.get_logger(component=component, **context)
