"""structlog setup for the service and CLI."""

from __future__ import annotations

import logging

import structlog

LOG_LEVELS = ("debug", "info", "warning", "error")


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with a level filter and a JSON or console renderer.

    Args:
        level: One of debug, info, warning, error.
        fmt: "json" for machine-readable lines, "console" for development.
    """
    level = level.lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        cache_logger_on_first_use=False,
    )
