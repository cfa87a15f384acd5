"""structlog configuration for the automation service."""
from __future__ import annotations

import logging
from typing import Any

import structlog

from ..config import get_settings


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog; JSON output outside dev unless told otherwise."""
    settings = get_settings()
    log_level = getattr(logging, (level or settings.observability.log_level).upper(), logging.INFO)
    if json_output is None:
        json_output = settings.environment != "dev"

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    processors.append(structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer())

    logging.basicConfig(level=log_level, format="%(message)s")
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=False,
    )


__all__ = ["configure_logging"]
