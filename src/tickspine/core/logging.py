"""
Structured logging for tickspine.

Configuration Flow:
    ::

        ┌────────────────────────────────────────────────────────────┐
        │ configure_logging(level="INFO", json_format=True,          │
        │                   service="tickspine")                     │
        │                                                             │
        │     ↓                                                       │
        │ structlog configured with processor chain:                  │
        │   1. TimeStamper (iso)                                      │
        │   2. merge_contextvars (job / trigger context)              │
        │   3. add_log_level, add_logger_name                         │
        │   4. service metadata                                       │
        │   5. JSONRenderer (or ConsoleRenderer for a tty)            │
        └────────────────────────────────────────────────────────────┘

Usage:
    >>> from tickspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", service="tickspine")
    >>> logger = get_logger(__name__)
    >>> logger.info("job_enqueued", queue="data-collection", job_id="01H...")

    Scoped context for everything logged while a job runs:

    >>> with LogContext(queue="data-collection", job_id="01H..."):
    ...     logger.info("handler_started")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "tickspine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "tickspine",
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in every log line
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    renderer: Processor
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs on this thread/task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(trigger_id="candles-1m"):
            logger.info("trigger_fired")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
