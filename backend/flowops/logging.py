"""structlog configuration.

Console rendering during development, one JSON object per line otherwise.
Request-scoped context (request id, method, path) is bound through
contextvars by the logging middleware.
"""

import logging

import structlog

from flowops.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog once for the process."""
    level = getattr(logging, settings.log_level)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_json or not settings.is_development:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
