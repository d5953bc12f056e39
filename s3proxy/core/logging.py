"""Structured logging built on structlog.

Loggers take an event string plus key/value context:

    logger = get_logger(__name__)
    logger.info("Bucket created", bucket="photos")

Request-scoped values bound with ``log_context`` ride along on every
event emitted from the same task until ``clear_log_context`` is called.
"""
import logging
import sys
from typing import Any

import structlog

from s3proxy.core.config import settings


def setup_logging(level: str | None = None, json_format: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (defaults to settings.log_level)
        json_format: Emit JSON lines instead of console output
            (defaults to settings.log_json, forced on in production)
    """
    level_name = (level or settings.log_level).upper()
    if json_format is None:
        json_format = settings.log_json or settings.is_production

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Any
    if json_format:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level_name)

    # botocore is chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> None:
    """Bind values to every log event of the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_log_context() -> None:
    """Drop all context bound with log_context."""
    structlog.contextvars.clear_contextvars()
