"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, tzinfo

import structlog

from monthend_tracker.timezone_utils import resolve_timezone

SEPARATOR = "=" * 81


class LocalTimeStamper:
    """Stamp events with wall-clock time in the operator's timezone."""

    def __init__(self, tz: tzinfo, key: str = "timestamp") -> None:
        self._tz = tz
        self._key = key

    def __call__(self, logger: object, method_name: str, event_dict: dict) -> dict:
        event_dict[self._key] = datetime.now(self._tz).isoformat(timespec="seconds")
        return event_dict


def _uppercase_level(logger: object, method_name: str, event_dict: dict) -> dict:
    level = event_dict.get("level")
    if isinstance(level, str):
        event_dict["level"] = level.upper()
    return event_dict


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: str = "",
    tz_name: str = "Australia/Sydney",
) -> None:
    """Configure structured logging for the service.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Output format - "json" for production, "console" for development.
        log_file: Optional file path for log output. Empty = stdout only.
        tz_name: IANA timezone used for rendered timestamps.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _uppercase_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        LocalTimeStamper(resolve_timezone(tz_name)),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain enriches records emitted through plain stdlib loggers.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Suppress noisy libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def log_separator(logger: logging.Logger) -> None:
    """Emit a visual separator between trigger firings."""
    logger.info(SEPARATOR)
