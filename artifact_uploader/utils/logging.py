"""
Logging utilities for the artifact uploader.

Provides module loggers, a JSON formatter for pipeline log shipping, per-run
correlation IDs and an entry/exit decorator for the public upload operations.

Features:
    - Structured JSON logging when LOG_FORMAT=json
    - Colorized console output via coloredlogs otherwise
    - Correlation ID shared by every record of one upload run
    - Entry/exit decorator with timing

Example usage:
    >>> from artifact_uploader.utils.logging import get_logger, log_function_call
    >>>
    >>> logger = get_logger(__name__)
    >>>
    >>> @log_function_call
    >>> def list_existing(prefix: str) -> list:
    >>>     logger.info("Listing objects", extra={"prefix": prefix})
    >>>     return []
"""

import logging
import functools
import json
import os
import time
import uuid
from typing import Any, Callable, TypeVar, cast, Optional, Dict
from datetime import datetime, timezone
from contextvars import ContextVar

import coloredlogs

# Type variable for generic decorator typing
F = TypeVar("F", bound=Callable[..., Any])

# Correlation ID of the upload run in progress
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_RECORD_KEYS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "getMessage",
        "message",
        "asctime",
    ]
)

# Extra keys that must never reach a log sink
_REDACTED_KEYS = frozenset(["authorization", "authorization_token", "application_key"])


def json_logging_enabled() -> bool:
    """Return True when LOG_FORMAT selects JSON output."""
    return os.getenv("LOG_FORMAT", "text").lower() == "json"


# ============================================================================
# Correlation ID Management
# ============================================================================

def get_correlation_id() -> str:
    """
    Get current correlation ID or generate a new one.

    Returns:
        Current correlation ID (generates UUID if not set)
    """
    corr_id = _correlation_id.get()
    if corr_id is None:
        corr_id = str(uuid.uuid4())
        _correlation_id.set(corr_id)
    return corr_id


def set_correlation_id(corr_id: str) -> None:
    """
    Set correlation ID for current context.

    Args:
        corr_id: Correlation ID to set, usually one per upload run
    """
    _correlation_id.set(corr_id)


def clear_correlation_id() -> None:
    """Clear correlation ID for current context."""
    _correlation_id.set(None)


# ============================================================================
# JSON Formatter
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Example output:
        {
            "timestamp": "2026-10-19T10:30:15.123456+00:00",
            "level": "WARNING",
            "logger": "artifact_uploader.uploader.orchestrator",
            "message": "Provider error in LIST_EXISTING",
            "correlation_id": "5b0c...",
            "extra": {"status": 503, "kind": "service_unavailable"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON string.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
            "where": f"{record.module}:{record.lineno}",
        }

        extra_fields = {
            key: "***" if key.lower() in _REDACTED_KEYS else value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info and record.exc_info[0] is not None:
            log_data["error"] = {
                "type": record.exc_info[0].__name__,
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", enable_colors: bool = True) -> None:
    """
    Configure global logging settings for the uploader.

    JSON output is selected by the LOG_FORMAT environment variable; otherwise
    text output is used, colorized with coloredlogs when enable_colors is set.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_colors: Whether to enable colorized console output (default: True)

    Example:
        >>> setup_logging(level="DEBUG")
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    if json_logging_enabled():
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(console_handler)
    elif enable_colors:
        coloredlogs.install(
            level=log_level,
            fmt=LOG_FORMAT,
            datefmt=LOG_DATE_FORMAT,
            logger=root_logger,
        )
    else:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_function_call(func: F) -> F:
    """
    Decorator that logs function entry and exit with parameters and timing.

    Arguments are rendered with repr(), so types passed through decorated
    functions must keep secrets out of their repr.

    Args:
        func: Function to be decorated

    Returns:
        Wrapped function with logging

    Example:
        >>> @log_function_call
        >>> def upload_files(subdirectory: str, file_paths: list) -> object:
        >>>     ...
        >>>
        >>> # 2026-10-19 10:30:15 - artifact_uploader.uploader.orchestrator - DEBUG - ENTER upload_files(...)
        >>> # 2026-10-19 10:30:16 - artifact_uploader.uploader.orchestrator - DEBUG - EXIT upload_files -> ... (1.23s)
    """
    logger = get_logger(func.__module__)
    name = func.__name__

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        arg_names = func.__code__.co_varnames[: func.__code__.co_argcount]
        rendered = [f"{arg}={value!r}" for arg, value in zip(arg_names, args)]
        rendered += [f"{arg}={value!r}" for arg, value in kwargs.items()]
        logger.debug(f"ENTER {name}({', '.join(rendered)})", extra={"operation": name, "phase": "enter"})

        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as error:
            elapsed = time.perf_counter() - started
            logger.error(
                f"ERROR {name} raised {type(error).__name__}: {error}",
                extra={"operation": name, "phase": "error", "duration_seconds": elapsed},
                exc_info=True,
            )
            raise

        elapsed = time.perf_counter() - started
        logger.debug(
            f"EXIT {name} -> {result!r} ({elapsed:.2f}s)",
            extra={"operation": name, "phase": "exit", "duration_seconds": elapsed},
        )
        return result

    return cast(F, wrapper)
