"""
Structured Logging Configuration

Provides JSON-formatted structured logging for production observability.
Supports both development (human-readable) and production (JSON) modes.

Verbosity is controlled by a filter string of comma separated directives:

    info                                  # root level
    birbs.ingest=debug,uvicorn.access=warning
    warning,birbs=debug                   # mixed
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .core.errors import ConfigurationError

LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": logging.CRITICAL + 10,
}

_RESERVED = {
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
    "message",
}


# ID of the HTTP request being handled in the current context
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamp records with the current request ID unless they carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            request_id = request_id_var.get()
            if request_id is not None:
                record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    Includes standard fields:
    - timestamp: ISO 8601 timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - extras: Additional context fields (request_id, path, line, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Add colors to console logging for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def parse_log_filter(log_filter: str) -> Tuple[int, Dict[str, int]]:
    """
    Parse a verbosity filter into a root level and per-logger levels.

    Args:
        log_filter: Filter string such as ``"info,birbs.ingest=debug"``

    Returns:
        ``(root_level, {logger_name: level})``

    Raises:
        ConfigurationError: A level name is not recognised
    """
    root_level = logging.INFO
    per_logger: Dict[str, int] = {}

    for directive in log_filter.split(","):
        directive = directive.strip()
        if not directive:
            continue
        name, sep, level_name = directive.rpartition("=")
        level = LEVELS.get(level_name.strip().lower())
        if level is None:
            raise ConfigurationError(f"Unknown log level in filter: {directive!r}")
        if sep:
            per_logger[name.strip()] = level
        else:
            root_level = level

    return root_level, per_logger


def configure_logging(log_filter: str = "info", json_format: bool = False) -> None:
    """
    Configure application logging.

    Args:
        log_filter: Verbosity filter (see module docstring)
        json_format: Use JSON formatting (True) or human-readable (False)

    Example:
        configure_logging("debug")
        configure_logging("info,uvicorn.access=warning", json_format=True)
    """
    root_level, per_logger = parse_log_filter(log_filter)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(root_level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = ColoredFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestIdFilter())
    root_logger.addHandler(console_handler)

    # Silence noisy libraries unless asked for
    for noisy in ("httpx", "httpcore", "watchfiles.main"):
        logging.getLogger(noisy).setLevel(max(root_level, logging.WARNING))

    for name, level in per_logger.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Example:
        logger = get_logger(__name__)
        logger.info("Published detection", extra={"common_name": "American Crow"})
    """
    return logging.getLogger(name)
