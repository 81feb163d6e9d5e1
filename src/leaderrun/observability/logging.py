"""Logging setup for leaderrun processes.

Provides:
- JSON-formatted logs for log aggregation systems (ELK, Loki, etc.)
- Human-readable console logs for interactive use
- Election context (identity, lock) attached to every record

Usage:
    from leaderrun.observability.logging import LogContext, configure_logging

    configure_logging(json_format=False, level="INFO")

    with LogContext(identity="pod-a", lock="default/jobs"):
        await elector.run()  # Records include identity and lock
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Context variables for election correlation
identity_var: contextvars.ContextVar[str] = contextvars.ContextVar("identity", default="")
lock_var: contextvars.ContextVar[str] = contextvars.ContextVar("lock", default="")

# Standard LogRecord attributes that are not copied as extra fields
_STANDARD_ATTRS = {
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
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


class JsonFormatter(logging.Formatter):
    """JSON log formatter with election context.

    Output format:
    {
        "timestamp": "2026-01-10T12:34:56.789Z",
        "level": "INFO",
        "logger": "leaderrun.election.elector.pod-a",
        "message": "Started leading default/jobs",
        "identity": "pod-a",
        "lock": "default/jobs"
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        identity = identity_var.get()
        if identity:
            log_data["identity"] = identity

        lock = lock_var.get()
        if lock:
            log_data["lock"] = lock

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)  # Verify it's JSON serializable
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter.

    Output format:
    2026-01-10 12:34:56 | INFO     | elector.pod-a | Started leading default/jobs
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            level = f"{color}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        # Module path minus the package prefix keeps lines short
        category = record.name.removeprefix("leaderrun.").removeprefix("election.")
        message = record.getMessage()

        result = f"{timestamp} | {level} | {category} | {message}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def configure_logging(
    json_format: bool = False,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Configure process-wide logging.

    Args:
        json_format: Use JSON format (for log aggregation)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_colors: Use ANSI colors in console format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class LogContext:
    """Context manager for adding election context to logs.

    Usage:
        with LogContext(identity="pod-a", lock="default/jobs"):
            logger.info("Acquiring")  # Includes identity and lock
    """

    def __init__(self, identity: str | None = None, lock: str | None = None) -> None:
        self.identity = identity
        self.lock = lock
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> "LogContext":
        if self.identity is not None:
            self._tokens.append((identity_var, identity_var.set(self.identity)))
        if self.lock is not None:
            self._tokens.append((lock_var, lock_var.set(self.lock)))
        return self

    def __exit__(self, *args: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
