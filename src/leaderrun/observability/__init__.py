"""Observability module for leaderrun.

Provides logging configuration with election context (identity, lock).
"""

from leaderrun.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    identity_var,
    lock_var,
)

__all__ = [
    "configure_logging",
    "ConsoleFormatter",
    "JsonFormatter",
    "LogContext",
    "identity_var",
    "lock_var",
]
