"""Error types shared across leaderrun.

Store failures are recovered inside the election engine and never end a run;
command errors are reported by the lifecycle glue and never reach the engine.
"""

from __future__ import annotations


class LeaderRunError(Exception):
    """Base class for leaderrun errors."""


class LockError(LeaderRunError):
    """The lock store could not be read or written."""

    def __init__(self, message: str, lock: str | None = None):
        self.lock = lock
        super().__init__(f"{lock}: {message}" if lock else message)


class LockNotFoundError(LockError):
    """The lock resource holds no record yet."""


class CommandError(LeaderRunError):
    """A command template could not be turned into a command line."""

    def __init__(self, message: str, template: str):
        self.template = template
        super().__init__(f"{message}: {template}")
