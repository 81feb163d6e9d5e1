"""Process lifecycle glue around the election.

Runs commands on leadership events and follows a companion process.
"""

from leaderrun.lifecycle.commands import (
    CommandRunner,
    ExecContext,
    format_command,
    split_command,
)
from leaderrun.lifecycle.service import LeaderService, process_alive, read_pid_file

__all__ = [
    "CommandRunner",
    "ExecContext",
    "LeaderService",
    "format_command",
    "process_alive",
    "read_pid_file",
    "split_command",
]
