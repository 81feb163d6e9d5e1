"""Command execution for leadership events.

Command templates may reference ``{Id}`` (this participant) and
``{LeaderId}`` (the newly elected leader):

    notify-leader --me {Id} --leader {LeaderId}

Commands are split shell-style and started without a shell. Spawned
commands are watched in the background; a non-zero exit code is logged.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass

from leaderrun.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecContext:
    """Values available to command templates."""

    id: str
    leader_id: str = ""

    def as_mapping(self) -> dict[str, str]:
        return {"Id": self.id, "LeaderId": self.leader_id}


def format_command(template: str, context: ExecContext) -> str:
    """Substitute ``{Id}`` and ``{LeaderId}`` in a template.

    Raises:
        CommandError: unknown placeholder or malformed template
    """
    try:
        return template.format_map(context.as_mapping())
    except KeyError as e:
        raise CommandError(f"Unknown placeholder {e}", template) from e
    except (IndexError, ValueError) as e:
        raise CommandError(f"Failed to format command ({e})", template) from e


def split_command(command: str) -> list[str]:
    """Split a command line into program and arguments."""
    try:
        args = shlex.split(command)
    except ValueError as e:
        raise CommandError(f"Failed to parse command ({e})", command) from e

    if not args:
        raise CommandError("Empty command", command)
    return args


class CommandRunner:
    """Starts event commands and tracks their watchers."""

    def __init__(self) -> None:
        self._watchers: set[asyncio.Task[int | None]] = set()

    def spawn(self, template: str | None, context: ExecContext) -> asyncio.Task[int | None] | None:
        """Start a command in the background.

        Returns the watcher task, or None if there is nothing to run.
        Safe to call from synchronous event handlers on the running loop.
        """
        if not template:
            return None

        task = asyncio.get_running_loop().create_task(self.run(template, context))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return task

    async def run(self, template: str | None, context: ExecContext) -> int | None:
        """Run a command and wait for it to exit.

        Returns the exit code, or None if the command was empty or could
        not be started. Errors are logged, never raised.
        """
        if not template:
            return None

        try:
            command = format_command(template, context)
            args = split_command(command)
        except CommandError as e:
            logger.error(str(e))
            return None

        logger.info(f"Exec: {command}")
        try:
            process = await asyncio.create_subprocess_exec(*args)
        except OSError as e:
            logger.error(f"Failed to exec: {command} ({e})")
            return None

        code = await process.wait()
        if code != 0:
            logger.error(f"Command exit with code {code}: {command}")
        return code

    @property
    def pending_count(self) -> int:
        """Number of spawned commands still running."""
        return len(self._watchers)

    async def close(self) -> None:
        """Stop watching spawned commands. The processes keep running."""
        watchers = list(self._watchers)
        for task in watchers:
            task.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)
        self._watchers.clear()
