"""Leader service: runs an election and reacts to it with commands.

The service joins the election and runs the configured commands:
- ``exec_start`` when this participant starts leading
- ``exec_stop`` when it stops leading (and once more on shutdown)
- ``exec_elect`` whenever a new leader is observed

The election can be followed for as long as a stop event is unset, or for
as long as a companion process named by a PID file is alive. When a run
ends by itself (leadership lost) the service rejoins as a candidate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Any

import psutil

from leaderrun.config import Settings
from leaderrun.election import ElectionConfig, LeaderElector, ResourceLock
from leaderrun.lifecycle.commands import CommandRunner, ExecContext
from leaderrun.observability.logging import LogContext

logger = logging.getLogger(__name__)


def read_pid_file(path: str | Path) -> int | None:
    """Read the PID on the first line of a PID file.

    Returns None (and logs why) if the file is missing or unreadable, or if
    it does not start with a positive number.
    """
    try:
        content = Path(path).read_text()
    except FileNotFoundError:
        logger.warning(f"Waiting for file: {path}")
        return None
    except PermissionError:
        logger.error(f"Access denied while reading: {path}")
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read {path}: {e}")
        return None

    first_line = content.strip().splitlines()[0] if content.strip() else ""
    try:
        pid = int(first_line)
    except ValueError:
        logger.warning(f"No PID in file: {path}")
        return None

    if pid <= 0:
        logger.warning(f"Invalid PID {pid} in file: {path}")
        return None
    return pid


def process_alive(process: psutil.Process) -> bool:
    """Check that a process is still running (zombies count as exited)."""
    try:
        return process.is_running() and process.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return process.is_running()


class LeaderService:
    """Election participant wired to event commands.

    Args:
        settings: Identity, timing and commands
        lock: This participant's handle on the shared lock
        runner: Command runner (a new one if None)
    """

    def __init__(
        self,
        settings: Settings,
        lock: ResourceLock,
        runner: CommandRunner | None = None,
    ) -> None:
        self.settings = settings
        self.identity = settings.identity
        self.lock = lock
        self.runner = runner or CommandRunner()

        self.config = ElectionConfig(
            identity=settings.identity,
            lease_duration=settings.lease_duration,
            renew_deadline=settings.renew_deadline,
            retry_period=settings.retry_period,
        )
        self.elector = LeaderElector(self.config, lock)
        self.elector.callbacks.add_started_leading(self._on_started_leading)
        self.elector.callbacks.add_stopped_leading(self._on_stopped_leading)
        self.elector.callbacks.add_new_leader(self._on_new_leader)

    def _on_started_leading(self) -> None:
        logger.info(f"Started Leading: {self.identity}")
        self.runner.spawn(self.settings.exec_start, ExecContext(id=self.identity))

    def _on_stopped_leading(self) -> None:
        logger.info(f"Stopped Leading: {self.identity}")
        self.runner.spawn(self.settings.exec_stop, ExecContext(id=self.identity))

    def _on_new_leader(self, leader_id: str) -> None:
        logger.info(f"Elected Leader: {leader_id}")
        self.runner.spawn(
            self.settings.exec_elect,
            ExecContext(id=self.identity, leader_id=leader_id),
        )

    async def run_until(self, stop: asyncio.Event) -> None:
        """Take part in the election until ``stop`` is set."""
        logger.info(f"Started: {self.identity}")
        await self._elect_until(stop.wait())
        logger.info(f"Stopped {self.identity}")

    async def monitor_pid_file(self, path: str | Path) -> None:
        """Take part in the election while the process in ``path`` lives.

        Loops forever: waits for a readable PID file naming a live
        process, runs the election until that process exits, repeats.
        """
        interval = self.settings.pid_poll_interval
        while True:
            pid = read_pid_file(path)
            if pid is None:
                await asyncio.sleep(interval)
                continue

            try:
                process = psutil.Process(pid)
                name = process.name()
            except (psutil.NoSuchProcess, ValueError):
                process = None
            except psutil.AccessDenied:
                logger.error(f"Access denied to process({pid})")
                await asyncio.sleep(interval)
                continue

            if process is None or not process_alive(process):
                logger.warning(f"No such process({pid})")
                await asyncio.sleep(interval)
                continue

            logger.info(f"Started. Id: {self.identity}, Monitor: {name}, PID: {pid}")
            await self._elect_until(self._wait_for_exit(process))
            logger.info("Stopped. Process exited.")

    async def _wait_for_exit(self, process: psutil.Process) -> None:
        while process_alive(process):
            await asyncio.sleep(self.settings.pid_poll_interval)

    async def _elect_until(self, done: Awaitable[Any]) -> None:
        """Run the election until ``done`` completes, rejoining after losses."""
        waiter = asyncio.ensure_future(done)
        election: asyncio.Task[None] | None = None
        try:
            with LogContext(identity=self.identity, lock=self.lock.describe()):
                while not waiter.done():
                    election = asyncio.create_task(self.elector.run())
                    await asyncio.wait({election, waiter}, return_when=asyncio.FIRST_COMPLETED)
                    if election.done() and not election.cancelled():
                        if election.exception() is not None:
                            logger.error(f"Election failed: {election.exception()!r}")
                        elif not waiter.done():
                            logger.info(f"Rejoining election for {self.lock.describe()}")
        finally:
            for task in (election, waiter):
                if task is not None and not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

    async def test_commands(self) -> None:
        """Run the elect, start and stop commands once, in that order."""
        await self.runner.run(
            self.settings.exec_elect,
            ExecContext(id=self.identity, leader_id=self.identity),
        )
        await self.runner.run(self.settings.exec_start, ExecContext(id=self.identity))
        await self.runner.run(self.settings.exec_stop, ExecContext(id=self.identity))

    async def shutdown(self) -> None:
        """Run the stop command and stop watching spawned commands."""
        await self.runner.run(self.settings.exec_stop, ExecContext(id=self.identity))
        await self.runner.close()
