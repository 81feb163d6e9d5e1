"""CLI command for joining a leader election.

Usage:
    leaderrun run -m billing-worker -s "systemctl start billing" -x "systemctl stop billing"
    leaderrun run -m billing-worker -p /run/billing.pid -e "echo {LeaderId} leads"
    leaderrun run -m billing-worker -s "echo start {Id}" --test
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import typer
from click.core import ParameterSource

from leaderrun.config import Settings
from leaderrun.election import InMemoryLockStore, RedisLock, ResourceLock
from leaderrun.election.redis_lock import close_redis, get_redis
from leaderrun.lifecycle import LeaderService
from leaderrun.observability import configure_logging

app = typer.Typer(help="Join a leader election and run commands on leadership changes")


async def build_lock(settings: Settings) -> ResourceLock:
    """Create this participant's lock handle for the configured backend."""
    if settings.lock_backend == "memory":
        return InMemoryLockStore().lock(settings.namespace, settings.lock_name)
    if settings.lock_backend == "redis":
        client = await get_redis(settings.redis_url)
        return RedisLock(
            client,
            settings.namespace,
            settings.lock_name,
            key_prefix=settings.lock_key_prefix,
        )
    raise ValueError(f"Unknown lock backend: {settings.lock_backend}")


async def serve(settings: Settings) -> None:
    """Run the service until SIGINT/SIGTERM, then run the exit hook."""
    service = LeaderService(settings, await build_lock(settings))
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        if settings.pid_file:
            monitor = asyncio.create_task(service.monitor_pid_file(settings.pid_file))
            stopper = asyncio.create_task(stop.wait())
            await asyncio.wait({monitor, stopper}, return_when=asyncio.FIRST_COMPLETED)
            for task in (monitor, stopper):
                task.cancel()
            await asyncio.gather(monitor, stopper, return_exceptions=True)
        else:
            await service.run_until(stop)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await service.shutdown()
        await close_redis()


async def run_test_commands(settings: Settings) -> None:
    lock = InMemoryLockStore().lock(settings.namespace, settings.lock_name)
    service = LeaderService(settings, lock)
    await service.test_commands()


# Option name -> Settings field
SETTINGS_OPTIONS = {
    "lock_name": "lock_name",
    "namespace": "namespace",
    "identity": "identity",
    "pid_file": "pid_file",
    "exec_elect": "exec_elect",
    "exec_start": "exec_start",
    "exec_stop": "exec_stop",
    "lease_duration": "lease_duration",
    "retry_period": "retry_period",
    "renew_deadline": "renew_deadline",
    "backend": "lock_backend",
    "redis_url": "redis_url",
    "log_level": "log_level",
    "json_logs": "log_json",
}


def command_line_overrides(ctx: typer.Context) -> dict[str, Any]:
    """Settings given explicitly on the command line.

    Options left at their default do not override environment or .env values.
    """
    overrides: dict[str, Any] = {}
    for option, field in SETTINGS_OPTIONS.items():
        if ctx.get_parameter_source(option) in (None, ParameterSource.DEFAULT):
            continue
        overrides[field] = ctx.params[option]

    if "log_level" in overrides:
        overrides["log_level"] = overrides["log_level"].upper()
    return overrides


@app.callback(invoke_without_command=True)
def run(
    ctx: typer.Context,
    lock_name: str = typer.Option(
        ...,
        "--shared-lock",
        "-m",
        help="The name of the shared lock",
    ),
    namespace: str = typer.Option(
        "default",
        "--namespace",
        "-n",
        help="Namespace of the shared lock",
    ),
    identity: str | None = typer.Option(
        None,
        "--identity",
        "-i",
        help="The leader identity, defaults to $HOSTNAME",
    ),
    pid_file: str | None = typer.Option(
        None,
        "--pid-file",
        "-p",
        help="Start/stop leading by monitoring the pid file, will not stop if unspecified",
    ),
    exec_elect: str | None = typer.Option(
        None,
        "--elect",
        "-e",
        help="Command to run when a new leader is elected",
    ),
    exec_start: str | None = typer.Option(
        None,
        "--start",
        "-s",
        help="Command to run when leading started",
    ),
    exec_stop: str | None = typer.Option(
        None,
        "--stop",
        "-x",
        help="Command to run when leading stopped",
    ),
    lease_duration: float = typer.Option(
        10.0,
        "--lease",
        "-l",
        help="Seconds non-leader candidates wait before forcing a takeover",
    ),
    retry_period: float = typer.Option(
        2.0,
        "--retry",
        "-r",
        help="Seconds to wait between tries of actions",
    ),
    renew_deadline: float = typer.Option(
        7.0,
        "--renew-deadline",
        help="Seconds a leader waits for a renewal before giving up leadership",
    ),
    backend: str = typer.Option(
        "redis",
        "--backend",
        "-b",
        help="Lock backend: redis, memory",
    ),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL for the redis backend",
    ),
    test: bool = typer.Option(
        False,
        "--test",
        "-t",
        help="Test run commands, in the order of -e -s -x",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        help="Log level: debug, info, warning, error",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs/--console-logs",
        help="Emit JSON log lines",
    ),
) -> None:
    """Join the election for a shared lock and run commands on leadership changes."""
    settings = Settings().model_copy(update=command_line_overrides(ctx))
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    if not settings.identity:
        typer.echo(
            "Identity cannot be empty. Use -i or set a HOSTNAME environment variable.",
            err=True,
        )
        raise typer.Exit(1)

    try:
        if test:
            typer.echo("Test mode")
            asyncio.run(run_test_commands(settings))
        else:
            asyncio.run(serve(settings))
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
