"""CLI commands for leaderrun.

Provides command-line interface using Typer:
- leaderrun run: Join a leader election and run commands on leadership changes

Usage:
    leaderrun --help
    leaderrun run --shared-lock billing-worker --start "systemctl start billing"
"""

import typer

from leaderrun.cli.run_cmd import app as run_app

# Main CLI application
app = typer.Typer(
    name="leaderrun",
    help="leaderrun: lease-based leader election for replicated processes",
    no_args_is_help=True,
)

app.add_typer(run_app, name="run")


@app.callback()
def callback() -> None:
    """leaderrun: lease-based leader election for replicated processes."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
