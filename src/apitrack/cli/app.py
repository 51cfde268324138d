"""
Root Typer application for the apitrack CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

app = Typer(
    name="apitrack",
    help="apitrack — scheduled API checks with run history and reports.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from apitrack import __version__

        typer.echo(f"apitrack {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log operations to stderr."),
) -> None:
    """apitrack CLI — manage collections, schedules and runs."""
    from apitrack.core.logging import bind_context, configure_logging

    # stdout carries command output (tables, --json); logs go to stderr
    configure_logging(
        "DEBUG" if verbose else "WARNING",
        json_format=False,
        add_timestamp=False,
        stream=sys.stderr,
        cache=False,
    )
    bind_context(caller="cli")


# ── Sub-command registration ─────────────────────────────────────────────

from apitrack.cli.collection import app as collection_app  # noqa: E402
from apitrack.cli.runs import app as runs_app  # noqa: E402
from apitrack.cli.schedule import app as sched_app  # noqa: E402
from apitrack.cli.worker import app as worker_app  # noqa: E402

app.add_typer(collection_app, name="collection", help="Collections and their tests.")
app.add_typer(sched_app, name="schedule", help="Schedule management.")
app.add_typer(runs_app, name="runs", help="Run history.")
app.add_typer(worker_app, name="worker", help="Scheduler worker.")
