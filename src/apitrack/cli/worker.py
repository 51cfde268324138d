"""
CLI: ``apitrack worker`` — run the scheduler.
"""

from __future__ import annotations

import time

import typer

from apitrack.cli.utils import console, get_connection, run_async

app = typer.Typer(no_args_is_help=True)


def _build(database: str | None, mode: str | None, backend: str, sink: str):
    from apitrack.core.logging import configure_logging
    from apitrack.core.scheduling import create_scheduler, create_trigger_backend
    from apitrack.core.settings import Settings
    from apitrack.notifications import create_sink

    settings = Settings()
    if mode is not None:
        settings = settings.model_copy(update={"scheduler_mode": mode})
    configure_logging(settings.log_level, json_format=settings.json_logs, service="apitrack-worker")

    conn = get_connection(database, settings)
    return create_scheduler(
        conn,
        settings=settings,
        sink=None if sink == "none" else create_sink(sink, settings),
        trigger_backend=create_trigger_backend(backend),
    )


@app.command("start")
def start(
    database: str | None = typer.Option(None, "--database", "-d"),
    mode: str | None = typer.Option(None, "--mode", help="push (default) or poll"),
    backend: str = typer.Option("thread", "--backend", help="Trigger backend: thread or apscheduler"),
    sink: str = typer.Option("email", "--sink", help="Report delivery: email, console or none"),
) -> None:
    """Start the scheduler and run until interrupted.

    Example::

        apitrack worker start
        apitrack worker start --mode poll --sink console
    """
    if mode not in (None, "push", "poll"):
        raise typer.BadParameter("--mode must be push or poll")

    try:
        service = _build(database, mode, backend, sink)
    except (ImportError, ValueError) as exc:
        console.print(f"[red]Worker error: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    service.start()
    health = service.health()
    console.print(
        f"[bold green]apitrack worker started[/bold green] "
        f"(mode={health.mode}, armed={health.triggers_armed}, "
        f"tick={service.settings.tick_seconds:g}s)"
    )
    try:
        while service.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    finally:
        service.stop()


@app.command("once")
def once(
    database: str | None = typer.Option(None, "--database", "-d"),
    sink: str = typer.Option("email", "--sink", help="Report delivery: email, console or none"),
) -> None:
    """Dispatch the schedules that are due right now, then exit.

    Suitable for an external cron entry running at least once a minute.
    """
    try:
        service = _build(database, "poll", "thread", sink)
    except ValueError as exc:
        console.print(f"[red]Worker error: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    service.sweep_stale_runs()
    outcomes = run_async(service.dispatch_due())
    if not outcomes:
        console.print("[dim]No schedules due.[/dim]")
        return
    for outcome in outcomes:
        colour = "green" if outcome.status.value == "completed" else "yellow"
        console.print(f"  {outcome.schedule_id}: [{colour}]{outcome.status.value}[/{colour}]")
