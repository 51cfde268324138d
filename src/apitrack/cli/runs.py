"""
CLI: ``apitrack runs`` — run history.
"""

from __future__ import annotations

import typer

from apitrack.cli.utils import DEFAULT_USER, make_context, output_paged, output_result

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_runs(
    collection_id: str | None = typer.Option(None, "--collection", "-c"),
    schedule_id: str | None = typer.Option(None, "--schedule", "-s"),
    status: str | None = typer.Option(None, "--status", help="running, completed or failed"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List runs, newest first."""
    from apitrack.ops.requests import ListRunsRequest
    from apitrack.ops.runs import list_runs as _list

    ctx, _ = make_context(database, user=user)
    request = ListRunsRequest(
        collection_id=collection_id,
        schedule_id=schedule_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    output_paged(_list(ctx, request), as_json=json_out, title="Runs")


@app.command("show")
def show_run(
    run_id: str = typer.Argument(..., help="Run ID"),
    failed_only: bool = typer.Option(False, "--failed", help="Only failed results"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a run and its per-test results."""
    from apitrack.ops.requests import GetRunRequest
    from apitrack.ops.runs import get_run

    ctx, _ = make_context(database, user=user)
    result = get_run(ctx, GetRunRequest(run_id=run_id, failed_only=failed_only))
    output_result(result, as_json=json_out)
