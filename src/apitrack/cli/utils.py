"""
CLI utility helpers — output formatting and connection management.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import asdict
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from apitrack.core.connection import SqliteConnection
from apitrack.core.schema import create_tables
from apitrack.core.settings import Settings
from apitrack.ops.context import OperationContext
from apitrack.ops.responses import RunDetail
from apitrack.ops.result import OperationResult, PagedResult

console = Console()
err_console = Console(stderr=True)

DEFAULT_USER = "local"

T = TypeVar("T")


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None, settings: Settings | None = None) -> SqliteConnection:
    """Open the database (``APITRACK_DATABASE`` by default) and ensure the schema."""
    settings = settings or Settings()
    conn = SqliteConnection(database or settings.database)
    create_tables(conn)
    return conn


def make_context(
    database: str | None = None,
    *,
    user: str = DEFAULT_USER,
    dry_run: bool = False,
) -> tuple[OperationContext, SqliteConnection]:
    """Create an ``OperationContext`` + connection pair for CLI commands."""
    settings = Settings()
    conn = get_connection(database, settings)
    ctx = OperationContext(
        conn=conn, user=user, caller="cli", dry_run=dry_run, settings=settings
    )
    return ctx, conn


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async operation from a synchronous command."""
    return asyncio.run(coro)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict to plain dict."""
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _fail(result: OperationResult) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    raise typer.Exit(code=1)


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        _fail(result)
    for warning in result.warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {warning}")

    data = result.data

    if as_json:
        payload = _to_dict(data) if not isinstance(data, list | tuple) else [_to_dict(d) for d in data]
        console.print_json(json.dumps(payload, default=str))
        return

    if data is None:
        console.print("[dim]Nothing to do (dry run).[/dim]")
        return
    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    elif isinstance(data, RunDetail):
        _print_run(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def output_paged(
    result: PagedResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render a ``PagedResult`` to the terminal with pagination info."""
    if not result.success:
        _fail(result)

    items = result.data or []

    if as_json:
        payload = {
            "items": [_to_dict(d) for d in items],
            "total": result.total,
            "limit": result.limit,
            "offset": result.offset,
            "has_more": result.has_more,
        }
        console.print_json(json.dumps(payload, default=str))
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    _print_table(items, title=title)

    if result.has_more or result.offset:
        console.print(
            f"\n[dim]Showing {len(items)} of {result.total}"
            f" (offset {result.offset})[/dim]"
        )


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        if isinstance(v, list):
            continue
        console.print(f"  [cyan]{k}[/cyan]: {v}")
    for k, v in data.items():
        if isinstance(v, list) and v:
            _print_table(v, title=k)


def _print_run(detail: RunDetail, *, title: str = "") -> None:
    """Render a run summary followed by its results."""
    run = detail.run
    colour = "green" if run.failure_count == 0 else "red"
    _print_dict(_to_dict(run), title=title or f"Run: {run.run_id}")
    console.print(
        f"  [{colour}]{run.success_count} passed, {run.failure_count} failed[/{colour}]"
        f" in {run.total_duration_ms:.0f} ms"
    )
    if detail.results:
        table = Table(title="Results", pad_edge=False)
        for col in ("test", "status", "ms", "ok", "error"):
            table.add_column(col, overflow="fold")
        for r in detail.results:
            table.add_row(
                r.test_name,
                str(r.status_code),
                f"{r.duration_ms:.0f}",
                "[green]yes[/green]" if r.success else "[red]no[/red]",
                r.error or "",
            )
        console.print(table)
