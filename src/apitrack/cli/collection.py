"""
CLI: ``apitrack collection`` — collections, tests and manual runs.
"""

from __future__ import annotations

import json

import typer

from apitrack.cli.utils import DEFAULT_USER, make_context, output_paged, output_result, run_async

app = typer.Typer(no_args_is_help=True)


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"header must look like 'Name: value', got {value!r}")
        headers[name.strip()] = content.strip()
    return headers


@app.command("list")
def list_collections(
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List your collections."""
    from apitrack.ops.collections import list_collections as _list

    ctx, _ = make_context(database, user=user)
    output_paged(_list(ctx), as_json=json_out, title="Collections")


@app.command("show")
def show_collection(
    collection_id: str = typer.Argument(..., help="Collection ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a collection and its tests."""
    from apitrack.ops.collections import get_collection
    from apitrack.ops.requests import GetCollectionRequest

    ctx, _ = make_context(database, user=user)
    result = get_collection(ctx, GetCollectionRequest(collection_id=collection_id))
    output_result(result, as_json=json_out, title=f"Collection: {collection_id}")


@app.command("create")
def create_collection(
    name: str = typer.Argument(..., help="Collection name"),
    description: str | None = typer.Option(None, "--description"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create an empty collection."""
    from apitrack.ops.collections import create_collection as _create
    from apitrack.ops.requests import CreateCollectionRequest

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    result = _create(ctx, CreateCollectionRequest(name=name, description=description))
    output_result(result, as_json=json_out, title="Collection Created")


@app.command("update")
def update_collection(
    collection_id: str = typer.Argument(..., help="Collection ID"),
    name: str | None = typer.Option(None, "--name"),
    description: str | None = typer.Option(None, "--description"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Rename a collection or change its description."""
    from apitrack.ops.collections import update_collection as _update
    from apitrack.ops.requests import UpdateCollectionRequest

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    request = UpdateCollectionRequest(collection_id=collection_id, name=name, description=description)
    output_result(_update(ctx, request), as_json=json_out, title="Collection Updated")


@app.command("delete")
def delete_collection(
    collection_id: str = typer.Argument(..., help="Collection ID"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete a collection with its tests and schedules. Past runs are kept."""
    from apitrack.ops.collections import delete_collection as _delete
    from apitrack.ops.requests import DeleteCollectionRequest

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    result = _delete(ctx, DeleteCollectionRequest(collection_id=collection_id))
    output_result(result, as_json=json_out, title="Collection Deleted")


@app.command("add-test")
def add_test(
    collection_id: str = typer.Argument(..., help="Collection ID"),
    name: str = typer.Argument(..., help="Test name"),
    url: str = typer.Argument(..., help="Request URL"),
    method: str = typer.Option("GET", "--method", "-X"),
    header: list[str] = typer.Option([], "--header", "-H", help="'Name: value', repeatable"),
    body: str | None = typer.Option(None, "--body", help="Raw request body"),
    json_body: str | None = typer.Option(None, "--json-body", help="JSON request body"),
    expected_status: int | None = typer.Option(None, "--expect", help="Expected status code"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Append a test to a collection.

    Example::

        apitrack collection add-test <id> health https://api.example.com/health
        apitrack collection add-test <id> login https://api.example.com/login \\
            -X POST --json-body '{"user": "demo"}' --expect 200
    """
    from apitrack.ops.collections import add_test as _add
    from apitrack.ops.requests import AddTestRequest

    headers = _parse_headers(header)
    if json_body is not None:
        if body is not None:
            raise typer.BadParameter("use either --body or --json-body")
        try:
            json.loads(json_body)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"--json-body is not valid JSON: {exc}") from exc
        body = json_body
        headers.setdefault("Content-Type", "application/json")

    ctx, _ = make_context(database, user=user)
    request = AddTestRequest(
        collection_id=collection_id,
        name=name,
        method=method,
        url=url,
        headers=headers,
        body=body,
        expected_status=expected_status,
    )
    output_result(_add(ctx, request), as_json=json_out, title="Test Added")


@app.command("update-test")
def update_test(
    test_id: str = typer.Argument(..., help="Test ID"),
    name: str | None = typer.Option(None, "--name"),
    url: str | None = typer.Option(None, "--url"),
    method: str | None = typer.Option(None, "--method", "-X"),
    header: list[str] = typer.Option([], "--header", "-H", help="'Name: value'; replaces all headers"),
    body: str | None = typer.Option(None, "--body", help="Raw request body"),
    no_body: bool = typer.Option(False, "--no-body", help="Drop the stored body"),
    expected_status: int | None = typer.Option(None, "--expect", help="Expected status code"),
    no_expect: bool = typer.Option(False, "--no-expect", help="Drop the expected status"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Edit a test. Options left out keep their current value."""
    from apitrack.ops.collections import update_test as _update
    from apitrack.ops.requests import UpdateTestRequest

    if body is not None and no_body:
        raise typer.BadParameter("use either --body or --no-body")
    if expected_status is not None and no_expect:
        raise typer.BadParameter("use either --expect or --no-expect")

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    request = UpdateTestRequest(
        test_id=test_id,
        name=name,
        method=method,
        url=url,
        headers=_parse_headers(header) if header else None,
        body=body,
        expected_status=expected_status,
        clear_body=no_body,
        clear_expected_status=no_expect,
    )
    output_result(_update(ctx, request), as_json=json_out, title="Test Updated")


@app.command("delete-test")
def delete_test(
    test_id: str = typer.Argument(..., help="Test ID"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Remove a test from its collection."""
    from apitrack.ops.collections import delete_test as _delete
    from apitrack.ops.requests import DeleteTestRequest

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    result = _delete(ctx, DeleteTestRequest(test_id=test_id))
    output_result(result, as_json=json_out, title="Test Deleted")


@app.command("run")
def run_collection(
    collection_id: str = typer.Argument(..., help="Collection ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run every test of a collection now."""
    from apitrack.ops.collections import run_collection as _run
    from apitrack.ops.requests import RunCollectionRequest

    ctx, _ = make_context(database, user=user)
    result = run_async(_run(ctx, RunCollectionRequest(collection_id=collection_id)))
    output_result(result, as_json=json_out)


@app.command("run-test")
def run_test(
    test_id: str = typer.Argument(..., help="Test ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a single test as its own run."""
    from apitrack.ops.collections import run_test as _run
    from apitrack.ops.requests import RunTestRequest

    ctx, _ = make_context(database, user=user)
    result = run_async(_run(ctx, RunTestRequest(test_id=test_id)))
    output_result(result, as_json=json_out)
