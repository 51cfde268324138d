"""
CLI: ``apitrack schedule`` — schedule CRUD commands.
"""

from __future__ import annotations

import typer

from apitrack.cli.utils import DEFAULT_USER, make_context, output_paged, output_result, run_async

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_schedules(
    active_only: bool = typer.Option(False, "--active", help="Only active schedules"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List your schedules."""
    from apitrack.ops.requests import ListSchedulesRequest
    from apitrack.ops.schedules import list_schedules as _list

    ctx, _ = make_context(database, user=user)
    result = _list(ctx, ListSchedulesRequest(active_only=active_only))
    output_paged(result, as_json=json_out, title="Schedules")


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule details."""
    from apitrack.ops.requests import GetScheduleRequest
    from apitrack.ops.schedules import get_schedule as _get

    ctx, _ = make_context(database, user=user)
    result = _get(ctx, GetScheduleRequest(schedule_id=schedule_id))
    output_result(result, as_json=json_out, title=f"Schedule: {schedule_id}")


@app.command("create")
def create_schedule(
    name: str = typer.Argument(..., help="Schedule name"),
    collection_id: str = typer.Option(..., "--collection", "-c", help="Collection to run"),
    every_minutes: int | None = typer.Option(None, "--every-minutes", help="Run every N minutes"),
    every_hours: int | None = typer.Option(None, "--every-hours", help="Run every N hours"),
    daily: str | None = typer.Option(None, "--daily", help="Run daily at HH:MM"),
    weekly: str | None = typer.Option(
        None, "--weekly", help="Day for weekly runs: monday..sunday, weekday, everyday"
    ),
    at: str | None = typer.Option(None, "--at", help="Time of day (HH:MM) for --weekly"),
    notify: str | None = typer.Option(None, "--notify", help="Mail a report to this address"),
    active: bool = typer.Option(True, "--active/--paused"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a schedule.

    Example::

        apitrack schedule create nightly -c <collection-id> --daily 02:00
        apitrack schedule create standup -c <collection-id> --weekly weekday --at 09:00
    """
    from apitrack.ops.requests import CreateScheduleRequest
    from apitrack.ops.schedules import create_schedule as _create

    chosen = [
        flag
        for flag, value in (
            ("--every-minutes", every_minutes),
            ("--every-hours", every_hours),
            ("--daily", daily),
            ("--weekly", weekly),
        )
        if value is not None
    ]
    if len(chosen) != 1:
        raise typer.BadParameter(
            "choose exactly one of --every-minutes, --every-hours, --daily, --weekly"
        )

    if every_minutes is not None:
        kind = "minute"
    elif every_hours is not None:
        kind = "hour"
    elif daily is not None:
        kind = "day"
    else:
        kind = "week"

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    request = CreateScheduleRequest(
        name=name,
        collection_id=collection_id,
        kind=kind,
        minute_interval=every_minutes,
        hour_interval=every_hours,
        time_of_day=daily if kind == "day" else at,
        weekday=weekly,
        active=active,
        notify_enabled=notify is not None,
        notify_recipient=notify,
    )
    result = _create(ctx, request)
    output_result(result, as_json=json_out, title="Schedule Created")


@app.command("update")
def update_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    name: str | None = typer.Option(None, "--name"),
    collection_id: str | None = typer.Option(None, "--collection", "-c"),
    kind: str | None = typer.Option(None, "--kind", help="minute, hour, day or week"),
    minute_interval: int | None = typer.Option(None, "--minute-interval"),
    hour_interval: int | None = typer.Option(None, "--hour-interval"),
    at: str | None = typer.Option(None, "--at", help="Time of day (HH:MM)"),
    weekday: str | None = typer.Option(None, "--weekday"),
    notify: bool | None = typer.Option(None, "--notify/--no-notify"),
    recipient: str | None = typer.Option(None, "--recipient"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update an existing schedule."""
    from apitrack.ops.requests import UpdateScheduleRequest
    from apitrack.ops.schedules import update_schedule as _update

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    request = UpdateScheduleRequest(
        schedule_id=schedule_id,
        name=name,
        collection_id=collection_id,
        kind=kind,
        minute_interval=minute_interval,
        hour_interval=hour_interval,
        time_of_day=at,
        weekday=weekday,
        notify_enabled=notify,
        notify_recipient=recipient,
    )
    result = _update(ctx, request)
    output_result(result, as_json=json_out, title="Schedule Updated")


def _set_active(schedule_id: str, active: bool, database: str | None, user: str, json_out: bool) -> None:
    from apitrack.ops.requests import SetScheduleActiveRequest
    from apitrack.ops.schedules import set_schedule_active

    ctx, _ = make_context(database, user=user)
    result = set_schedule_active(ctx, SetScheduleActiveRequest(schedule_id=schedule_id, active=active))
    output_result(result, as_json=json_out, title="Schedule Resumed" if active else "Schedule Paused")


@app.command("pause")
def pause_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Stop a schedule from firing."""
    _set_active(schedule_id, False, database, user, json_out)


@app.command("resume")
def resume_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Let a paused schedule fire again."""
    _set_active(schedule_id, True, database, user, json_out)


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    dry_run: bool = typer.Option(False, "--dry-run"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete a schedule. Its past runs are kept."""
    from apitrack.ops.requests import DeleteScheduleRequest
    from apitrack.ops.schedules import delete_schedule as _delete

    ctx, _ = make_context(database, user=user, dry_run=dry_run)
    result = _delete(ctx, DeleteScheduleRequest(schedule_id=schedule_id))
    output_result(result, as_json=json_out, title="Schedule Deleted")


@app.command("run")
def run_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    record: bool = typer.Option(
        False, "--record", help="Count this run as the schedule's last run"
    ),
    notify: bool = typer.Option(False, "--notify", help="Send the report if enabled"),
    database: str | None = typer.Option(None, "--database", "-d"),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="APITRACK_USER"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a schedule's collection now."""
    from apitrack.ops.requests import RunScheduleNowRequest
    from apitrack.ops.schedules import run_schedule_now

    ctx, _ = make_context(database, user=user)
    request = RunScheduleNowRequest(schedule_id=schedule_id, record_last_run=record, notify=notify)
    if notify:
        from apitrack.core.repositories import CollectionRepository, RunRepository, ScheduleRepository
        from apitrack.core.scheduling.dispatcher import ScheduleDispatcher
        from apitrack.execution.runner import CollectionRunner
        from apitrack.notifications import create_sink

        runs = RunRepository(ctx.conn)
        ctx.dispatcher = ScheduleDispatcher(
            ScheduleRepository(ctx.conn),
            CollectionRepository(ctx.conn),
            runs,
            CollectionRunner(runs, ctx.settings),
            sink=create_sink("email", ctx.settings),
        )
    result = run_async(run_schedule_now(ctx, request))
    output_result(result, as_json=json_out)
