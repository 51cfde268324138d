"""
Schedule operations.

CRUD for recurring schedules plus run-now. Every edit is written to the
store first and then reflected in the in-process registry when the
context carries one; a separate worker process picks the same edit up on
its next reconcile through the schedule's version.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

from apitrack.core.errors import (
    ApiTrackError,
    AuthorizationError,
    ConfigurationError,
    DuplicateNameError,
    NotFoundError,
)
from apitrack.core.logging import get_logger
from apitrack.core.models.recurrence import RecurrenceKind, RecurrenceRule
from apitrack.core.models.schedule import NotifySettings, Schedule
from apitrack.core.repositories import (
    CollectionRepository,
    RunRepository,
    ScheduleCreate,
    ScheduleRepository,
    ScheduleUpdate,
)
from apitrack.core.scheduling.dispatcher import ScheduleDispatcher
from apitrack.core.scheduling.recurrence import describe, next_run_after, to_cron_expression
from apitrack.execution.runner import CollectionRunner
from apitrack.ops.collections import load_owned_collection, require_owner
from apitrack.ops.context import OperationContext
from apitrack.ops.requests import (
    CreateScheduleRequest,
    DeleteScheduleRequest,
    GetScheduleRequest,
    ListSchedulesRequest,
    RunScheduleNowRequest,
    SetScheduleActiveRequest,
    UpdateScheduleRequest,
)
from apitrack.ops.responses import ScheduleDeleted, ScheduleDetail, ScheduleSummary
from apitrack.ops.result import OperationResult, PagedResult, start_timer
from apitrack.ops.runs import to_run_detail

logger = get_logger(__name__)

_RULE_FIELDS = ("minute_interval", "hour_interval", "time_of_day", "weekday")


def _repo(ctx: OperationContext) -> ScheduleRepository:
    return ScheduleRepository(ctx.conn)


def _load_owned(ctx: OperationContext, schedule_id: str) -> Schedule:
    owner_id = require_owner(ctx)
    schedule = _repo(ctx).get(schedule_id)
    if schedule is None:
        raise NotFoundError("Schedule", schedule_id)
    if schedule.owner_id != owner_id:
        raise AuthorizationError(
            f"Schedule {schedule_id} belongs to another user"
        ).with_context(schedule_id=schedule_id, owner_id=owner_id)
    return schedule


def _next_run(ctx: OperationContext, schedule: Schedule, *, armed: bool = True) -> datetime | None:
    if not schedule.active:
        return None
    if armed and ctx.registry is not None and schedule.id in ctx.registry:
        return ctx.registry.next_run(schedule.id)
    return next_run_after(
        schedule.recurrence, schedule.last_run, datetime.now(UTC), tz=ctx.settings.tzinfo
    )


def _sync_registry(ctx: OperationContext, schedule: Schedule) -> None:
    if ctx.registry is None:
        return
    if schedule.active:
        ctx.registry.install(schedule)
    else:
        ctx.registry.uninstall(schedule.id)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _to_detail(ctx: OperationContext, schedule: Schedule, *, armed: bool = True) -> ScheduleDetail:
    """Detail view. ``armed=False`` computes ``next_run`` from the rule, not the armed trigger."""
    rule = schedule.recurrence.to_dict()
    return ScheduleDetail(
        schedule_id=schedule.id,
        name=schedule.name,
        collection_id=schedule.collection_id,
        kind=rule["kind"],
        minute_interval=rule["minute_interval"],
        hour_interval=rule["hour_interval"],
        time_of_day=rule["time_of_day"],
        weekday=rule["weekday"],
        description=describe(schedule.recurrence),
        cron_expression=to_cron_expression(schedule.recurrence),
        active=schedule.active,
        last_run=_iso(schedule.last_run),
        next_run=_iso(_next_run(ctx, schedule, armed=armed)),
        armed=ctx.registry is not None and schedule.id in ctx.registry,
        notify_enabled=schedule.notify.enabled,
        notify_recipient=schedule.notify.recipient,
        created_at=schedule.created_at,
        updated_at=schedule.updated_at,
        version=schedule.version,
    )


def _to_summary(ctx: OperationContext, schedule: Schedule) -> ScheduleSummary:
    return ScheduleSummary(
        schedule_id=schedule.id,
        name=schedule.name,
        collection_id=schedule.collection_id,
        recurrence=describe(schedule.recurrence),
        active=schedule.active,
        last_run=_iso(schedule.last_run),
        next_run=_iso(_next_run(ctx, schedule)),
    )


def _merged_rule(current: RecurrenceRule, request: UpdateScheduleRequest) -> RecurrenceRule:
    """Apply the recurrence fields of an update to the current rule."""
    data = current.to_dict()
    if request.kind is not None and RecurrenceKind(request.kind) is not current.kind:
        for name in _RULE_FIELDS:
            data[name] = None
        data["kind"] = request.kind
    for name in _RULE_FIELDS:
        value = getattr(request, name)
        if value is not None:
            data[name] = value
    return RecurrenceRule.from_dict(data)


# ------------------------------------------------------------------ #
# Queries
# ------------------------------------------------------------------ #


def list_schedules(
    ctx: OperationContext,
    request: ListSchedulesRequest | None = None,
) -> PagedResult[ScheduleSummary]:
    """List the caller's schedules."""
    timer = start_timer()
    request = request or ListSchedulesRequest()

    try:
        owner_id = require_owner(ctx)
        schedules = _repo(ctx).list_for_owner(owner_id, active_only=request.active_only)
        summaries = [_to_summary(ctx, s) for s in schedules]
        return PagedResult.from_items(
            summaries,
            total=len(summaries),
            limit=max(len(summaries), 1),
            elapsed_ms=timer.elapsed_ms,
        )
    except ApiTrackError as exc:
        return PagedResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="list_schedules", error=str(exc))
        return PagedResult.fail(
            "INTERNAL", f"Failed to list schedules: {exc}", elapsed_ms=timer.elapsed_ms
        )


def get_schedule(
    ctx: OperationContext,
    request: GetScheduleRequest,
) -> OperationResult[ScheduleDetail]:
    """Get a schedule by ID."""
    timer = start_timer()

    if not request.schedule_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "schedule_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        schedule = _load_owned(ctx, request.schedule_id)
        return OperationResult.ok(_to_detail(ctx, schedule), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="get_schedule", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to get schedule: {exc}", elapsed_ms=timer.elapsed_ms
        )


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


def create_schedule(
    ctx: OperationContext,
    request: CreateScheduleRequest,
) -> OperationResult[ScheduleDetail]:
    """Create a schedule and arm its trigger.

    The recurrence and notification settings are validated before anything
    is written; invalid combinations fail with ``VALIDATION_FAILED``.
    """
    timer = start_timer()

    if not request.name:
        return OperationResult.fail(
            "VALIDATION_FAILED", "name is required", elapsed_ms=timer.elapsed_ms
        )
    if not request.collection_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "collection_id is required", elapsed_ms=timer.elapsed_ms
        )
    if not request.kind:
        return OperationResult.fail(
            "VALIDATION_FAILED", "kind is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        owner_id = require_owner(ctx)
        rule = RecurrenceRule(
            kind=request.kind,
            minute_interval=request.minute_interval,
            hour_interval=request.hour_interval,
            time_of_day=request.time_of_day,
            weekday=request.weekday,
            active=request.active,
        )
        notify = NotifySettings(
            enabled=request.notify_enabled, recipient=request.notify_recipient
        )
        load_owned_collection(ctx, request.collection_id, with_tests=False)

        repo = _repo(ctx)
        if repo.get_by_name(owner_id, request.name) is not None:
            raise DuplicateNameError("schedule", request.name)

        draft = ScheduleCreate(
            name=request.name,
            owner_id=owner_id,
            collection_id=request.collection_id,
            recurrence=rule,
            notify=notify,
        )
        if ctx.dry_run:
            preview = Schedule(
                id="",
                name=draft.name,
                owner_id=owner_id,
                collection_id=draft.collection_id,
                recurrence=rule,
                notify=notify,
            )
            return OperationResult.ok(_to_detail(ctx, preview), elapsed_ms=timer.elapsed_ms)

        schedule = repo.create(draft)
        _sync_registry(ctx, schedule)
        logger.info(
            "schedule.created",
            schedule_id=schedule.id,
            name=schedule.name,
            kind=rule.kind.value,
            request_id=ctx.request_id,
        )
        return OperationResult.ok(_to_detail(ctx, schedule), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="create_schedule", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to create schedule: {exc}", elapsed_ms=timer.elapsed_ms
        )


def update_schedule(
    ctx: OperationContext,
    request: UpdateScheduleRequest,
) -> OperationResult[ScheduleDetail]:
    """Update a schedule and re-arm its trigger.

    The stored ``last_run`` is kept, so an interval change keeps the
    schedule's phase.
    """
    timer = start_timer()

    if not request.schedule_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "schedule_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        schedule = _load_owned(ctx, request.schedule_id)
        repo = _repo(ctx)
        updates = ScheduleUpdate()

        if request.name is not None and request.name != schedule.name:
            if repo.get_by_name(schedule.owner_id, request.name) is not None:
                raise DuplicateNameError("schedule", request.name)
            updates.name = request.name
        if request.collection_id is not None:
            load_owned_collection(ctx, request.collection_id, with_tests=False)
            updates.collection_id = request.collection_id
        if request.changes_recurrence:
            try:
                updates.recurrence = _merged_rule(schedule.recurrence, request)
            except ValueError as exc:
                raise ConfigurationError(
                    f"unknown recurrence kind: {request.kind!r}", field="kind", value=request.kind
                ) from exc
        if request.changes_notify:
            enabled = (
                request.notify_enabled
                if request.notify_enabled is not None
                else schedule.notify.enabled
            )
            recipient = (
                request.notify_recipient
                if request.notify_recipient is not None
                else schedule.notify.recipient
            )
            updates.notify = NotifySettings(enabled=enabled, recipient=recipient)

        if ctx.dry_run:
            preview = replace(
                schedule,
                name=updates.name or schedule.name,
                collection_id=updates.collection_id or schedule.collection_id,
                recurrence=updates.recurrence or schedule.recurrence,
                notify=updates.notify or schedule.notify,
            )
            return OperationResult.ok(
                _to_detail(ctx, preview, armed=updates.recurrence is None),
                elapsed_ms=timer.elapsed_ms,
            )

        updated = repo.update(schedule.id, updates)
        if updated is None:
            raise NotFoundError("Schedule", schedule.id)
        _sync_registry(ctx, updated)
        logger.info(
            "schedule.updated",
            schedule_id=updated.id,
            version=updated.version,
            request_id=ctx.request_id,
        )
        return OperationResult.ok(_to_detail(ctx, updated), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="update_schedule", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to update schedule: {exc}", elapsed_ms=timer.elapsed_ms
        )


def set_schedule_active(
    ctx: OperationContext,
    request: SetScheduleActiveRequest,
) -> OperationResult[ScheduleDetail]:
    """Pause or resume a schedule."""
    timer = start_timer()

    if not request.schedule_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "schedule_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        schedule = _load_owned(ctx, request.schedule_id)
        if ctx.dry_run or schedule.active == request.active:
            return OperationResult.ok(_to_detail(ctx, schedule), elapsed_ms=timer.elapsed_ms)

        updated = _repo(ctx).update(schedule.id, ScheduleUpdate(active=request.active))
        if updated is None:
            raise NotFoundError("Schedule", schedule.id)
        _sync_registry(ctx, updated)
        logger.info(
            "schedule.activated" if request.active else "schedule.deactivated",
            schedule_id=schedule.id,
            request_id=ctx.request_id,
        )
        return OperationResult.ok(_to_detail(ctx, updated), elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="set_schedule_active", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to change schedule state: {exc}", elapsed_ms=timer.elapsed_ms
        )


def delete_schedule(
    ctx: OperationContext,
    request: DeleteScheduleRequest,
) -> OperationResult[ScheduleDeleted]:
    """Delete a schedule and cancel its trigger. Past runs are kept."""
    timer = start_timer()

    if not request.schedule_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "schedule_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        schedule = _load_owned(ctx, request.schedule_id)
        if ctx.dry_run:
            return OperationResult.ok(
                ScheduleDeleted(schedule_id=schedule.id, deleted=False, dry_run=True),
                elapsed_ms=timer.elapsed_ms,
            )

        _repo(ctx).delete(schedule.id)
        if ctx.registry is not None:
            ctx.registry.uninstall(schedule.id)
        logger.info("schedule.deleted", schedule_id=schedule.id, request_id=ctx.request_id)
        return OperationResult.ok(
            ScheduleDeleted(schedule_id=schedule.id), elapsed_ms=timer.elapsed_ms
        )
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="delete_schedule", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to delete schedule: {exc}", elapsed_ms=timer.elapsed_ms
        )


def _dispatcher(ctx: OperationContext) -> ScheduleDispatcher:
    if ctx.dispatcher is not None:
        return ctx.dispatcher
    runs = RunRepository(ctx.conn)
    return ScheduleDispatcher(
        _repo(ctx),
        CollectionRepository(ctx.conn),
        runs,
        ctx.runner or CollectionRunner(runs, ctx.settings),
        registry=ctx.registry,
    )


async def run_schedule_now(
    ctx: OperationContext,
    request: RunScheduleNowRequest,
):
    """Run a schedule's collection immediately.

    Returns ``OperationResult[RunDetail]``. An empty collection fails with
    ``EMPTY_COLLECTION`` and creates no run.
    """
    timer = start_timer()

    if not request.schedule_id:
        return OperationResult.fail(
            "VALIDATION_FAILED", "schedule_id is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        schedule = _load_owned(ctx, request.schedule_id)
        if ctx.dry_run:
            return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms)

        outcome = await _dispatcher(ctx).run_now(
            schedule.id,
            record_last_run=request.record_last_run,
            notify=request.notify,
        )
        detail = to_run_detail(outcome.run, RunRepository(ctx.conn).list_results(outcome.run.id))
        detail.dispatch = outcome.to_dict()
        detail.dispatch.pop("run", None)
        warnings = []
        if outcome.notified is False:
            warnings.append("run report was not delivered")
        return OperationResult.ok(detail, warnings=warnings, elapsed_ms=timer.elapsed_ms)
    except ApiTrackError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", op="run_schedule_now", error=str(exc))
        return OperationResult.fail(
            "INTERNAL", f"Failed to run schedule: {exc}", elapsed_ms=timer.elapsed_ms
        )
