"""Tests for schedule operations."""

from __future__ import annotations

import pytest

from apitrack.core.models import NotifySettings, RecurrenceRule
from apitrack.core.scheduling.registry import ScheduleRegistry
from apitrack.ops.requests import (
    CreateScheduleRequest,
    DeleteScheduleRequest,
    GetScheduleRequest,
    ListSchedulesRequest,
    RunScheduleNowRequest,
    SetScheduleActiveRequest,
    UpdateScheduleRequest,
)
from apitrack.ops.schedules import (
    create_schedule,
    delete_schedule,
    get_schedule,
    list_schedules,
    run_schedule_now,
    set_schedule_active,
    update_schedule,
)


@pytest.fixture
def registry(schedules, trigger_backend, clock) -> ScheduleRegistry:
    return ScheduleRegistry(schedules, trigger_backend, clock=clock)


@pytest.fixture
def live_ctx(make_ctx, registry):
    """Context of a process that runs the scheduler in-process."""
    return make_ctx(registry=registry)


def _create(ctx, collection_id: str, /, **kwargs):
    fields = {"name": "every-15", "collection_id": collection_id, "kind": "minute", "minute_interval": 15}
    fields.update(kwargs)
    return create_schedule(ctx, CreateScheduleRequest(**fields))


class TestCreateSchedule:
    def test_creates_and_arms(self, live_ctx, registry, make_collection):
        collection = make_collection()
        result = _create(live_ctx, collection.id)

        assert result.success, result.error
        detail = result.data
        assert detail.kind == "minute"
        assert detail.minute_interval == 15
        assert detail.description == "Run every 15 minutes"
        assert detail.cron_expression == "*/15 * * * *"
        assert detail.active is True
        assert detail.armed is True
        assert detail.last_run is None
        assert detail.next_run == registry.next_run(detail.schedule_id).isoformat()

    def test_without_registry_computes_next_run(self, ctx, make_collection):
        result = _create(ctx, make_collection().id, kind="day", minute_interval=None, time_of_day="09:30")
        assert result.success
        assert result.data.armed is False
        assert result.data.next_run is not None
        assert result.data.time_of_day == "09:30"

    def test_weekly(self, ctx, make_collection):
        result = _create(
            ctx, make_collection().id, kind="week", minute_interval=None, time_of_day="17:00", weekday="weekday"
        )
        assert result.success
        assert result.data.description == "Run weekdays at 17:00"

    def test_paused_schedule_is_not_armed(self, live_ctx, registry, make_collection):
        result = _create(live_ctx, make_collection().id, active=False)
        assert result.success
        assert result.data.next_run is None
        assert len(registry) == 0

    @pytest.mark.parametrize(
        "fields",
        [
            {"minute_interval": None},
            {"minute_interval": 0},
            {"hour_interval": 2},
            {"kind": "day", "minute_interval": None},
            {"kind": "day", "minute_interval": None, "time_of_day": "25:00"},
            {"kind": "week", "minute_interval": None, "time_of_day": "09:00"},
            {"kind": "week", "minute_interval": None, "time_of_day": "09:00", "weekday": "funday"},
            {"kind": "fortnight"},
            {"notify_enabled": True},
        ],
    )
    def test_invalid_recurrence_or_notify(self, live_ctx, registry, schedules, make_collection, fields):
        result = _create(live_ctx, make_collection().id, **fields)

        assert not result.success
        assert result.error.code == "VALIDATION_FAILED"
        assert schedules.list_for_owner("alice") == []
        assert len(registry) == 0

    @pytest.mark.parametrize("missing", ["name", "collection_id", "kind"])
    def test_required_fields(self, ctx, make_collection, missing):
        result = _create(ctx, make_collection().id, **{missing: ""})
        assert result.error.code == "VALIDATION_FAILED"
        assert missing in result.error.message

    def test_duplicate_name(self, ctx, make_collection):
        collection = make_collection()
        _create(ctx, collection.id)
        result = _create(ctx, collection.id)
        assert result.error.code == "CONFLICT"

    def test_unknown_collection(self, ctx):
        result = _create(ctx, "nope")
        assert result.error.code == "NOT_FOUND"

    def test_other_users_collection(self, ctx, make_collection):
        collection = make_collection(owner_id="bob")
        result = _create(ctx, collection.id)
        assert result.error.code == "FORBIDDEN"

    def test_requires_user(self, make_ctx, make_collection):
        result = _create(make_ctx(user=None), make_collection().id)
        assert result.error.code == "FORBIDDEN"

    def test_dry_run_writes_nothing(self, make_ctx, registry, schedules, make_collection):
        result = _create(make_ctx(dry_run=True, registry=registry), make_collection().id)
        assert result.success
        assert result.data.schedule_id == ""
        assert schedules.list_for_owner("alice") == []
        assert len(registry) == 0


class TestQueries:
    def test_get(self, ctx, make_schedule):
        schedule = make_schedule(RecurrenceRule.every_hours(3), name="3h")
        result = get_schedule(ctx, GetScheduleRequest(schedule_id=schedule.id))
        assert result.success
        assert result.data.name == "3h"
        assert result.data.hour_interval == 3

    def test_get_missing_and_foreign(self, ctx, make_schedule):
        assert get_schedule(ctx, GetScheduleRequest(schedule_id="nope")).error.code == "NOT_FOUND"
        foreign = make_schedule(name="bobs", owner_id="bob")
        assert get_schedule(ctx, GetScheduleRequest(schedule_id=foreign.id)).error.code == "FORBIDDEN"
        assert get_schedule(ctx, GetScheduleRequest()).error.code == "VALIDATION_FAILED"

    def test_list_only_own(self, ctx, make_schedule):
        make_schedule(name="a")
        make_schedule(RecurrenceRule.daily("08:00", active=False), name="b")
        make_schedule(name="c", owner_id="bob")

        result = list_schedules(ctx)
        assert result.success
        assert result.total == 2
        assert {s.name for s in result.data} == {"a", "b"}

        active = list_schedules(ctx, ListSchedulesRequest(active_only=True))
        assert [s.name for s in active.data] == ["a"]
        assert active.data[0].recurrence == "Run every 15 minutes"


class TestUpdateSchedule:
    def test_interval_change_rearms(self, live_ctx, registry, trigger_backend, make_schedule, clock):
        schedule = make_schedule(RecurrenceRule.every_minutes(15))
        registry.install(schedule)

        result = update_schedule(live_ctx, UpdateScheduleRequest(schedule_id=schedule.id, minute_interval=45))

        assert result.success
        assert result.data.minute_interval == 45
        assert result.data.version == 2
        (pending,) = trigger_backend.pending_for(schedule.id)
        assert pending.run_at.isoformat() == result.data.next_run

    def test_kind_change_replaces_fields(self, ctx, make_schedule):
        schedule = make_schedule(RecurrenceRule.every_minutes(15))
        result = update_schedule(
            ctx,
            UpdateScheduleRequest(schedule_id=schedule.id, kind="week", time_of_day="08:00", weekday="friday"),
        )
        assert result.success, result.error
        assert result.data.kind == "week"
        assert result.data.minute_interval is None
        assert result.data.description == "Run every Friday at 08:00"

    def test_kind_change_without_new_fields_fails(self, ctx, schedules, make_schedule):
        schedule = make_schedule(RecurrenceRule.every_minutes(15))
        result = update_schedule(ctx, UpdateScheduleRequest(schedule_id=schedule.id, kind="day"))

        assert result.error.code == "VALIDATION_FAILED"
        assert schedules.get(schedule.id).recurrence.minute_interval == 15

    def test_unknown_kind(self, ctx, make_schedule):
        schedule = make_schedule()
        result = update_schedule(ctx, UpdateScheduleRequest(schedule_id=schedule.id, kind="yearly"))
        assert result.error.code == "VALIDATION_FAILED"

    def test_update_keeps_last_run(self, ctx, schedules, make_schedule, clock):
        schedule = make_schedule()
        schedules.set_last_run(schedule.id, clock.now)
        result = update_schedule(ctx, UpdateScheduleRequest(schedule_id=schedule.id, minute_interval=5))
        assert result.data.last_run == clock.now.isoformat()

    def test_rename_conflict(self, ctx, make_schedule):
        make_schedule(name="a")
        b = make_schedule(name="b")
        result = update_schedule(ctx, UpdateScheduleRequest(schedule_id=b.id, name="a"))
        assert result.error.code == "CONFLICT"

    def test_notify_settings(self, ctx, make_schedule):
        schedule = make_schedule()
        enable_without_recipient = update_schedule(
            ctx, UpdateScheduleRequest(schedule_id=schedule.id, notify_enabled=True)
        )
        assert enable_without_recipient.error.code == "VALIDATION_FAILED"

        result = update_schedule(
            ctx,
            UpdateScheduleRequest(schedule_id=schedule.id, notify_enabled=True, notify_recipient="ops@example.com"),
        )
        assert result.data.notify_enabled is True
        assert result.data.notify_recipient == "ops@example.com"

    def test_move_to_foreign_collection(self, ctx, make_schedule, make_collection):
        schedule = make_schedule()
        foreign = make_collection("theirs", owner_id="bob")
        result = update_schedule(ctx, UpdateScheduleRequest(schedule_id=schedule.id, collection_id=foreign.id))
        assert result.error.code == "FORBIDDEN"

    def test_dry_run(self, make_ctx, schedules, make_schedule):
        schedule = make_schedule()
        result = update_schedule(
            make_ctx(dry_run=True), UpdateScheduleRequest(schedule_id=schedule.id, minute_interval=5)
        )
        assert result.success
        assert schedules.get(schedule.id).recurrence.minute_interval == 15

    def test_dry_run_previews_changes(self, make_ctx, registry, trigger_backend, make_schedule):
        schedule = make_schedule(RecurrenceRule.every_minutes(15), notify=NotifySettings())
        registry.install(schedule)
        (armed,) = trigger_backend.pending_for(schedule.id)

        result = update_schedule(
            make_ctx(dry_run=True, registry=registry),
            UpdateScheduleRequest(
                schedule_id=schedule.id,
                name="every-5",
                minute_interval=5,
                notify_enabled=True,
                notify_recipient="ops@example.com",
            ),
        )

        assert result.success, result.error
        preview = result.data
        assert (preview.name, preview.minute_interval) == ("every-5", 5)
        assert preview.description == "Run every 5 minutes"
        assert (preview.notify_enabled, preview.notify_recipient) == (True, "ops@example.com")
        assert preview.version == 1
        assert preview.next_run != armed.run_at.isoformat()
        assert trigger_backend.pending_for(schedule.id) == [armed]

    def test_dry_run_without_recurrence_change_shows_armed_time(
        self, make_ctx, registry, trigger_backend, make_schedule
    ):
        schedule = make_schedule()
        registry.install(schedule)
        (armed,) = trigger_backend.pending_for(schedule.id)

        result = update_schedule(
            make_ctx(dry_run=True, registry=registry),
            UpdateScheduleRequest(schedule_id=schedule.id, name="renamed"),
        )

        assert result.data.name == "renamed"
        assert result.data.next_run == armed.run_at.isoformat()


class TestActivation:
    def test_pause_and_resume(self, live_ctx, registry, make_schedule):
        schedule = make_schedule()
        registry.install(schedule)

        paused = set_schedule_active(live_ctx, SetScheduleActiveRequest(schedule_id=schedule.id, active=False))
        assert paused.data.active is False
        assert paused.data.next_run is None
        assert schedule.id not in registry

        resumed = set_schedule_active(live_ctx, SetScheduleActiveRequest(schedule_id=schedule.id, active=True))
        assert resumed.data.active is True
        assert schedule.id in registry

    def test_no_change_is_noop(self, ctx, make_schedule):
        schedule = make_schedule()
        result = set_schedule_active(ctx, SetScheduleActiveRequest(schedule_id=schedule.id, active=True))
        assert result.success
        assert result.data.version == 1


class TestDeleteSchedule:
    def test_delete_uninstalls_and_keeps_runs(self, live_ctx, registry, schedules, runs, make_schedule):
        schedule = make_schedule()
        registry.install(schedule)
        runs.create(schedule.collection_id, "alice", total_tests=1, schedule_id=schedule.id)

        result = delete_schedule(live_ctx, DeleteScheduleRequest(schedule_id=schedule.id))

        assert result.data.deleted is True
        assert schedules.get(schedule.id) is None
        assert schedule.id not in registry
        assert runs.list_runs("alice", schedule_id=schedule.id)[1] == 1

    def test_dry_run(self, make_ctx, schedules, make_schedule):
        schedule = make_schedule()
        result = delete_schedule(make_ctx(dry_run=True), DeleteScheduleRequest(schedule_id=schedule.id))
        assert result.data.deleted is False
        assert result.data.dry_run is True
        assert schedules.get(schedule.id) is not None

    def test_foreign(self, ctx, make_schedule):
        schedule = make_schedule(owner_id="bob")
        assert delete_schedule(ctx, DeleteScheduleRequest(schedule_id=schedule.id)).error.code == "FORBIDDEN"


class TestRunNow:
    @pytest.mark.asyncio
    async def test_returns_run_detail(self, ctx, schedules, make_collection, make_schedule):
        collection = make_collection(paths=("/ok", "/boom"))
        schedule = make_schedule(collection_id=collection.id)

        result = await run_schedule_now(ctx, RunScheduleNowRequest(schedule_id=schedule.id))

        assert result.success, result.error
        detail = result.data
        assert detail.run.schedule_id == schedule.id
        assert detail.run.success_count == 1
        assert [r.test_name for r in detail.results] == ["GET /ok", "GET /boom"]
        assert detail.dispatch["status"] == "completed"
        assert "run" not in detail.dispatch
        assert schedules.get(schedule.id).last_run is None

    @pytest.mark.asyncio
    async def test_record_last_run(self, ctx, schedules, make_schedule):
        schedule = make_schedule()
        await run_schedule_now(ctx, RunScheduleNowRequest(schedule_id=schedule.id, record_last_run=True))
        assert schedules.get(schedule.id).last_run is not None

    @pytest.mark.asyncio
    async def test_empty_collection(self, ctx, runs, make_collection, make_schedule):
        schedule = make_schedule(collection_id=make_collection("empty", paths=()).id)
        result = await run_schedule_now(ctx, RunScheduleNowRequest(schedule_id=schedule.id))
        assert result.error.code == "EMPTY_COLLECTION"
        assert runs.list_runs("alice")[1] == 0

    @pytest.mark.asyncio
    async def test_foreign_schedule(self, ctx, make_schedule):
        schedule = make_schedule(owner_id="bob")
        result = await run_schedule_now(ctx, RunScheduleNowRequest(schedule_id=schedule.id))
        assert result.error.code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_dry_run(self, make_ctx, runs, make_schedule):
        schedule = make_schedule()
        result = await run_schedule_now(make_ctx(dry_run=True), RunScheduleNowRequest(schedule_id=schedule.id))
        assert result.success
        assert result.data is None
        assert runs.list_runs("alice")[1] == 0

    @pytest.mark.asyncio
    async def test_undelivered_report_is_a_warning(self, ctx, make_schedule):
        schedule = make_schedule(notify=NotifySettings(enabled=True, recipient="ops@example.com"))
        result = await run_schedule_now(ctx, RunScheduleNowRequest(schedule_id=schedule.id, notify=True))
        assert result.success
        assert result.data.dispatch["notified"] is False
        assert result.warnings == ["run report was not delivered"]
