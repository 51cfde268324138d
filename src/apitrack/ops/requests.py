"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function.  Requests carry only transport-agnostic data: no Typer params,
no raw rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ------------------------------------------------------------------ #
# Schedule operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class CreateScheduleRequest:
    """Request for :func:`apitrack.ops.schedules.create_schedule`.

    Attributes:
        name: Schedule name, unique per owner.
        collection_id: Collection the schedule runs.
        kind: ``"minute"``, ``"hour"``, ``"day"`` or ``"week"``.
        minute_interval: Required for ``minute``.
        hour_interval: Required for ``hour``.
        time_of_day: ``"HH:MM"``; required for ``day`` and ``week``.
        weekday: ``"monday"`` … ``"sunday"``, ``"weekday"`` or ``"everyday"``;
            required for ``week``.
        active: Whether the schedule fires.
        notify_enabled: Send a report after each scheduled run.
        notify_recipient: Report recipient; required when notifying.
    """

    name: str = ""
    collection_id: str = ""
    kind: str = ""
    minute_interval: int | None = None
    hour_interval: int | None = None
    time_of_day: str | None = None
    weekday: str | None = None
    active: bool = True
    notify_enabled: bool = False
    notify_recipient: str | None = None


@dataclass(frozen=True, slots=True)
class UpdateScheduleRequest:
    """Request for :func:`apitrack.ops.schedules.update_schedule`.

    ``None`` means unchanged. Changing ``kind`` drops the fields of the old
    kind, so the new kind's fields must be supplied alongside it.
    """

    schedule_id: str = ""
    name: str | None = None
    collection_id: str | None = None
    kind: str | None = None
    minute_interval: int | None = None
    hour_interval: int | None = None
    time_of_day: str | None = None
    weekday: str | None = None
    notify_enabled: bool | None = None
    notify_recipient: str | None = None

    @property
    def changes_recurrence(self) -> bool:
        return any(
            value is not None
            for value in (
                self.kind,
                self.minute_interval,
                self.hour_interval,
                self.time_of_day,
                self.weekday,
            )
        )

    @property
    def changes_notify(self) -> bool:
        return self.notify_enabled is not None or self.notify_recipient is not None


@dataclass(frozen=True, slots=True)
class GetScheduleRequest:
    schedule_id: str = ""


@dataclass(frozen=True, slots=True)
class DeleteScheduleRequest:
    schedule_id: str = ""


@dataclass(frozen=True, slots=True)
class SetScheduleActiveRequest:
    """Request for :func:`apitrack.ops.schedules.set_schedule_active`."""

    schedule_id: str = ""
    active: bool = True


@dataclass(frozen=True, slots=True)
class ListSchedulesRequest:
    active_only: bool = False


@dataclass(frozen=True, slots=True)
class RunScheduleNowRequest:
    """Request for :func:`apitrack.ops.schedules.run_schedule_now`.

    Attributes:
        schedule_id: Schedule to run.
        record_last_run: Store the run instant as the schedule's ``last_run``,
            which moves its next scheduled run.
        notify: Send the report as a scheduled run would.
    """

    schedule_id: str = ""
    record_last_run: bool = False
    notify: bool = False


# ------------------------------------------------------------------ #
# Collection operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class CreateCollectionRequest:
    name: str = ""
    description: str | None = None


@dataclass(frozen=True, slots=True)
class GetCollectionRequest:
    collection_id: str = ""


@dataclass(frozen=True, slots=True)
class AddTestRequest:
    """Request for :func:`apitrack.ops.collections.add_test`.

    Attributes:
        collection_id: Collection to append the test to.
        name: Test name, unique within the collection.
        method: HTTP method.
        url: Absolute URL.
        headers: Request headers.
        body: Raw body; only sent for POST, PUT and PATCH.
        expected_status: Status checked by the ``expected_status`` policy.
    """

    collection_id: str = ""
    name: str = ""
    method: str = "GET"
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    expected_status: int | None = None


@dataclass(frozen=True, slots=True)
class UpdateCollectionRequest:
    """Request for :func:`apitrack.ops.collections.update_collection`.

    ``None`` means unchanged.
    """

    collection_id: str = ""
    name: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class DeleteCollectionRequest:
    collection_id: str = ""


@dataclass(frozen=True, slots=True)
class UpdateTestRequest:
    """Request for :func:`apitrack.ops.collections.update_test`.

    ``None`` means unchanged. ``clear_body`` and ``clear_expected_status``
    drop a stored body or expected status.
    """

    test_id: str = ""
    name: str | None = None
    method: str | None = None
    url: str | None = None
    headers: dict[str, str] | None = None
    body: str | None = None
    expected_status: int | None = None
    clear_body: bool = False
    clear_expected_status: bool = False


@dataclass(frozen=True, slots=True)
class DeleteTestRequest:
    test_id: str = ""


@dataclass(frozen=True, slots=True)
class RunCollectionRequest:
    collection_id: str = ""


@dataclass(frozen=True, slots=True)
class RunTestRequest:
    test_id: str = ""


# ------------------------------------------------------------------ #
# Run history operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ListRunsRequest:
    """Request for :func:`apitrack.ops.runs.list_runs`."""

    collection_id: str | None = None
    schedule_id: str | None = None
    status: str | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True, slots=True)
class GetRunRequest:
    """Request for :func:`apitrack.ops.runs.get_run`."""

    run_id: str = ""
    failed_only: bool = False
