"""
Typed response objects for operations.

Each dataclass represents the *output* of a single operation beyond the
generic :class:`OperationResult` envelope.  Responses carry only domain
data: no CLI formatting, no model objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------ #
# Schedule responses
# ------------------------------------------------------------------ #


@dataclass(slots=True)
class ScheduleSummary:
    """Compact schedule representation for list views."""

    schedule_id: str
    name: str
    collection_id: str
    recurrence: str = ""  # human-readable, e.g. "Every weekday at 09:00"
    active: bool = True
    last_run: str | None = None
    next_run: str | None = None


@dataclass(slots=True)
class ScheduleDetail:
    """Full schedule representation (single-item view)."""

    schedule_id: str
    name: str
    collection_id: str
    kind: str = ""
    minute_interval: int | None = None
    hour_interval: int | None = None
    time_of_day: str | None = None
    weekday: str | None = None
    description: str = ""
    cron_expression: str = ""
    active: bool = True
    last_run: str | None = None
    next_run: str | None = None
    armed: bool = False
    notify_enabled: bool = False
    notify_recipient: str | None = None
    created_at: str = ""
    updated_at: str = ""
    version: int = 1


@dataclass(frozen=True, slots=True)
class ScheduleDeleted:
    schedule_id: str
    deleted: bool = True
    dry_run: bool = False


# ------------------------------------------------------------------ #
# Collection responses
# ------------------------------------------------------------------ #


@dataclass(slots=True)
class TestSummary:
    """One test of a collection."""

    __test__ = False

    test_id: str
    name: str
    method: str
    url: str
    expected_status: int | None = None
    position: int = 0


@dataclass(slots=True)
class CollectionSummary:
    """Compact collection representation for list views."""

    collection_id: str
    name: str
    description: str | None = None
    test_count: int = 0


@dataclass(slots=True)
class CollectionDetail:
    """Collection with its tests in display order."""

    collection_id: str
    name: str
    description: str | None = None
    tests: list[TestSummary] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CollectionDeleted:
    """Outcome of deleting a collection.

    Schedules that ran the collection are deleted with it.
    """

    collection_id: str
    deleted: bool = True
    dry_run: bool = False
    schedule_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TestDeleted:
    __test__ = False

    test_id: str
    deleted: bool = True
    dry_run: bool = False


# ------------------------------------------------------------------ #
# Run responses
# ------------------------------------------------------------------ #


@dataclass(slots=True)
class RunSummary:
    """Compact run representation for list views."""

    run_id: str
    collection_id: str
    schedule_id: str | None = None
    status: str = ""
    started_at: str = ""
    completed_at: str | None = None
    total_tests: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0


@dataclass(slots=True)
class ResultSummary:
    """Outcome of one test within a run."""

    test_id: str
    test_name: str
    status_code: int
    duration_ms: float
    success: bool
    error: str | None = None


@dataclass(slots=True)
class RunDetail:
    """Full run representation with its per-test results."""

    run: RunSummary
    results: list[ResultSummary] = field(default_factory=list)
    dispatch: dict[str, Any] | None = None
