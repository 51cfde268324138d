"""Dataclass models for apitrack.

Modules
-------
recurrence
    RecurrenceRule value object and its enums.
schedule
    Schedule aggregate and notification settings.
collection
    Collections and the HTTP test definitions they hold.
run
    Runs and per-test results.
"""

from apitrack.core.models.collection import Collection, TestDefinition
from apitrack.core.models.recurrence import (
    RecurrenceKind,
    RecurrenceRule,
    TimeOfDay,
    WeekdaySelector,
)
from apitrack.core.models.run import Result, Run, RunStatus, RunTrigger
from apitrack.core.models.schedule import NotifySettings, Schedule

__all__ = [
    "Collection",
    "NotifySettings",
    "RecurrenceKind",
    "RecurrenceRule",
    "Result",
    "Run",
    "RunStatus",
    "RunTrigger",
    "Schedule",
    "TestDefinition",
    "TimeOfDay",
    "WeekdaySelector",
]
