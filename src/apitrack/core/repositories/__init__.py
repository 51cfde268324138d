"""SQLite repositories for schedules, collections and run history."""

from apitrack.core.repositories.collections import CollectionRepository, TestCreate, TestUpdate
from apitrack.core.repositories.runs import RunRepository
from apitrack.core.repositories.schedules import (
    ScheduleCreate,
    ScheduleRepository,
    ScheduleUpdate,
)

__all__ = [
    "CollectionRepository",
    "RunRepository",
    "ScheduleCreate",
    "ScheduleRepository",
    "ScheduleUpdate",
    "TestCreate",
    "TestUpdate",
]
