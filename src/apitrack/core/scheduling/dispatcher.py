"""Schedule dispatcher - what happens when a schedule's trigger fires.

Manifesto:
    A trigger is only a hint that a schedule might be due. The dispatcher
    re-reads the schedule, confirms it is still active, runs its
    collection, records ``last_run`` and sends the report. A failure in
    any step is logged and leaves the schedule active; it never takes the
    scheduler down with it.

Tags:
    scheduling, dispatcher, execution, notifications

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  on_fire(schedule_id)                                                         │
│                                                                               │
│   1. reload schedule ── missing / inactive ──► uninstall, SKIPPED             │
│   2. load collection ── missing / no tests ──► log, EMPTY (no Run)            │
│   3. CollectionRunner.run(collection, RunTrigger(owner, schedule))            │
│   4. last_run = dispatch instant                                              │
│   5. notify.enabled ──► sink.send(recipient, RunReport)  (failures logged)    │
│                                                                               │
│   Steps 2-4 raising ──► log, FAILED; schedule stays active                    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from apitrack.core.errors import (
    DispatchError,
    EmptyCollectionError,
    NotFoundError,
    categorize_error,
    is_retryable,
)
from apitrack.core.logging import LogContext, get_logger
from apitrack.core.models.run import Run, RunTrigger
from apitrack.core.models.schedule import Schedule
from apitrack.core.repositories.collections import CollectionRepository
from apitrack.core.repositories.runs import RunRepository
from apitrack.core.repositories.schedules import ScheduleRepository
from apitrack.execution.runner import CollectionRunner
from apitrack.notifications.protocol import NotificationSink, RunReport

if TYPE_CHECKING:
    from .registry import ScheduleRegistry

logger = get_logger(__name__)


class DispatchStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"  # schedule gone or inactive
    EMPTY = "empty"  # collection missing or has no tests
    FAILED = "failed"


@dataclass
class DispatchOutcome:
    """Result of one dispatch."""

    schedule_id: str
    status: DispatchStatus
    dispatched_at: datetime
    run: Run | None = None
    notified: bool | None = None
    error: str | None = None
    error_category: str | None = None
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "status": self.status.value,
            "dispatched_at": self.dispatched_at.isoformat(),
            "run": self.run.to_dict() if self.run else None,
            "notified": self.notified,
            "error": self.error,
            "error_category": self.error_category,
            "retryable": self.retryable,
        }


class ScheduleDispatcher:
    """Runs a schedule's collection when its trigger fires.

    Parameters
    ----------
    schedules, collections, runs : repositories
        Store access.
    runner : CollectionRunner
        Executes the collection.
    sink : NotificationSink | None
        Where reports go when a schedule has notifications enabled.
    registry : ScheduleRegistry | None
        Used to uninstall schedules found inactive or deleted at fire time,
        and to re-arm after a run-now that records ``last_run``.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        collections: CollectionRepository,
        runs: RunRepository,
        runner: CollectionRunner,
        *,
        sink: NotificationSink | None = None,
        registry: ScheduleRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.schedules = schedules
        self.collections = collections
        self.runs = runs
        self.runner = runner
        self.sink = sink
        self.registry = registry
        self._clock = clock or (lambda: datetime.now(UTC))

    # === Trigger path ===

    async def on_fire(self, schedule_id: str) -> DispatchOutcome:
        """Handle a trigger fire. Never raises."""
        dispatched_at = self._clock()

        async with LogContext(schedule_id=schedule_id):
            schedule = self.schedules.get(schedule_id)
            if schedule is None or not schedule.active:
                logger.info(
                    "dispatch.skipped",
                    reason="deleted" if schedule is None else "inactive",
                )
                if self.registry is not None:
                    self.registry.uninstall(schedule_id)
                return DispatchOutcome(schedule_id, DispatchStatus.SKIPPED, dispatched_at)

            try:
                self.schedules.set_last_attempt(schedule.id, dispatched_at)
                collection = self.collections.get(schedule.collection_id)
                if collection is None or collection.is_empty:
                    logger.warning(
                        "dispatch.empty_collection",
                        collection_id=schedule.collection_id,
                        missing=collection is None,
                    )
                    return DispatchOutcome(schedule_id, DispatchStatus.EMPTY, dispatched_at)

                run = await self.runner.run(
                    collection, RunTrigger(owner_id=schedule.owner_id, schedule_id=schedule.id)
                )
                self.schedules.set_last_run(schedule.id, dispatched_at)
            except Exception as e:
                error = DispatchError(
                    f"Dispatch of schedule {schedule.name} failed",
                    category=categorize_error(e),
                    retryable=is_retryable(e),
                    cause=e,
                )
                error.with_context(schedule_id=schedule.id, collection_id=schedule.collection_id)
                logger.exception("dispatch.failed", **error.to_dict())
                return DispatchOutcome(
                    schedule_id,
                    DispatchStatus.FAILED,
                    dispatched_at,
                    error=str(e),
                    error_category=error.category.value,
                    retryable=error.retryable,
                )

            notified = None
            if schedule.notify.enabled:
                notified = await self._notify(schedule, run)

            logger.info(
                "dispatch.completed",
                run_id=run.id,
                success_count=run.success_count,
                failure_count=run.failure_count,
                notified=notified,
            )
            return DispatchOutcome(
                schedule_id, DispatchStatus.COMPLETED, dispatched_at, run=run, notified=notified
            )

    # === Manual path ===

    async def run_now(
        self,
        schedule_id: str,
        *,
        record_last_run: bool = False,
        notify: bool = False,
    ) -> DispatchOutcome:
        """Run a schedule's collection immediately, outside its trigger.

        Unlike :meth:`on_fire`, lookup problems raise so the caller can
        report them.

        Raises:
            NotFoundError: Schedule or collection does not exist
            EmptyCollectionError: The collection has no tests
        """
        dispatched_at = self._clock()
        schedule = self.schedules.get(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        collection = self.collections.get(schedule.collection_id)
        if collection is None:
            raise NotFoundError("Collection", schedule.collection_id)
        if collection.is_empty:
            raise EmptyCollectionError(collection.id)

        async with LogContext(schedule_id=schedule_id):
            run = await self.runner.run(
                collection, RunTrigger(owner_id=schedule.owner_id, schedule_id=schedule.id)
            )
            if record_last_run:
                self.schedules.set_last_run(schedule.id, dispatched_at)
                if self.registry is not None and schedule.active:
                    self.registry.install(schedule.with_last_run(dispatched_at))

            notified = None
            if notify and schedule.notify.enabled:
                notified = await self._notify(schedule, run)

            logger.info("dispatch.run_now", run_id=run.id, record_last_run=record_last_run)
            return DispatchOutcome(
                schedule_id, DispatchStatus.COMPLETED, dispatched_at, run=run, notified=notified
            )

    # === Notification ===

    async def _notify(self, schedule: Schedule, run: Run) -> bool:
        """Send the run report; failures are logged and reported as False."""
        if self.sink is None:
            logger.warning("dispatch.no_sink", run_id=run.id)
            return False

        report = RunReport(
            schedule_name=schedule.name,
            run=run,
            failed_results=self.runs.list_results(run.id, failed_only=True),
        )
        try:
            result = await asyncio.to_thread(self.sink.send, schedule.notify.recipient, report)
        except Exception as e:
            logger.exception(
                "dispatch.notify_failed", run_id=run.id, sink=self.sink.name, error=str(e)
            )
            return False

        if not result.success:
            logger.warning(
                "dispatch.notify_failed", run_id=run.id, sink=self.sink.name, error=result.message
            )
        return result.success
