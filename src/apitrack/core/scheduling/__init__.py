"""Scheduling package for apitrack.

Manifesto:
    A recurring API check is only useful if it fires when it should, once,
    and keeps firing after edits, restarts and failing targets. This
    package turns persisted schedules into armed triggers and fired
    triggers into recorded runs.

┌──────────────────────────────────────────────────────────────────────────────┐
│  APITRACK SCHEDULER                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from apitrack.core.scheduling import create_scheduler              │   │
│  │                                                                      │   │
│  │   scheduler = create_scheduler(conn, settings=settings)              │   │
│  │   scheduler.start()                                                  │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Architecture:                                                                │
│                                                                               │
│   recurrence.py   next_run_after / is_due_now  (pure)                         │
│        │                                                                      │
│   registry.py     ScheduleRegistry ── TriggerBackend (thread | apscheduler)  │
│        │ fire                                                                 │
│   dispatcher.py   ScheduleDispatcher ── CollectionRunner ── NotificationSink  │
│        │                                                                      │
│   service.py      SchedulerService ── SchedulerBackend tick (reconcile/poll)  │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    scheduling, triggers, recurrence, pluggable-backends

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from apitrack.core.protocols import Connection
from apitrack.core.repositories import CollectionRepository, RunRepository, ScheduleRepository
from apitrack.core.settings import Settings
from apitrack.execution.runner import CollectionRunner
from apitrack.notifications.protocol import NotificationSink

from .dispatcher import DispatchOutcome, DispatchStatus, ScheduleDispatcher
from .protocol import BackendHealth, SchedulerBackend, TriggerBackend, TriggerHandle
from .recurrence import describe, is_due_now, next_run_after, to_cron_expression
from .registry import ReconcileReport, ScheduleRegistry
from .service import SchedulerHealth, SchedulerService, SchedulerStats
from .thread_backend import ThreadSchedulerBackend, ThreadTriggerBackend


def __getattr__(name: str):  # noqa: N807
    """Lazy import optional backends to avoid ImportError when extras are missing."""
    if name == "APSchedulerTriggerBackend":
        from .apscheduler_backend import APSchedulerTriggerBackend

        return APSchedulerTriggerBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Calculator
    "describe",
    "is_due_now",
    "next_run_after",
    "to_cron_expression",
    # Protocol
    "BackendHealth",
    "SchedulerBackend",
    "TriggerBackend",
    "TriggerHandle",
    # Backends
    "APSchedulerTriggerBackend",  # noqa: F822
    "ThreadSchedulerBackend",
    "ThreadTriggerBackend",
    # Registry / dispatch
    "DispatchOutcome",
    "DispatchStatus",
    "ReconcileReport",
    "ScheduleDispatcher",
    "ScheduleRegistry",
    # Service
    "SchedulerHealth",
    "SchedulerService",
    "SchedulerStats",
    "create_scheduler",
]


def create_trigger_backend(name: str = "thread") -> TriggerBackend:
    """Build a trigger backend by name (``thread`` or ``apscheduler``)."""
    if name == "thread":
        return ThreadTriggerBackend()
    if name == "apscheduler":
        from .apscheduler_backend import APSchedulerTriggerBackend

        return APSchedulerTriggerBackend()
    raise ValueError(f"Unknown trigger backend: {name!r}. Available: apscheduler, thread")


def create_scheduler(
    conn: Connection,
    *,
    settings: Settings | None = None,
    sink: NotificationSink | None = None,
    trigger_backend: TriggerBackend | None = None,
    tick_backend: SchedulerBackend | None = None,
    runner: CollectionRunner | None = None,
) -> SchedulerService:
    """Factory function to create a fully wired scheduler service.

    Args:
        conn: Database connection
        settings: Settings (defaults to the environment)
        sink: Where run reports go; None disables delivery
        trigger_backend: One-shot timer backend (default: threads)
        tick_backend: Tick loop backend (default: thread)
        runner: Collection runner (default: built from settings)

    Returns:
        Configured SchedulerService

    Example:
        >>> scheduler = create_scheduler(conn, sink=ConsoleNotificationSink())
        >>> scheduler.start()
    """
    settings = settings or Settings()
    schedules = ScheduleRepository(conn)
    collections = CollectionRepository(conn)
    runs = RunRepository(conn)

    registry = ScheduleRegistry(
        schedules,
        trigger_backend or ThreadTriggerBackend(),
        tz=settings.tzinfo,
    )
    dispatcher = ScheduleDispatcher(
        schedules,
        collections,
        runs,
        runner or CollectionRunner(runs, settings),
        sink=sink,
        registry=registry,
    )
    return SchedulerService(
        registry=registry,
        dispatcher=dispatcher,
        schedules=schedules,
        runs=runs,
        tick_backend=tick_backend or ThreadSchedulerBackend(),
        settings=settings,
    )
