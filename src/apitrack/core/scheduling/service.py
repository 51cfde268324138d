"""Scheduler service - process-level lifecycle of the scheduling subsystem.

Manifesto:
    The registry and dispatcher know how to arm and run one schedule. The
    service owns everything that happens once per process: recovering
    after a restart, keeping the armed set in line with the store,
    retiring runs a crash left ``running``, and shutting down cleanly.

Tags:
    scheduling, orchestrator, service, lifecycle

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE                                                            │
│                                                                               │
│   start()                                                                     │
│   ├── sweep_stale_runs()           running runs older than N min → failed    │
│   ├── registry.install_all()       (push mode)                               │
│   └── tick_backend.start(_tick)                                               │
│                                                                               │
│   _tick()                                                                     │
│   ├── push mode: registry.reconcile(overdue_after=tick)                       │
│   ├── poll mode: dispatch_due():                                              │
│   │       is_due_now(rule, due_anchor, now) → dispatch(id)                    │
│   └── every 6th tick: sweep_stale_runs()                                      │
│                                                                               │
│   stop()                                                                      │
│   ├── tick_backend.stop()                                                     │
│   └── registry.shutdown()                                                     │
│                                                                               │
│  Push mode fires each schedule from its own one-shot trigger. Poll mode      │
│  needs no timers per schedule but only fires on ticks, so tick_seconds       │
│  must stay well below the due tolerance.                                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from apitrack.core.logging import get_logger
from apitrack.core.repositories.runs import RunRepository
from apitrack.core.repositories.schedules import ScheduleRepository
from apitrack.core.settings import Settings

from .dispatcher import DispatchOutcome, DispatchStatus, ScheduleDispatcher
from .protocol import SchedulerBackend
from .recurrence import is_due_now
from .registry import ScheduleRegistry

logger = get_logger(__name__)

STALE_SWEEP_EVERY_TICKS = 6


@dataclass
class SchedulerStats:
    """Statistics for scheduler service."""

    tick_count: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0
    reconciled: int = 0
    stale_runs_marked: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "failed": self.failed,
            "reconciled": self.reconciled,
            "stale_runs_marked": self.stale_runs_marked,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for scheduler service."""

    healthy: bool
    mode: str
    tick_backend: dict
    trigger_backend: dict
    schedules_active: int = 0
    triggers_armed: int = 0
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "mode": self.mode,
            "tick_backend": self.tick_backend,
            "trigger_backend": self.trigger_backend,
            "schedules_active": self.schedules_active,
            "triggers_armed": self.triggers_armed,
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Owns startup recovery, periodic reconciliation and shutdown.

    Example:
        >>> service = create_scheduler(conn, settings=settings)
        >>> service.start()
        >>> # ... later ...
        >>> service.stop()
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        dispatcher: ScheduleDispatcher,
        schedules: ScheduleRepository,
        runs: RunRepository,
        tick_backend: SchedulerBackend,
        *,
        settings: Settings | None = None,
        mode: Literal["push", "poll"] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.schedules = schedules
        self.runs = runs
        self.tick_backend = tick_backend
        self.settings = settings or Settings()
        self.mode = mode or self.settings.scheduler_mode
        self._clock = clock or (lambda: datetime.now(UTC))

        self._stats = SchedulerStats()
        self._running = False

        self.registry.fire_handler = self.dispatch

    # === Lifecycle ===

    def start(self) -> None:
        """Recover state and start ticking."""
        if self._running:
            logger.warning("scheduler.already_running")
            return

        self.sweep_stale_runs()
        armed = self.registry.install_all() if self.mode == "push" else 0

        self.tick_backend.start(self._tick, self.settings.tick_seconds)
        self._running = True
        logger.info(
            "scheduler.started",
            mode=self.mode,
            armed=armed,
            tick_backend=self.tick_backend.name,
            trigger_backend=self.registry.backend.name,
            tick_seconds=self.settings.tick_seconds,
        )

    def stop(self) -> None:
        """Stop ticking and cancel all triggers."""
        if not self._running:
            return

        logger.info("scheduler.stopping")
        self.tick_backend.stop()
        self.registry.shutdown()
        self._running = False
        logger.info("scheduler.stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Tick Processing ===

    async def _tick(self) -> None:
        """Single tick - reconcile (push) or dispatch due schedules (poll)."""
        self._stats.tick_count += 1
        self._stats.last_tick = self._clock()

        try:
            if self._stats.tick_count % STALE_SWEEP_EVERY_TICKS == 0:
                self.sweep_stale_runs()

            if self.mode == "push":
                report = self.registry.reconcile(
                    overdue_after=timedelta(seconds=self.settings.tick_seconds)
                )
                if report.changed:
                    self._stats.reconciled += 1
            else:
                await self.dispatch_due()
        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception("scheduler.tick_failed", error=str(e))

    async def dispatch(self, schedule_id: str) -> DispatchOutcome:
        """Dispatch one schedule and count the outcome.

        This is the registry's fire handler in push mode and the per-schedule
        step of :meth:`dispatch_due` in poll mode.
        """
        outcome = await self.dispatcher.on_fire(schedule_id)
        if outcome.status is DispatchStatus.COMPLETED:
            self._stats.dispatched += 1
        elif outcome.status is DispatchStatus.FAILED:
            self._stats.failed += 1
            self._stats.last_error = outcome.error
        else:
            self._stats.skipped += 1
        return outcome

    async def dispatch_due(self) -> list[DispatchOutcome]:
        """Dispatch every active schedule that is due now (poll mode).

        Due-ness is measured from the last attempt as well as the last
        completed run, so a failed or empty dispatch is retried at the next
        occurrence rather than on every tick.
        """
        now = self._clock()
        due = [
            schedule
            for schedule in self.schedules.list_active()
            if is_due_now(
                schedule.recurrence,
                schedule.due_anchor,
                now,
                self.settings.due_tolerance_seconds,
                tz=self.settings.tzinfo,
            )
        ]
        if not due:
            logger.debug("scheduler.none_due")
            return []

        logger.info("scheduler.due", count=len(due))
        return [await self.dispatch(schedule.id) for schedule in due]

    def sweep_stale_runs(self) -> int:
        """Mark runs left ``running`` past ``stale_run_minutes`` as failed."""
        marked = self.runs.mark_stale(
            timedelta(minutes=self.settings.stale_run_minutes), now=self._clock()
        )
        if marked:
            self._stats.stale_runs_marked += marked
            logger.warning("scheduler.stale_runs_marked", count=marked)
        return marked

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        tick_health = self.tick_backend.health()
        trigger_health = self.registry.backend.health()
        return SchedulerHealth(
            healthy=self._running
            and tick_health.get("healthy", False)
            and trigger_health.get("healthy", False),
            mode=self.mode,
            tick_backend=tick_health,
            trigger_backend=trigger_health,
            schedules_active=self.schedules.count_active(),
            triggers_armed=len(self.registry),
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()
