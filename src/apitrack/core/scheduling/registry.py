"""Schedule registry - one armed trigger per active schedule.

Manifesto:
    Each active schedule has exactly one pending one-shot trigger, set for
    the instant ``next_run_after`` computes. Firing dispatches the run and
    then re-arms from the updated ``last_run``, so the cadence follows
    what actually happened rather than a fixed period.

Tags:
    scheduling, registry, triggers, concurrency

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE REGISTRY                                                            │
│                                                                               │
│   install(schedule)      cancel existing → next_run_after → backend.arm      │
│   uninstall(id)          cancel; no-op when nothing is armed                 │
│   install_all()          startup recovery from persisted active schedules    │
│   reconcile()            pick up edits made by other processes (version)     │
│   shutdown()             cancel everything                                    │
│                                                                               │
│   Fire path (timer thread):                                                   │
│   ┌───────────────────────────────────────────────────────────────────┐      │
│   │ _fire(id, token)                                                  │      │
│   │   ├── token != armed[id].token  → stale trigger, drop             │      │
│   │   ├── await fire_handler(id)    → ScheduleDispatcher.on_fire      │      │
│   │   └── token == armed[id].token  → re-arm from persisted schedule  │      │
│   │       otherwise an edit re-installed meanwhile; keep that one     │      │
│   └───────────────────────────────────────────────────────────────────┘      │
│                                                                               │
│   Locking: registry lock guards the maps; a per-schedule lock serializes     │
│   install / uninstall / re-arm for one id. Dispatch runs with no lock held.  │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, tzinfo
from functools import partial
from typing import Any

from apitrack.core.logging import get_logger
from apitrack.core.models.schedule import Schedule
from apitrack.core.repositories.schedules import ScheduleRepository

from .protocol import TriggerBackend, TriggerHandle
from .recurrence import next_run_after

logger = get_logger(__name__)

FireHandler = Callable[[str], Awaitable[Any]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class _Armed:
    handle: TriggerHandle
    token: int
    run_at: datetime
    version: int


@dataclass
class ReconcileReport:
    """What a reconcile pass changed."""

    installed: list[str] = field(default_factory=list)
    reinstalled: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.installed or self.reinstalled or self.removed)


class ScheduleRegistry:
    """Keeps one pending trigger per active schedule.

    Example:
        >>> registry = ScheduleRegistry(schedules, ThreadTriggerBackend())
        >>> registry.fire_handler = dispatcher.on_fire
        >>> registry.install_all()
        3
        >>> registry.next_run(schedule.id)
        datetime.datetime(2026, 1, 5, 9, 0, tzinfo=datetime.timezone.utc)
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        backend: TriggerBackend,
        *,
        fire_handler: FireHandler | None = None,
        tz: tzinfo = UTC,
        clock: Clock = _utcnow,
    ) -> None:
        self.schedules = schedules
        self.backend = backend
        self.fire_handler = fire_handler
        self.tz = tz
        self._clock = clock

        self._lock = threading.RLock()
        self._id_locks: dict[str, threading.RLock] = {}
        self._armed: dict[str, _Armed] = {}
        self._tokens = itertools.count(1)

    def _id_lock(self, schedule_id: str) -> threading.RLock:
        with self._lock:
            lock = self._id_locks.get(schedule_id)
            if lock is None:
                lock = self._id_locks[schedule_id] = threading.RLock()
            return lock

    # === Install / Uninstall ===

    def install(self, schedule: Schedule) -> datetime | None:
        """Arm (or re-arm) the trigger for a schedule.

        Any existing trigger for the schedule is cancelled first. Inactive
        schedules end up with no trigger.

        Returns:
            The instant the new trigger fires, or None if nothing was armed.
        """
        with self._id_lock(schedule.id):
            return self._install_locked(schedule)

    def _install_locked(self, schedule: Schedule, not_before: datetime | None = None) -> datetime | None:
        self._cancel_locked(schedule.id)

        if not schedule.active:
            logger.debug("registry.skip_inactive", schedule_id=schedule.id)
            return None

        now = self._clock()
        if not_before is not None and not_before > now:
            now = not_before
        run_at = next_run_after(schedule.recurrence, schedule.last_run, now, tz=self.tz)
        if run_at is None:
            return None

        token = next(self._tokens)
        handle = self.backend.arm(schedule.id, run_at, partial(self._fire, schedule.id, token))
        with self._lock:
            self._armed[schedule.id] = _Armed(
                handle=handle, token=token, run_at=run_at, version=schedule.version
            )
        logger.info(
            "registry.installed",
            schedule_id=schedule.id,
            name=schedule.name,
            run_at=run_at.isoformat(),
        )
        return run_at

    def uninstall(self, schedule_id: str) -> bool:
        """Cancel a schedule's trigger.

        Returns:
            True if a trigger was cancelled, False if none was armed.
        """
        with self._id_lock(schedule_id):
            removed = self._cancel_locked(schedule_id)
        if removed:
            logger.info("registry.uninstalled", schedule_id=schedule_id)
        return removed

    def _cancel_locked(self, schedule_id: str) -> bool:
        with self._lock:
            entry = self._armed.pop(schedule_id, None)
        if entry is None:
            return False
        self.backend.cancel(entry.handle)
        return True

    def install_all(self) -> int:
        """Install a trigger for every persisted active schedule.

        Returns:
            Number of triggers armed
        """
        count = 0
        for schedule in self.schedules.list_active():
            try:
                if self.install(schedule) is not None:
                    count += 1
            except Exception:
                logger.exception("registry.install_failed", schedule_id=schedule.id)
        logger.info("registry.install_all", armed=count)
        return count

    def reconcile(self, *, overdue_after: timedelta | None = None) -> ReconcileReport:
        """Bring the armed set in line with the store.

        New or edited (version changed) active schedules are (re)installed;
        armed schedules that were deleted or deactivated are uninstalled.

        Args:
            overdue_after: When given, a trigger whose instant is further in
                the past than this and that never fired (a backend dropped
                it, or the process was suspended) is re-armed as well.
        """
        report = ReconcileReport()
        versions = self.schedules.active_versions()

        overdue: set[str] = set()
        with self._lock:
            armed_versions = {sid: entry.version for sid, entry in self._armed.items()}
            if overdue_after is not None:
                cutoff = self._clock() - overdue_after
                overdue = {
                    sid
                    for sid, entry in self._armed.items()
                    if entry.run_at < cutoff and not entry.handle.fired
                }

        for schedule_id, version in versions.items():
            armed_version = armed_versions.get(schedule_id)
            if armed_version == version and schedule_id not in overdue:
                continue
            if schedule_id in overdue:
                logger.warning("registry.overdue_trigger", schedule_id=schedule_id)
            schedule = self.schedules.get(schedule_id)
            if schedule is None:
                continue
            if self.install(schedule) is None:
                continue
            if armed_version is None:
                report.installed.append(schedule_id)
            else:
                report.reinstalled.append(schedule_id)

        for schedule_id in armed_versions.keys() - versions.keys():
            if self.uninstall(schedule_id):
                report.removed.append(schedule_id)

        if report.changed:
            logger.info(
                "registry.reconciled",
                installed=len(report.installed),
                reinstalled=len(report.reinstalled),
                removed=len(report.removed),
            )
        return report

    def shutdown(self) -> None:
        """Cancel every trigger."""
        with self._lock:
            schedule_ids = list(self._armed)
        for schedule_id in schedule_ids:
            self.uninstall(schedule_id)
        self.backend.shutdown()
        logger.info("registry.shutdown", cancelled=len(schedule_ids))

    # === Fire path ===

    async def _fire(self, schedule_id: str, token: int) -> None:
        with self._lock:
            entry = self._armed.get(schedule_id)
        if entry is None or entry.token != token:
            logger.debug("registry.stale_trigger", schedule_id=schedule_id)
            return

        try:
            if self.fire_handler is None:
                logger.warning("registry.no_fire_handler", schedule_id=schedule_id)
            else:
                await self.fire_handler(schedule_id)
        finally:
            self._rearm(schedule_id, token, entry.run_at)

    def _rearm(self, schedule_id: str, token: int, fired_at: datetime) -> None:
        with self._id_lock(schedule_id):
            with self._lock:
                entry = self._armed.get(schedule_id)
            if entry is None or entry.token != token:
                # uninstalled or re-installed during dispatch
                return
            schedule = self.schedules.get(schedule_id)
            if schedule is None:
                self._cancel_locked(schedule_id)
                return
            self._install_locked(schedule, not_before=fired_at + timedelta(microseconds=1))

    # === Inspection ===

    def armed(self) -> dict[str, datetime]:
        """Map of schedule id to the instant its trigger fires."""
        with self._lock:
            return {sid: entry.run_at for sid, entry in self._armed.items()}

    def next_run(self, schedule_id: str) -> datetime | None:
        with self._lock:
            entry = self._armed.get(schedule_id)
        return entry.run_at if entry else None

    def __contains__(self, schedule_id: object) -> bool:
        with self._lock:
            return schedule_id in self._armed

    def __len__(self) -> int:
        with self._lock:
            return len(self._armed)
