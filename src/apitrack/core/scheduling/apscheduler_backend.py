"""APScheduler-based trigger backend.

Arms each trigger as an APScheduler 3.x ``date`` job on a
``BackgroundScheduler``. Useful when the process already runs an
APScheduler instance or when its misfire handling is wanted.

Requires the ``[apscheduler]`` extra::

    pip install apitrack[apscheduler]
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from .protocol import FireCallback, TriggerHandle

logger = logging.getLogger(__name__)


def _require_apscheduler():
    """Validate that apscheduler is installed."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        return BackgroundScheduler
    except ImportError:
        raise ImportError(
            "APScheduler is required for APSchedulerTriggerBackend. "
            "Install it with: pip install apitrack[apscheduler]"
        ) from None


class APSchedulerTriggerBackend:
    """Trigger backend on APScheduler ``date`` jobs.

    Example::

        >>> backend = APSchedulerTriggerBackend()
        >>> handle = backend.arm("sch_1", run_at, on_fire)
        >>> backend.shutdown()
    """

    name: str = "apscheduler"

    def __init__(self, misfire_grace_seconds: int | None = None) -> None:
        BackgroundScheduler = _require_apscheduler()  # noqa: N806
        self._scheduler = BackgroundScheduler(timezone=UTC)
        # None: a late job still runs however late it is
        self._misfire_grace_seconds = misfire_grace_seconds
        self._lock = threading.Lock()
        self._pending: dict[str, TriggerHandle] = {}
        self._fired_count = 0

    def _ensure_started(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APSchedulerTriggerBackend started")

    def arm(self, key: str, run_at: datetime, callback: FireCallback) -> TriggerHandle:
        self._ensure_started()
        job_id = f"{key}:{uuid4().hex}"
        handle = TriggerHandle(key=key, run_at=run_at, ref=job_id)

        def _fire() -> None:
            with self._lock:
                if handle.cancelled:
                    return
                handle.fired = True
                self._pending.pop(job_id, None)
                self._fired_count += 1
            try:
                asyncio.run(callback())
            except Exception:
                logger.exception("APScheduler trigger %s failed", key)

        with self._lock:
            self._pending[job_id] = handle
        self._scheduler.add_job(
            _fire,
            "date",
            run_date=max(run_at, datetime.now(UTC)),
            id=job_id,
            misfire_grace_time=self._misfire_grace_seconds,
            coalesce=True,
        )
        return handle

    def cancel(self, handle: TriggerHandle) -> None:
        from apscheduler.jobstores.base import JobLookupError

        with self._lock:
            if handle.fired or handle.cancelled:
                return
            handle.cancelled = True
            self._pending.pop(handle.ref, None)
        try:
            self._scheduler.remove_job(handle.ref)
        except JobLookupError:
            pass  # already ran or misfired

    def shutdown(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
        for handle in pending:
            self.cancel(handle)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APSchedulerTriggerBackend stopped")

    def health(self) -> dict[str, Any]:
        running = self._scheduler.running
        with self._lock:
            pending = len(self._pending)
        return {
            "healthy": running or pending == 0,
            "backend": self.name,
            "pending_triggers": pending,
            "fired": self._fired_count,
            "scheduled_jobs": len(self._scheduler.get_jobs()) if running else 0,
        }
