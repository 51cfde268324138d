"""Threading-based scheduler backends (stdlib only).

These are the DEFAULT backends for apitrack scheduling.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKENDS                                                              │
│                                                                               │
│  ThreadTriggerBackend                                                         │
│     arm(key, run_at, cb)                                                      │
│        └── threading.Timer(delay) ── on fire: asyncio.run(cb())              │
│     cancel(handle) ── timer.cancel()                                          │
│                                                                               │
│  ThreadSchedulerBackend                                                       │
│     start(tick, interval)                                                     │
│        └── daemon thread:                                                     │
│              while not stop_event.wait(interval):                             │
│                  asyncio.run(tick())                                          │
│     stop() ── stop_event.set(); thread.join(timeout=5.0)                      │
│                                                                               │
│  Key Design Decisions:                                                        │
│  1. Daemon threads — don't block process exit                                │
│  2. asyncio.run per fire/tick — callbacks stay async                         │
│  3. Failures are logged; the timer thread never dies silently                │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import UTC, datetime
from typing import Any

from .protocol import BackendHealth, FireCallback, TickCallback, TriggerHandle

logger = logging.getLogger(__name__)


class ThreadTriggerBackend:
    """One ``threading.Timer`` per armed trigger.

    Example:
        >>> backend = ThreadTriggerBackend()
        >>> handle = backend.arm("sch_1", run_at, on_fire)
        >>> backend.cancel(handle)
    """

    name = "thread"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[TriggerHandle] = set()
        self._fired_count = 0
        self._last_fire: datetime | None = None

    def arm(self, key: str, run_at: datetime, callback: FireCallback) -> TriggerHandle:
        delay = max(0.0, (run_at - datetime.now(UTC)).total_seconds())
        handle = TriggerHandle(key=key, run_at=run_at)

        def _fire() -> None:
            with self._lock:
                if handle.cancelled:
                    return
                handle.fired = True
                self._pending.discard(handle)
                self._fired_count += 1
                self._last_fire = datetime.now(UTC)
            try:
                asyncio.run(callback())
            except Exception as e:
                logger.exception(f"Trigger {key} failed: {e}")

        timer = threading.Timer(delay, _fire)
        timer.daemon = True
        timer.name = f"apitrack-trigger-{key}"
        handle.ref = timer
        with self._lock:
            self._pending.add(handle)
        timer.start()
        logger.debug(f"Armed trigger {key} at {run_at.isoformat()} (in {delay:.1f}s)")
        return handle

    def cancel(self, handle: TriggerHandle) -> None:
        with self._lock:
            if handle.fired or handle.cancelled:
                return
            handle.cancelled = True
            self._pending.discard(handle)
        if handle.ref is not None:
            handle.ref.cancel()

    def shutdown(self) -> None:
        with self._lock:
            pending = list(self._pending)
        for handle in pending:
            self.cancel(handle)
        logger.info(f"ThreadTriggerBackend shutdown ({len(pending)} trigger(s) cancelled)")

    def health(self) -> dict[str, Any]:
        with self._lock:
            pending = len(self._pending)
        return {
            "healthy": True,
            "backend": self.name,
            "pending_triggers": pending,
            "fired": self._fired_count,
            "last_fire": self._last_fire.isoformat() if self._last_fire else None,
        }

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)


class ThreadSchedulerBackend:
    """Daemon-thread tick loop.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>>
        >>> async def my_tick():
        ...     print("Tick!")
        ...
        >>> backend.start(my_tick, interval_seconds=5.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 30.0
        self._started = False
        self._lock = threading.Lock()

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 30.0,
    ) -> None:
        """Start the tick loop in a daemon thread.

        Args:
            tick_callback: Async function to call on each tick.
            interval_seconds: How often to tick.
        """
        if self._started:
            logger.warning("ThreadSchedulerBackend already started")
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info(
                f"ThreadSchedulerBackend started (interval={interval_seconds}s)"
            )
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)

                try:
                    asyncio.run(tick_callback())
                except Exception as e:
                    logger.exception(f"Tick failed: {e}")

            logger.info("ThreadSchedulerBackend stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="apitrack-scheduler")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the tick loop gracefully.

        Waits up to 5 seconds for the current tick to complete.
        """
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly")

        self._started = False

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval},
        )

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count
