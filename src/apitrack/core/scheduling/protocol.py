"""Scheduler backend protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOLS                                                  │
│                                                                               │
│  Two kinds of timing backend, both owning WHEN, never WHAT:                  │
│                                                                               │
│  TriggerBackend  — one-shot timers, one per active schedule                  │
│  ┌─────────────────┐  arm(key, run_at, cb)   ┌─────────────────────┐        │
│  │ ScheduleRegistry│ ──────────────────────► │ Thread / APScheduler│        │
│  │                 │ ◄────────────────────── │ timer fires cb()    │        │
│  └─────────────────┘        cancel(handle)   └─────────────────────┘        │
│                                                                               │
│  SchedulerBackend — fixed-interval tick                                      │
│  ┌─────────────────┐  start(tick, interval)  ┌─────────────────────┐        │
│  │ SchedulerService│ ──────────────────────► │ Thread loop         │        │
│  │ _tick():        │ ◄────────────────────── │ calls tick()        │        │
│  │  reconcile/poll │                         └─────────────────────┘        │
│  └─────────────────┘                                                         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]
FireCallback = Callable[[], Awaitable[Any]]


@dataclass(eq=False)
class TriggerHandle:
    """An armed one-shot trigger.

    Handles compare by identity; ``ref`` is whatever the backend needs to
    cancel the timer (a ``threading.Timer``, an APScheduler job id, ...).
    """

    key: str
    run_at: datetime
    ref: Any = None
    fired: bool = False
    cancelled: bool = False


@runtime_checkable
class TriggerBackend(Protocol):
    """Protocol for one-shot trigger backends.

    Implementations:
        - ThreadTriggerBackend: ``threading.Timer`` per trigger (default)
        - APSchedulerTriggerBackend: APScheduler ``date`` jobs (extra)
    """

    name: str

    def arm(self, key: str, run_at: datetime, callback: FireCallback) -> TriggerHandle:
        """Call ``callback`` once at ``run_at`` (immediately if in the past)."""
        ...

    def cancel(self, handle: TriggerHandle) -> None:
        """Cancel a trigger; no-op if it already fired or was cancelled."""
        ...

    def shutdown(self) -> None:
        """Cancel every pending trigger and release resources."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status."""
        ...


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for fixed-interval tick backends.

    Implementations:
        - ThreadSchedulerBackend: daemon thread loop (default)
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 30.0,
    ) -> None:
        """Start calling ``tick_callback`` every ``interval_seconds``."""
        ...

    def stop(self) -> None:
        """Stop the loop, waiting for the current tick to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool — whether backend is running
                - backend: str — backend name
                - tick_count: int — number of ticks executed
                - last_tick: str | None — ISO timestamp of last tick
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
