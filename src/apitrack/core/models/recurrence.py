"""Recurrence rule value types.

Manifesto:
    A schedule's cadence is a small closed set of shapes. Modelling it as a
    validated, frozen value means the calculator never sees a rule with an
    interval and a weekday at the same time, and an invalid rule is rejected
    when the user submits it rather than when the timer should have fired.

Shapes:
    ``minute``  every N minutes           (minute_interval)
    ``hour``    every N hours             (hour_interval)
    ``day``     daily at HH:MM            (time_of_day)
    ``week``    weekly on D at HH:MM      (time_of_day + weekday)

Tags:
    models, scheduling, recurrence, value-object, dataclasses

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from apitrack.core.errors import ConfigurationError


class RecurrenceKind(str, Enum):
    """Unit of a recurrence rule."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class WeekdaySelector(str, Enum):
    """Day selector for weekly rules.

    ``WEEKDAY`` matches Monday through Friday and ``EVERYDAY`` matches all
    seven days (equivalent to a daily rule).
    """

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
    WEEKDAY = "weekday"
    EVERYDAY = "everyday"

    @property
    def index(self) -> int | None:
        """``date.weekday()`` index for a named day, None for pseudo-values."""
        return _WEEKDAY_INDEX.get(self)

    def matches(self, weekday_index: int) -> bool:
        """Whether a ``date.weekday()`` index is a target day."""
        if self is WeekdaySelector.EVERYDAY:
            return True
        if self is WeekdaySelector.WEEKDAY:
            return weekday_index < 5
        return self.index == weekday_index


_WEEKDAY_INDEX = {
    WeekdaySelector.MONDAY: 0,
    WeekdaySelector.TUESDAY: 1,
    WeekdaySelector.WEDNESDAY: 2,
    WeekdaySelector.THURSDAY: 3,
    WeekdaySelector.FRIDAY: 4,
    WeekdaySelector.SATURDAY: 5,
    WeekdaySelector.SUNDAY: 6,
}


@dataclass(frozen=True)
class TimeOfDay:
    """Wall-clock time in the reference timezone."""

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ConfigurationError(
                f"hour must be between 0 and 23, got {self.hour}",
                field="time_of_day", value=self.hour,
            )
        if not 0 <= self.minute <= 59:
            raise ConfigurationError(
                f"minute must be between 0 and 59, got {self.minute}",
                field="time_of_day", value=self.minute,
            )

    @classmethod
    def parse(cls, value: str) -> TimeOfDay:
        """Parse ``"HH:MM"``."""
        parts = value.strip().split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ConfigurationError(
                f"time must be HH:MM, got {value!r}", field="time_of_day", value=value
            )
        return cls(int(parts[0]), int(parts[1]))

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


# Fields each kind requires; everything in _RULE_FIELDS not listed must be None.
_REQUIRED_FIELDS: dict[RecurrenceKind, tuple[str, ...]] = {
    RecurrenceKind.MINUTE: ("minute_interval",),
    RecurrenceKind.HOUR: ("hour_interval",),
    RecurrenceKind.DAY: ("time_of_day",),
    RecurrenceKind.WEEK: ("time_of_day", "weekday"),
}
_RULE_FIELDS = ("minute_interval", "hour_interval", "time_of_day", "weekday")


@dataclass(frozen=True)
class RecurrenceRule:
    """Cadence of a schedule.

    Exactly the fields belonging to ``kind`` are populated; any other
    combination raises :class:`ConfigurationError`.

    Example:
        >>> RecurrenceRule.every_minutes(15)
        RecurrenceRule(kind=<RecurrenceKind.MINUTE: 'minute'>, minute_interval=15, ...)
        >>> RecurrenceRule(RecurrenceKind.DAY, minute_interval=5)
        Traceback (most recent call last):
        ...
        ConfigurationError: day recurrence requires time_of_day
    """

    kind: RecurrenceKind
    minute_interval: int | None = None
    hour_interval: int | None = None
    time_of_day: TimeOfDay | None = None
    weekday: WeekdaySelector | None = None
    active: bool = True
    last_run: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, RecurrenceKind):
            try:
                object.__setattr__(self, "kind", RecurrenceKind(self.kind))
            except ValueError as exc:
                raise ConfigurationError(
                    f"unknown recurrence kind: {self.kind!r}", field="kind", value=self.kind
                ) from exc
        if isinstance(self.weekday, str) and not isinstance(self.weekday, WeekdaySelector):
            try:
                object.__setattr__(self, "weekday", WeekdaySelector(self.weekday.lower()))
            except ValueError as exc:
                raise ConfigurationError(
                    f"unknown weekday: {self.weekday!r}", field="weekday", value=self.weekday
                ) from exc
        if isinstance(self.time_of_day, str):
            object.__setattr__(self, "time_of_day", TimeOfDay.parse(self.time_of_day))

        required = _REQUIRED_FIELDS[self.kind]
        for name in required:
            if getattr(self, name) is None:
                raise ConfigurationError(
                    f"{self.kind.value} recurrence requires {name}", field=name
                )
        for name in _RULE_FIELDS:
            if name not in required and getattr(self, name) is not None:
                raise ConfigurationError(
                    f"{name} is not allowed for {self.kind.value} recurrence",
                    field=name, value=getattr(self, name),
                )
        for name in ("minute_interval", "hour_interval"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}", field=name, value=value
                )

    # ── Building ─────────────────────────────────────────────────

    @classmethod
    def every_minutes(cls, interval: int, **kwargs: Any) -> RecurrenceRule:
        return cls(RecurrenceKind.MINUTE, minute_interval=interval, **kwargs)

    @classmethod
    def every_hours(cls, interval: int, **kwargs: Any) -> RecurrenceRule:
        return cls(RecurrenceKind.HOUR, hour_interval=interval, **kwargs)

    @classmethod
    def daily(cls, at: TimeOfDay | str, **kwargs: Any) -> RecurrenceRule:
        return cls(RecurrenceKind.DAY, time_of_day=at, **kwargs)

    @classmethod
    def weekly(cls, on: WeekdaySelector | str, at: TimeOfDay | str, **kwargs: Any) -> RecurrenceRule:
        return cls(RecurrenceKind.WEEK, time_of_day=at, weekday=on, **kwargs)

    def with_last_run(self, last_run: datetime | None) -> RecurrenceRule:
        return replace(self, last_run=last_run)

    def with_active(self, active: bool) -> RecurrenceRule:
        return replace(self, active=active)

    # ── Serialization ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Flat mapping matching the ``schedules`` recurrence columns."""
        return {
            "kind": self.kind.value,
            "minute_interval": self.minute_interval,
            "hour_interval": self.hour_interval,
            "time_of_day": str(self.time_of_day) if self.time_of_day else None,
            "weekday": self.weekday.value if self.weekday else None,
            "active": self.active,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurrenceRule:
        """Build from a flat mapping; unknown keys are ignored."""
        last_run = data.get("last_run")
        if isinstance(last_run, str):
            last_run = datetime.fromisoformat(last_run)
        return cls(
            kind=data["kind"],
            minute_interval=data.get("minute_interval"),
            hour_interval=data.get("hour_interval"),
            time_of_day=data.get("time_of_day"),
            weekday=data.get("weekday"),
            active=bool(data.get("active", True)),
            last_run=last_run,
        )
