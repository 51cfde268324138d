"""Recurrence calculator - next-run and due-ness for a RecurrenceRule.

Manifesto:
    Every timing decision the scheduler makes goes through two pure
    functions. The reference timezone and the current instant are
    parameters, so a test can pin both and a fire at 23:59 on a Friday is
    as easy to check as one at noon.

Tags:
    scheduling, recurrence, timezone, pure-functions

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  RECURRENCE CALCULATOR                                                        │
│                                                                               │
│  next_run_after(rule, last_run, now, tz) → datetime | None                   │
│  ├── minute / hour: keep the phase of last_run                              │
│  │     elapsed = floor((now - last_run) / unit)                              │
│  │     next    = now + (interval - elapsed % interval) * unit                │
│  ├── day:        today at HH:MM, or tomorrow if already passed              │
│  └── week:       next target day at HH:MM (weekday = Mon..Fri)              │
│                                                                               │
│  is_due_now(rule, last_run, now, tolerance, tz) → bool                        │
│  ├── minute / hour: whole units since last_run ≥ interval                   │
│  └── day / week:    target day, |now - HH:MM| ≤ tolerance, not run today    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta, tzinfo

from apitrack.core.models.recurrence import RecurrenceKind, RecurrenceRule, WeekdaySelector

DEFAULT_TOLERANCE_SECONDS = 60

_UNITS = {
    RecurrenceKind.MINUTE: timedelta(minutes=1),
    RecurrenceKind.HOUR: timedelta(hours=1),
}

_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _interval(rule: RecurrenceRule) -> int | None:
    if rule.kind is RecurrenceKind.MINUTE:
        return rule.minute_interval
    return rule.hour_interval


def _selector(rule: RecurrenceRule) -> WeekdaySelector | None:
    if rule.kind is RecurrenceKind.DAY:
        return WeekdaySelector.EVERYDAY
    return rule.weekday


def _at(day: date, rule: RecurrenceRule, tz: tzinfo) -> datetime:
    assert rule.time_of_day is not None
    return datetime.combine(day, time(rule.time_of_day.hour, rule.time_of_day.minute), tzinfo=tz)


def _elapsed_units(rule: RecurrenceRule, last_run: datetime, now: datetime) -> int:
    """Whole units between last_run and now; a future last_run counts as zero."""
    return max(0, (now - last_run) // _UNITS[rule.kind])


def _is_complete(rule: RecurrenceRule) -> bool:
    if rule.kind in _UNITS:
        return _interval(rule) is not None
    return rule.time_of_day is not None and _selector(rule) is not None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def next_run_after(
    rule: RecurrenceRule,
    last_run: datetime | None,
    now: datetime,
    *,
    tz: tzinfo = UTC,
) -> datetime | None:
    """Compute the next instant a rule should fire.

    Args:
        rule: Recurrence rule
        last_run: When the schedule last ran, if ever
        now: Current instant
        tz: Reference timezone for daily/weekly times

    Returns:
        Next fire instant in UTC (always after ``now``), or None when the
        rule is inactive.
    """
    if not rule.active or not _is_complete(rule):
        return None

    now = _aware(now)

    if rule.kind in _UNITS:
        unit = _UNITS[rule.kind]
        interval = _interval(rule)
        if last_run is None:
            return (now + interval * unit).astimezone(UTC)
        elapsed = _elapsed_units(rule, _aware(last_run), now)
        return (now + (interval - elapsed % interval) * unit).astimezone(UTC)

    local_now = now.astimezone(tz)
    today = local_now.date()
    selector = _selector(rule)

    if selector is WeekdaySelector.EVERYDAY:
        candidate = _at(today, rule, tz)
        if candidate <= local_now:
            candidate = _at(today + timedelta(days=1), rule, tz)
        return candidate.astimezone(UTC)

    if selector is WeekdaySelector.WEEKDAY:
        weekday = today.weekday()
        candidate = _at(today, rule, tz)
        if weekday < 5 and candidate > local_now:
            return candidate.astimezone(UTC)
        if weekday < 5:
            days = 3 if weekday == 4 else 1
        else:
            days = 7 - weekday
        return _at(today + timedelta(days=days), rule, tz).astimezone(UTC)

    days = (selector.index - today.weekday()) % 7
    candidate = _at(today + timedelta(days=days), rule, tz)
    if candidate <= local_now:
        candidate = _at(today + timedelta(days=days + 7), rule, tz)
    return candidate.astimezone(UTC)


def is_due_now(
    rule: RecurrenceRule,
    last_run: datetime | None,
    now: datetime,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    *,
    tz: tzinfo = UTC,
) -> bool:
    """Whether a rule should fire at ``now``.

    Interval rules are due once a full interval has elapsed since
    ``last_run`` (or immediately when they never ran). Daily and weekly
    rules are due within ``tolerance_seconds`` of their time on a target
    day, at most once per calendar day in ``tz``.
    """
    if not rule.active or not _is_complete(rule):
        return False

    now = _aware(now)

    if rule.kind in _UNITS:
        if last_run is None:
            return True
        return _elapsed_units(rule, _aware(last_run), now) >= _interval(rule)

    local_now = now.astimezone(tz)
    today = local_now.date()
    if not _selector(rule).matches(today.weekday()):
        return False

    target = _at(today, rule, tz)
    if abs((local_now - target).total_seconds()) > tolerance_seconds:
        return False

    if last_run is None:
        return True
    return _aware(last_run).astimezone(tz).date() < today


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------


def describe(rule: RecurrenceRule) -> str:
    """Human-readable cadence, e.g. ``"Run weekdays at 17:00"``."""
    if rule.kind is RecurrenceKind.MINUTE:
        n = rule.minute_interval
        return f"Run every {n} minute{'s' if n != 1 else ''}"
    if rule.kind is RecurrenceKind.HOUR:
        n = rule.hour_interval
        return f"Run every {n} hour{'s' if n != 1 else ''}"
    if rule.kind is RecurrenceKind.DAY:
        return f"Run daily at {rule.time_of_day}"
    if rule.weekday is WeekdaySelector.WEEKDAY:
        return f"Run weekdays at {rule.time_of_day}"
    if rule.weekday is WeekdaySelector.EVERYDAY:
        return f"Run every day at {rule.time_of_day}"
    return f"Run every {_DAY_NAMES[rule.weekday.index]} at {rule.time_of_day}"


def to_cron_expression(rule: RecurrenceRule) -> str:
    """Equivalent 5-field cron expression, for display and export only."""
    if rule.kind is RecurrenceKind.MINUTE:
        return f"*/{rule.minute_interval} * * * *"
    if rule.kind is RecurrenceKind.HOUR:
        return f"0 */{rule.hour_interval} * * *"
    t = rule.time_of_day
    if rule.kind is RecurrenceKind.DAY or rule.weekday is WeekdaySelector.EVERYDAY:
        return f"{t.minute} {t.hour} * * *"
    if rule.weekday is WeekdaySelector.WEEKDAY:
        return f"{t.minute} {t.hour} * * 1-5"
    # cron counts Sunday as 0
    return f"{t.minute} {t.hour} * * {(rule.weekday.index + 1) % 7}"


__all__ = [
    "DEFAULT_TOLERANCE_SECONDS",
    "describe",
    "is_due_now",
    "next_run_after",
    "to_cron_expression",
]
