"""Tests for the recurrence calculator (next_run_after / is_due_now)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from apitrack.core.models.recurrence import RecurrenceRule
from apitrack.core.scheduling.recurrence import (
    describe,
    is_due_now,
    next_run_after,
    to_cron_expression,
)

# 2026-01-05 is a Monday
MONDAY_NOON = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)
FRIDAY_18 = datetime(2026, 1, 9, 18, 0, tzinfo=UTC)
SATURDAY_10 = datetime(2026, 1, 10, 10, 0, tzinfo=UTC)


class TestIntervalCadence:
    def test_minute_without_last_run_is_now_plus_interval(self):
        rule = RecurrenceRule.every_minutes(15)
        assert next_run_after(rule, None, MONDAY_NOON) == MONDAY_NOON + timedelta(minutes=15)

    def test_minute_cadence_anchored_to_last_run(self):
        """20 minutes since the last run of a 15-minute rule leaves 10 to go."""
        rule = RecurrenceRule.every_minutes(15)
        last_run = MONDAY_NOON - timedelta(minutes=20)
        assert next_run_after(rule, last_run, MONDAY_NOON) == MONDAY_NOON + timedelta(minutes=10)

    def test_minute_cadence_stable_within_window(self):
        rule = RecurrenceRule.every_minutes(15)
        last_run = MONDAY_NOON - timedelta(minutes=20)
        first = next_run_after(rule, last_run, MONDAY_NOON)
        second = next_run_after(rule, last_run, MONDAY_NOON + timedelta(seconds=30))
        assert first == second

    def test_exact_multiple_waits_full_interval(self):
        rule = RecurrenceRule.every_minutes(15)
        last_run = MONDAY_NOON - timedelta(minutes=30)
        assert next_run_after(rule, last_run, MONDAY_NOON) == MONDAY_NOON + timedelta(minutes=15)

    def test_hour_without_last_run(self):
        rule = RecurrenceRule.every_hours(2)
        assert next_run_after(rule, None, MONDAY_NOON) == MONDAY_NOON + timedelta(hours=2)

    def test_hour_anchored_to_last_run(self):
        rule = RecurrenceRule.every_hours(3)
        last_run = MONDAY_NOON - timedelta(hours=4, minutes=10)
        # elapsed = 4 whole hours, 4 % 3 = 1, remaining = 2
        assert next_run_after(rule, last_run, MONDAY_NOON) == MONDAY_NOON + timedelta(hours=2)

    def test_future_last_run_counts_as_zero_elapsed(self):
        rule = RecurrenceRule.every_minutes(5)
        last_run = MONDAY_NOON + timedelta(minutes=3)
        assert next_run_after(rule, last_run, MONDAY_NOON) == MONDAY_NOON + timedelta(minutes=5)

    def test_naive_datetimes_are_utc(self):
        rule = RecurrenceRule.every_minutes(15)
        naive_now = MONDAY_NOON.replace(tzinfo=None)
        assert next_run_after(rule, None, naive_now) == MONDAY_NOON + timedelta(minutes=15)


class TestDayCadence:
    def test_later_today(self):
        rule = RecurrenceRule.daily("15:30")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 5, 15, 30, tzinfo=UTC)

    def test_rolls_over_to_tomorrow(self):
        rule = RecurrenceRule.daily("09:00")
        now = datetime(2026, 1, 5, 10, 0, tzinfo=UTC)
        assert next_run_after(rule, None, now) == datetime(2026, 1, 6, 9, 0, tzinfo=UTC)

    def test_exactly_at_time_rolls_over(self):
        rule = RecurrenceRule.daily("12:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 6, 12, 0, tzinfo=UTC)

    def test_month_boundary(self):
        rule = RecurrenceRule.daily("08:00")
        now = datetime(2026, 1, 31, 9, 0, tzinfo=UTC)
        assert next_run_after(rule, None, now) == datetime(2026, 2, 1, 8, 0, tzinfo=UTC)

    def test_reference_timezone(self):
        """09:00 in New York is 14:00 UTC in January."""
        rule = RecurrenceRule.daily("09:00")
        tz = ZoneInfo("America/New_York")
        result = next_run_after(rule, None, MONDAY_NOON, tz=tz)
        assert result == datetime(2026, 1, 5, 14, 0, tzinfo=UTC)
        assert result.tzinfo == UTC


class TestWeekCadence:
    def test_named_day_later_this_week(self):
        rule = RecurrenceRule.weekly("wednesday", "09:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 7, 9, 0, tzinfo=UTC)

    def test_named_day_today_not_yet_passed(self):
        rule = RecurrenceRule.weekly("monday", "13:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 5, 13, 0, tzinfo=UTC)

    def test_named_day_today_passed_goes_next_week(self):
        rule = RecurrenceRule.weekly("monday", "09:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 12, 9, 0, tzinfo=UTC)

    def test_named_day_earlier_in_week(self):
        rule = RecurrenceRule.weekly("sunday", "09:00")
        assert next_run_after(rule, None, FRIDAY_18) == datetime(2026, 1, 11, 9, 0, tzinfo=UTC)

    def test_weekday_friday_past_time_skips_weekend(self):
        rule = RecurrenceRule.weekly("weekday", "17:00")
        assert next_run_after(rule, None, FRIDAY_18) == datetime(2026, 1, 12, 17, 0, tzinfo=UTC)

    def test_weekday_midweek_past_time_is_tomorrow(self):
        rule = RecurrenceRule.weekly("weekday", "09:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 6, 9, 0, tzinfo=UTC)

    def test_weekday_today_not_passed(self):
        rule = RecurrenceRule.weekly("weekday", "17:00")
        assert next_run_after(rule, None, MONDAY_NOON) == datetime(2026, 1, 5, 17, 0, tzinfo=UTC)

    @pytest.mark.parametrize("now", [SATURDAY_10, datetime(2026, 1, 11, 23, 0, tzinfo=UTC)])
    def test_weekday_on_weekend_is_monday(self, now):
        rule = RecurrenceRule.weekly("weekday", "09:00")
        assert next_run_after(rule, None, now) == datetime(2026, 1, 12, 9, 0, tzinfo=UTC)

    def test_everyday_behaves_like_daily(self):
        weekly = RecurrenceRule.weekly("everyday", "09:00")
        daily = RecurrenceRule.daily("09:00")
        assert next_run_after(weekly, None, SATURDAY_10) == next_run_after(daily, None, SATURDAY_10)


class TestInactive:
    def test_inactive_rule_has_no_next_run(self):
        rule = RecurrenceRule.every_minutes(5, active=False)
        assert next_run_after(rule, None, MONDAY_NOON) is None

    def test_inactive_rule_is_never_due(self):
        rule = RecurrenceRule.daily("12:00", active=False)
        assert is_due_now(rule, None, MONDAY_NOON) is False


class TestIsDueNow:
    def test_interval_never_run_is_due(self):
        assert is_due_now(RecurrenceRule.every_minutes(15), None, MONDAY_NOON) is True

    def test_interval_due_after_full_interval(self):
        rule = RecurrenceRule.every_minutes(15)
        assert is_due_now(rule, MONDAY_NOON - timedelta(minutes=15), MONDAY_NOON) is True
        assert is_due_now(rule, MONDAY_NOON - timedelta(minutes=14, seconds=59), MONDAY_NOON) is False

    def test_hour_interval(self):
        rule = RecurrenceRule.every_hours(2)
        assert is_due_now(rule, MONDAY_NOON - timedelta(hours=1), MONDAY_NOON) is False
        assert is_due_now(rule, MONDAY_NOON - timedelta(hours=2), MONDAY_NOON) is True

    def test_daily_within_tolerance(self):
        rule = RecurrenceRule.daily("12:00")
        assert is_due_now(rule, None, MONDAY_NOON + timedelta(seconds=45)) is True
        assert is_due_now(rule, None, MONDAY_NOON - timedelta(seconds=45)) is True

    def test_daily_outside_tolerance(self):
        rule = RecurrenceRule.daily("12:00")
        assert is_due_now(rule, None, MONDAY_NOON + timedelta(minutes=2)) is False
        assert is_due_now(rule, None, MONDAY_NOON + timedelta(minutes=2), tolerance_seconds=180) is True

    def test_daily_already_ran_today(self):
        rule = RecurrenceRule.daily("12:00")
        last_run = MONDAY_NOON - timedelta(seconds=10)
        assert is_due_now(rule, last_run, MONDAY_NOON + timedelta(seconds=5)) is False

    def test_daily_ran_yesterday(self):
        rule = RecurrenceRule.daily("12:00")
        assert is_due_now(rule, MONDAY_NOON - timedelta(days=1), MONDAY_NOON) is True

    def test_weekday_not_due_on_saturday(self):
        rule = RecurrenceRule.weekly("weekday", "10:00")
        assert is_due_now(rule, None, SATURDAY_10) is False

    def test_named_day_due_only_on_that_day(self):
        rule = RecurrenceRule.weekly("saturday", "10:00")
        assert is_due_now(rule, None, SATURDAY_10) is True
        assert is_due_now(rule, None, SATURDAY_10 - timedelta(days=1)) is False

    def test_idempotent(self):
        rule = RecurrenceRule.daily("12:00")
        last_run = MONDAY_NOON - timedelta(days=1)
        first = is_due_now(rule, last_run, MONDAY_NOON)
        assert is_due_now(rule, last_run, MONDAY_NOON) == first

    def test_reference_timezone_decides_the_day(self):
        """23:30 UTC Monday is already Tuesday in Tokyo."""
        rule = RecurrenceRule.weekly("tuesday", "08:30")
        now = datetime(2026, 1, 5, 23, 30, tzinfo=UTC)
        assert is_due_now(rule, None, now, tz=ZoneInfo("Asia/Tokyo")) is True
        assert is_due_now(rule, None, now) is False


class TestPresentation:
    @pytest.mark.parametrize(
        ("rule", "text"),
        [
            (RecurrenceRule.every_minutes(1), "Run every 1 minute"),
            (RecurrenceRule.every_minutes(15), "Run every 15 minutes"),
            (RecurrenceRule.every_hours(2), "Run every 2 hours"),
            (RecurrenceRule.daily("09:05"), "Run daily at 09:05"),
            (RecurrenceRule.weekly("weekday", "17:00"), "Run weekdays at 17:00"),
            (RecurrenceRule.weekly("everyday", "06:00"), "Run every day at 06:00"),
            (RecurrenceRule.weekly("friday", "16:30"), "Run every Friday at 16:30"),
        ],
    )
    def test_describe(self, rule, text):
        assert describe(rule) == text

    @pytest.mark.parametrize(
        ("rule", "cron"),
        [
            (RecurrenceRule.every_minutes(15), "*/15 * * * *"),
            (RecurrenceRule.every_hours(2), "0 */2 * * *"),
            (RecurrenceRule.daily("09:05"), "5 9 * * *"),
            (RecurrenceRule.weekly("weekday", "17:00"), "0 17 * * 1-5"),
            (RecurrenceRule.weekly("monday", "08:00"), "0 8 * * 1"),
            (RecurrenceRule.weekly("sunday", "08:00"), "0 8 * * 0"),
        ],
    )
    def test_to_cron_expression(self, rule, cron):
        assert to_cron_expression(rule) == cron
