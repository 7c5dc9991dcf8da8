"""Tests for next occurrence date arithmetic."""

from __future__ import annotations

from datetime import date

import pytest

from recurring_scheduler.errors import ErrorKind, InvalidRuleError
from recurring_scheduler.scheduling.recurrence import next_date
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency


class TestDailyAndWeekly:
    def test_daily_adds_interval_days(self):
        assert next_date(date(2024, 1, 30), Frequency.DAILY, 3) == date(2024, 2, 2)

    def test_weekly_adds_seven_days_per_interval(self):
        assert next_date(date(2024, 1, 1), Frequency.WEEKLY, 2) == date(2024, 1, 15)

    def test_custom_behaves_like_daily(self):
        assert next_date(date(2024, 1, 1), Frequency.CUSTOM, 10) == next_date(
            date(2024, 1, 1), Frequency.DAILY, 10
        )

    def test_daily_crosses_year_boundary(self):
        assert next_date(date(2023, 12, 31), Frequency.DAILY, 1) == date(2024, 1, 1)


class TestMonthly:
    def test_simple_month_step(self):
        assert next_date(date(2024, 1, 1), Frequency.MONTHLY, 1) == date(2024, 2, 1)

    def test_month_end_clamps_in_leap_year(self):
        assert next_date(date(2024, 1, 31), Frequency.MONTHLY, 1) == date(2024, 2, 29)

    def test_month_end_clamps_in_non_leap_year(self):
        assert next_date(date(2023, 1, 31), Frequency.MONTHLY, 1) == date(2023, 2, 28)

    def test_thirty_first_to_thirty_day_month(self):
        assert next_date(date(2024, 3, 31), Frequency.MONTHLY, 1) == date(2024, 4, 30)

    def test_multi_month_interval_crosses_year(self):
        assert next_date(date(2024, 11, 30), Frequency.MONTHLY, 3) == date(2025, 2, 28)

    def test_chained_steps_drift_after_short_month(self):
        feb = next_date(date(2024, 1, 31), Frequency.MONTHLY, 1)
        mar = next_date(feb, Frequency.MONTHLY, 1)
        assert mar == date(2024, 3, 29)


class TestYearly:
    def test_simple_year_step(self):
        assert next_date(date(2024, 6, 15), Frequency.YEARLY, 1) == date(2025, 6, 15)

    def test_leap_day_clamps_to_feb_28(self):
        assert next_date(date(2024, 2, 29), Frequency.YEARLY, 1) == date(2025, 2, 28)

    def test_leap_day_to_leap_year(self):
        assert next_date(date(2024, 2, 29), Frequency.YEARLY, 4) == date(2028, 2, 29)


class TestInvalidInterval:
    @pytest.mark.parametrize("interval", [0, -1])
    def test_non_positive_interval_rejected(self, interval):
        with pytest.raises(InvalidRuleError) as exc_info:
            next_date(date(2024, 1, 1), Frequency.DAILY, interval)
        assert exc_info.value.kind == ErrorKind.INVALID_RULE

    @pytest.mark.parametrize("frequency", list(Frequency))
    def test_result_is_strictly_later(self, frequency):
        start = date(2024, 2, 29)
        assert next_date(start, frequency, 1) > start
