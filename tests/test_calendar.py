"""Tests for working-day counting, month arithmetic and the holiday calendar."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from leavedesk.calendar.provider import HolidayProvider
from leavedesk.calendar.seed import build_sa_holidays
from leavedesk.calendar.working_days import (
    add_months,
    count_working_days,
    full_months_between,
    is_working_day,
    iter_dates,
    working_dates,
    years_touched,
)
from leavedesk.common.exceptions import ValidationException

from tests.factories import make_holiday


# ═════════════════════════════════════════════════════════════════════
# Working days
# ═════════════════════════════════════════════════════════════════════


class TestCountWorkingDays:
    def test_full_week_without_holidays(self):
        # Mon 2 June – Fri 6 June 2025
        assert count_working_days(date(2025, 6, 2), date(2025, 6, 6), set()) == 5

    def test_weekend_is_excluded(self):
        # Fri 6 June – Mon 9 June 2025
        assert count_working_days(date(2025, 6, 6), date(2025, 6, 9), set()) == 2

    def test_weekend_only_range_is_zero(self):
        assert count_working_days(date(2025, 6, 7), date(2025, 6, 8), set()) == 0

    def test_single_day(self):
        assert count_working_days(date(2025, 6, 4), date(2025, 6, 4), set()) == 1

    def test_holiday_is_excluded(self):
        youth_day = date(2025, 6, 16)
        assert count_working_days(date(2025, 6, 16), date(2025, 6, 20), {youth_day}) == 4

    def test_end_before_start_is_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            count_working_days(date(2025, 6, 6), date(2025, 6, 2), set())
        assert "end_date" in exc_info.value.errors

    def test_half_day_counts_half(self):
        day = date(2025, 6, 4)
        assert count_working_days(day, day, set(), half_day=True) == Decimal("0.5")

    def test_half_day_on_weekend_costs_nothing(self):
        saturday = date(2025, 6, 7)
        assert count_working_days(saturday, saturday, set(), half_day=True) == 0

    def test_half_day_spanning_dates_is_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            count_working_days(date(2025, 6, 4), date(2025, 6, 5), set(), half_day=True)
        assert "is_half_day" in exc_info.value.errors

    def test_result_is_decimal(self):
        result = count_working_days(date(2025, 6, 2), date(2025, 6, 3), set())
        assert isinstance(result, Decimal)

    def test_never_counts_a_weekend_or_holiday(self):
        holidays = {date(2025, 3, 21), date(2025, 4, 18), date(2025, 4, 21)}
        start, end = date(2025, 3, 1), date(2025, 5, 31)
        counted = working_dates(start, end, holidays)
        assert len(counted) == count_working_days(start, end, holidays)
        assert all(d.weekday() < 5 for d in counted)
        assert not holidays.intersection(counted)

    @pytest.mark.parametrize("span", [0, 1, 6, 13, 40, 400])
    def test_count_is_bounded_by_calendar_days(self, span):
        start = date(2024, 12, 20)
        end = start + timedelta(days=span)
        result = count_working_days(start, end, set())
        assert 0 <= result <= span + 1


class TestHelpers:
    def test_iter_dates_is_inclusive(self):
        days = list(iter_dates(date(2025, 1, 30), date(2025, 2, 2)))
        assert days == [date(2025, 1, 30), date(2025, 1, 31), date(2025, 2, 1), date(2025, 2, 2)]

    def test_years_touched_spans_new_year(self):
        assert list(years_touched(date(2024, 12, 30), date(2025, 1, 3))) == [2024, 2025]

    def test_is_working_day_custom_weekend(self):
        friday = date(2025, 6, 6)
        assert is_working_day(friday, set())
        assert not is_working_day(friday, set(), weekend={4, 5, 6})


class TestMonthArithmetic:
    @pytest.mark.parametrize(
        "start, as_of, expected",
        [
            (date(2025, 1, 1), date(2025, 4, 1), 3),
            (date(2025, 1, 15), date(2025, 4, 14), 2),
            (date(2025, 1, 15), date(2025, 4, 15), 3),
            (date(2025, 1, 31), date(2025, 2, 27), 0),
            (date(2025, 1, 31), date(2025, 2, 28), 1),
            (date(2025, 1, 31), date(2025, 3, 30), 1),
            (date(2025, 1, 31), date(2025, 3, 31), 2),
            (date(2024, 1, 31), date(2024, 2, 29), 1),
            (date(2024, 3, 1), date(2025, 3, 1), 12),
            (date(2025, 5, 1), date(2025, 5, 1), 0),
            (date(2025, 5, 1), date(2025, 4, 1), 0),
        ],
    )
    def test_full_months_between(self, start, as_of, expected):
        assert full_months_between(start, as_of) == expected

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2023, 12, 31), 6) == date(2024, 6, 30)
        assert add_months(date(2023, 1, 1), 18) == date(2024, 7, 1)


# ═════════════════════════════════════════════════════════════════════
# Holiday provider
# ═════════════════════════════════════════════════════════════════════


class TestHolidayProvider:
    async def test_shifted_holiday_counts_on_monday_only(self, repo):
        # Freedom Day 2025 fell on Sunday 27 April; observed Monday 28 April
        repo.seed(
            make_holiday(date(2025, 4, 27), "Freedom Day", is_observed=False),
            make_holiday(
                date(2025, 4, 28), "Freedom Day", original_date=date(2025, 4, 27)
            ),
            make_holiday(date(2025, 5, 1), "Workers' Day"),
        )
        provider = HolidayProvider(repo)

        assert await provider.count_working_days(date(2025, 4, 28), date(2025, 5, 2)) == 3
        observed = await provider.observed_dates(date(2025, 4, 1), date(2025, 4, 30))
        assert date(2025, 4, 27) not in observed
        assert date(2025, 4, 28) in observed

    async def test_range_over_new_year_loads_both_years(self, repo):
        repo.seed(
            make_holiday(date(2024, 12, 26), "Day of Goodwill"),
            make_holiday(date(2025, 1, 1), "New Year's Day"),
        )
        provider = HolidayProvider(repo)

        # Mon 23 Dec 2024 – Fri 3 Jan 2025: 10 weekdays, 2 seeded holidays
        days = await provider.count_working_days(date(2024, 12, 23), date(2025, 1, 3))
        assert days == 8

    async def test_year_is_cached(self, repo):
        provider = HolidayProvider(repo)
        await provider.observed_for_year(2025)
        repo.seed(make_holiday(date(2025, 6, 16), "Youth Day"))
        assert date(2025, 6, 16) not in await provider.observed_for_year(2025)


class TestSouthAfricanSeed:
    def test_sunday_holiday_moves_to_monday(self):
        rows = {(h.date, h.is_observed): h for h in build_sa_holidays(2025)}

        sunday = rows[(date(2025, 4, 27), False)]
        assert sunday.name == "Freedom Day"
        monday = rows[(date(2025, 4, 28), True)]
        assert monday.original_date == date(2025, 4, 27)
        assert monday.name == "Freedom Day"

    def test_weekday_holidays_are_observed_in_place(self):
        rows = build_sa_holidays(2025)
        youth_day = [h for h in rows if h.date == date(2025, 6, 16)]
        assert len(youth_day) == 1
        assert youth_day[0].is_observed
        assert youth_day[0].original_date is None
        assert all(h.year == 2025 for h in rows)

    async def test_seeded_calendar_drives_working_days(self, repo):
        await repo.add_public_holidays(build_sa_holidays(2025))
        provider = HolidayProvider(repo)
        # 28 April (observed Freedom Day) and 1 May (Workers' Day)
        assert await provider.count_working_days(date(2025, 4, 28), date(2025, 5, 2)) == 3

    async def test_seeding_twice_adds_nothing(self, repo):
        first = await repo.add_public_holidays(build_sa_holidays(2025))
        second = await repo.add_public_holidays(build_sa_holidays(2025))
        assert first > 0
        assert second == 0
