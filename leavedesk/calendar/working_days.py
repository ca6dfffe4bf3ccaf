"""Working-day arithmetic: weekends, observed public holidays, half days, months.

Callers load holidays through :class:`leavedesk.calendar.provider.HolidayProvider`
and pass them in; apart from :func:`local_today` nothing here does I/O.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AbstractSet, Iterator
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from leavedesk.common.constants import HALF_DAY, SA_WEEKEND, TIMEZONE
from leavedesk.common.exceptions import ValidationException


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def years_touched(start: date, end: date) -> range:
    return range(start.year, end.year + 1)


def is_working_day(
    day: date,
    holidays: AbstractSet[date],
    weekend: AbstractSet[int] = SA_WEEKEND,
) -> bool:
    return day.weekday() not in weekend and day not in holidays


def working_dates(
    start: date,
    end: date,
    holidays: AbstractSet[date],
    weekend: AbstractSet[int] = SA_WEEKEND,
) -> list[date]:
    return [d for d in iter_dates(start, end) if is_working_day(d, holidays, weekend)]


def count_working_days(
    start: date,
    end: date,
    holidays: AbstractSet[date],
    *,
    weekend: AbstractSet[int] = SA_WEEKEND,
    half_day: bool = False,
) -> Decimal:
    """Count working days in the inclusive range ``start``..``end``.

    A half day is worth 0.5 and must start and end on the same date. A half
    day that lands on a weekend or holiday costs nothing.

    Raises:
        ValidationException: ``end`` is before ``start``, or a half day spans
            more than one date.
    """
    if end < start:
        raise ValidationException(
            {"end_date": ["End date must be on or after the start date."]}
        )
    if half_day:
        if start != end:
            raise ValidationException(
                {"is_half_day": ["A half-day request must start and end on the same date."]}
            )
        return HALF_DAY if is_working_day(start, holidays, weekend) else Decimal("0")

    return Decimal(len(working_dates(start, end, holidays, weekend)))


def full_months_between(start: date, as_of: date) -> int:
    """Whole months elapsed from ``start`` to ``as_of``.

    A month is complete once the start date's day-of-month is reached, so
    2025-01-15 → 2025-04-14 is 2 months and → 2025-04-15 is 3. A start on the
    31st completes on the last day of shorter months (2025-01-31 → 2025-02-28 is 1).
    """
    if as_of <= start:
        return 0
    delta = relativedelta(as_of, start)
    return delta.years * 12 + delta.months


def add_months(day: date, months: int) -> date:
    return day + relativedelta(months=months)


def local_today() -> date:
    """Today's date in South Africa, the default as-of date for leave rules."""
    return datetime.now(ZoneInfo(TIMEZONE)).date()
