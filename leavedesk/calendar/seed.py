"""South African public holiday calendar built from the ``holidays`` package.

Under the Public Holidays Act a holiday falling on a Sunday is observed on the
following Monday. The Sunday row is kept for reference with
``is_observed=False``; the Monday row carries ``original_date``.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

import holidays

from leavedesk.calendar.models import PublicHoliday

logger = logging.getLogger(__name__)

COUNTRY_CODE = "ZA"
SUNDAY = 6


def _original_for(shifted: date, base: dict[date, str]) -> date | None:
    """Nearest preceding Sunday holiday a shifted day stands in for."""
    for back in range(1, 4):
        candidate = shifted - timedelta(days=back)
        if candidate in base and candidate.weekday() == SUNDAY:
            return candidate
    return None


def build_sa_holidays(year: int) -> list[PublicHoliday]:
    base = dict(holidays.country_holidays(COUNTRY_CODE, years=year, observed=False))
    with_observed = dict(holidays.country_holidays(COUNTRY_CODE, years=year, observed=True))

    shifted: dict[date, date] = {}
    for day in sorted(set(with_observed) - set(base)):
        original = _original_for(day, base)
        if original is None:
            logger.warning("No original holiday found for observed day %s", day)
            continue
        shifted[day] = original
    moved_originals = set(shifted.values())

    rows = [
        PublicHoliday(
            date=day,
            name=name,
            year=year,
            is_observed=day not in moved_originals,
            original_date=None,
        )
        for day, name in sorted(base.items())
    ]
    rows.extend(
        PublicHoliday(
            date=day,
            name=base[original],
            year=year,
            is_observed=True,
            original_date=original,
        )
        for day, original in sorted(shifted.items())
    )
    return rows
