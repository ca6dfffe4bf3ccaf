"""Public holiday lookup for working-day counts."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, AbstractSet

from leavedesk.calendar.working_days import count_working_days, years_touched
from leavedesk.common.constants import SA_WEEKEND

if TYPE_CHECKING:
    from leavedesk.leave.repository import LeaveRepository


class HolidayProvider:
    """Loads observed holiday dates per year from the repository, caching each year."""

    def __init__(self, repository: "LeaveRepository") -> None:
        self._repository = repository
        self._cache: dict[int, frozenset[date]] = {}

    async def observed_for_year(self, year: int) -> frozenset[date]:
        if year not in self._cache:
            rows = await self._repository.list_public_holidays(year)
            # A Sunday holiday moved to Monday is only counted on the Monday
            self._cache[year] = frozenset(h.date for h in rows if h.is_observed)
        return self._cache[year]

    async def observed_dates(self, start: date, end: date) -> frozenset[date]:
        dates: set[date] = set()
        for year in years_touched(start, end):
            dates |= await self.observed_for_year(year)
        return frozenset(dates)

    async def count_working_days(
        self,
        start: date,
        end: date,
        *,
        half_day: bool = False,
        weekend: AbstractSet[int] = SA_WEEKEND,
    ) -> Decimal:
        holidays = await self.observed_dates(start, end)
        return count_working_days(start, end, holidays, weekend=weekend, half_day=half_day)
