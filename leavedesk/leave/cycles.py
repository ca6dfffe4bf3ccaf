"""Leave cycle boundaries and the annual-leave carry-over window.

Annual leave runs on calendar-year cycles. Lump-sum types granted per year
follow the same calendar year; longer cycles (sick leave's 36 months) are
anchored on the employment start date. Days left in an annual cycle may still
be taken during the first six months of the next one, and those requests draw
on the old cycle first.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from leavedesk.calendar.working_days import add_months, full_months_between
from leavedesk.common.constants import ANNUAL_LEAVE_CODE, FORFEITURE_GRACE_MONTHS
from leavedesk.leave.models import LeaveBalance, LeaveType
from leavedesk.leave.repository import LeaveRepository

CALENDAR_CYCLE_MONTHS = 12


def calendar_cycle(as_of: date) -> tuple[date, date]:
    return date(as_of.year, 1, 1), date(as_of.year, 12, 31)


def cycle_for(leave_type: LeaveType, start_work_date: date, as_of: date) -> tuple[date, date]:
    """Start and end of the ``leave_type`` cycle that contains ``as_of``."""
    if leave_type.cycle_months <= CALENDAR_CYCLE_MONTHS:
        return calendar_cycle(as_of)
    completed = full_months_between(start_work_date, as_of) // leave_type.cycle_months
    start = add_months(start_work_date, completed * leave_type.cycle_months)
    end = add_months(start, leave_type.cycle_months) - timedelta(days=1)
    return start, end


def carry_over_deadline(balance: LeaveBalance) -> date:
    """Last date leave may be taken against ``balance``'s cycle."""
    cycle_end = balance.cycle_end_date or date(balance.year, 12, 31)
    return add_months(cycle_end, FORFEITURE_GRACE_MONTHS)


def can_carry_over(balance: LeaveBalance, on_date: date) -> bool:
    cycle_end = balance.cycle_end_date or date(balance.year, 12, 31)
    return (
        cycle_end < on_date <= carry_over_deadline(balance)
        and balance.forfeiture_processed_at is None
        and Decimal(str(balance.remaining_days)) > 0
    )


async def carry_over_balance(
    repository: LeaveRepository,
    employee_id: uuid.UUID,
    leave_type: LeaveType,
    on_date: date,
) -> Optional[LeaveBalance]:
    """The previous annual cycle's balance if its days can still be taken on ``on_date``."""
    if leave_type.code != ANNUAL_LEAVE_CODE:
        return None
    previous = await repository.get_balance(employee_id, leave_type.id, on_date.year - 1)
    if previous is None or not can_carry_over(previous, on_date):
        return None
    return previous
