"""Monthly leave batch: open new cycles and credit annual-leave accrual.

Each active employee earns a fixed number of days per full month of service,
credited to the annual-leave balance of the calendar year being run. The
``accrued_months`` watermark on the balance makes a repeated run for the same
month credit nothing.

The same pass opens the current cycle of every active lump-sum leave type
(sick leave, family responsibility leave) with its full entitlement, so a
newly employed person or a new cycle has a balance to draw from.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from leavedesk.calendar.working_days import full_months_between
from leavedesk.common.constants import ANNUAL_LEAVE_CODE, AccrualMethod
from leavedesk.common.exceptions import NotFoundException
from leavedesk.common.retry import with_batch_retry
from leavedesk.config import settings
from leavedesk.employees.models import Employee
from leavedesk.leave.cycles import calendar_cycle, cycle_for
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveBalance, LeaveType
from leavedesk.leave.repository import LeaveRepository
from leavedesk.leave.schemas import AccrualRunResult, BatchFailure

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def months_in_cycle(start_work_date: date, cycle_start: date, as_of: date) -> int:
    """Full months of service earned inside the cycle as of ``as_of``.

    Months are counted from the employment start date, so someone starting on
    the 15th completes each month on the 15th.
    """
    elapsed = full_months_between(start_work_date, as_of)
    if start_work_date >= cycle_start:
        return elapsed
    return max(elapsed - full_months_between(start_work_date, cycle_start), 0)


def new_balance(
    employee: Employee, leave_type: LeaveType, cycle_start: date, cycle_end: date,
    *, total: Decimal = ZERO,
) -> LeaveBalance:
    return LeaveBalance(
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        year=cycle_start.year,
        total_days=total,
        used_days=ZERO,
        remaining_days=total,
        accrued_days=ZERO,
        accrued_months=0,
        carried_over_days=ZERO,
        forfeited_days=ZERO,
        cycle_start_date=cycle_start,
        cycle_end_date=cycle_end,
        version=0,
    )


class AccrualEngine:
    def __init__(
        self,
        repository: LeaveRepository,
        ledger: BalanceLedger,
        *,
        monthly_rate: Optional[Decimal] = None,
    ) -> None:
        self.repository = repository
        self.ledger = ledger
        self.monthly_rate = (
            monthly_rate
            if monthly_rate is not None
            else settings.ANNUAL_LEAVE_ACCRUAL_PER_MONTH
        )

    async def _lump_sum_types(self) -> list[LeaveType]:
        return [
            t for t in await self.repository.list_leave_types(active_only=True)
            if t.accrual_method == AccrualMethod.lump_sum
        ]

    async def run(self, as_of: date) -> AccrualRunResult:
        leave_type = await self.repository.get_leave_type_by_code(ANNUAL_LEAVE_CODE)
        if leave_type is None:
            raise NotFoundException("LeaveType", ANNUAL_LEAVE_CODE)
        lump_sum_types = await self._lump_sum_types()

        employees = await with_batch_retry(
            lambda: self.repository.list_active_employees(as_of)
        )
        result = AccrualRunResult(as_of=as_of)

        for employee in employees:
            try:
                opened = await with_batch_retry(
                    lambda: self._open_cycles(employee, lump_sum_types, as_of)
                )
                credited = await with_batch_retry(
                    lambda: self._accrue_employee(employee, leave_type, as_of)
                )
            except Exception as exc:
                logger.exception("Accrual failed for employee %s", employee.id)
                result.failures.append(
                    BatchFailure(employee_id=employee.id, error=str(exc) or type(exc).__name__)
                )
                continue
            result.processed += 1
            result.opened_balances += opened
            result.credited_days += credited

        logger.info(
            "Accrual run %s: %d processed, %d cycle(s) opened, %s day(s) credited, %d failed",
            as_of.isoformat(), result.processed, result.opened_balances,
            result.credited_days, len(result.failures),
        )
        return result

    async def open_cycles_for(self, employee: Employee, as_of: date) -> list[LeaveBalance]:
        """Open the current lump-sum cycles for one employee (onboarding)."""
        lump_sum_types = await self._lump_sum_types()
        await self._open_cycles(employee, lump_sum_types, as_of)
        type_ids = {t.id for t in lump_sum_types}
        return [
            balance for balance in await self.repository.list_balances(employee.id)
            if balance.leave_type_id in type_ids and balance.covers(as_of)
        ]

    async def _open_cycles(
        self, employee: Employee, leave_types: list[LeaveType], as_of: date,
    ) -> int:
        opened = 0
        async with self.repository.transaction():
            for leave_type in leave_types:
                cycle_start, cycle_end = cycle_for(leave_type, employee.start_work_date, as_of)
                if await self.repository.get_balance(
                    employee.id, leave_type.id, cycle_start.year
                ) is not None:
                    continue
                entitlement = Decimal(str(leave_type.max_days_per_cycle))
                await self.repository.add_balance(
                    new_balance(employee, leave_type, cycle_start, cycle_end, total=entitlement)
                )
                opened += 1
                logger.info(
                    "Opened %s cycle %s to %s for employee %s with %s day(s)",
                    leave_type.code, cycle_start.isoformat(), cycle_end.isoformat(),
                    employee.id, entitlement,
                )
        return opened

    async def _accrue_employee(
        self, employee: Employee, leave_type: LeaveType, as_of: date,
    ) -> Decimal:
        cycle_start, cycle_end = calendar_cycle(as_of)
        months = months_in_cycle(employee.start_work_date, cycle_start, as_of)

        async with self.repository.transaction():
            balance = await self.repository.get_balance(
                employee.id, leave_type.id, as_of.year
            )
            if balance is None:
                balance = await self.repository.add_balance(
                    new_balance(employee, leave_type, cycle_start, cycle_end)
                )
                logger.info(
                    "Opened %d annual leave balance for employee %s",
                    as_of.year, employee.id,
                )

            if months <= balance.accrued_months:
                return ZERO

            before = Decimal(str(balance.accrued_days))
            target = min(
                self.monthly_rate * months, Decimal(str(leave_type.max_days_per_cycle))
            )
            updated = await self.ledger.apply_accrual(
                employee.id,
                leave_type.id,
                as_of.year,
                accrued_months=months,
                accrued_days=target,
            )
            return Decimal(str(updated.accrued_days)) - before
