"""Annual leave forfeiture (BCEA s20(4)).

Leave from an annual cycle must be taken within six months of the cycle
ending, i.e. 18 months after it started. After that the unused days are
forfeited, but only once the employee has explicitly acknowledged it.

Per cycle the state moves ``compliant → forfeiture_due → acknowledged →
processed`` and never back. The amount is the balance's remaining days at the
time of processing, not a snapshot taken at the 18-month mark.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from leavedesk.calendar.working_days import add_months
from leavedesk.common.constants import (
    ANNUAL_LEAVE_CODE,
    DATE_FORMAT,
    FORFEITURE_GRACE_MONTHS,
    FORFEITURE_WINDOW_MONTHS,
    Capability,
    ForfeitureState,
)
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.retry import with_batch_retry
from leavedesk.employees.models import Employee
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveBalance, LeaveType
from leavedesk.leave.repository import LeaveRepository
from leavedesk.leave.schemas import (
    BatchFailure,
    ForfeitureItem,
    ForfeitureSweepResult,
    PendingForfeitureOut,
)

logger = logging.getLogger(__name__)

PENDING_STATES = (ForfeitureState.forfeiture_due, ForfeitureState.acknowledged)


def _cycle_of(balance: LeaveBalance) -> tuple[date, date]:
    start = balance.cycle_start_date or date(balance.year, 1, 1)
    end = balance.cycle_end_date or date(balance.year, 12, 31)
    return start, end


def forfeiture_state(balance: LeaveBalance, as_of: date) -> ForfeitureState:
    if balance.forfeiture_processed_at is not None:
        return ForfeitureState.processed
    cycle_start, _ = _cycle_of(balance)
    if as_of < add_months(cycle_start, FORFEITURE_WINDOW_MONTHS):
        return ForfeitureState.compliant
    if Decimal(str(balance.remaining_days)) <= 0:
        return ForfeitureState.compliant
    if balance.forfeiture_acknowledged_at is not None:
        return ForfeitureState.acknowledged
    return ForfeitureState.forfeiture_due


def build_item(balance: LeaveBalance, state: ForfeitureState) -> ForfeitureItem:
    cycle_start, cycle_end = _cycle_of(balance)
    due_date = add_months(cycle_end, FORFEITURE_GRACE_MONTHS)
    days = (
        Decimal(str(balance.forfeited_days))
        if state == ForfeitureState.processed
        else Decimal(str(balance.remaining_days))
    )
    return ForfeitureItem(
        balance_id=balance.id,
        leave_type_id=balance.leave_type_id,
        year=balance.year,
        cycle_start_date=cycle_start,
        cycle_end_date=cycle_end,
        days_forfeited=days,
        due_date=due_date,
        reason=(
            f"Unused annual leave from the {balance.year} cycle had to be taken "
            f"by {due_date.strftime(DATE_FORMAT)}."
        ),
        requires_acknowledgment=state in PENDING_STATES,
        state=state,
    )


class ForfeitureEngine:
    def __init__(self, repository: LeaveRepository, ledger: BalanceLedger) -> None:
        self.repository = repository
        self.ledger = ledger

    async def _annual_leave_type(self) -> LeaveType:
        leave_type = await self.repository.get_leave_type_by_code(ANNUAL_LEAVE_CODE)
        if leave_type is None:
            raise NotFoundException("LeaveType", ANNUAL_LEAVE_CODE)
        return leave_type

    async def _pending_items(
        self, employee_id: uuid.UUID, leave_type: LeaveType, as_of: date,
    ) -> list[ForfeitureItem]:
        balances = await self.repository.list_balances(
            employee_id, leave_type_id=leave_type.id
        )
        items = []
        for balance in balances:
            state = forfeiture_state(balance, as_of)
            if state in PENDING_STATES:
                items.append(build_item(balance, state))
        return items

    async def preview(self, employee_id: uuid.UUID, as_of: date) -> list[ForfeitureItem]:
        """Cycles whose unused days are due for forfeiture. Read-only."""
        leave_type = await self._annual_leave_type()
        return await self._pending_items(employee_id, leave_type, as_of)

    async def acknowledge_and_process(
        self,
        employee_id: uuid.UUID,
        *,
        actor: Employee,
        acknowledged: bool,
        as_of: date,
    ) -> list[ForfeitureItem]:
        """Forfeit every due cycle for the employee after explicit acknowledgment.

        Raises:
            ValidationException: ``acknowledged`` is not True.
            ForbiddenException: the actor is not the employee concerned.
        """
        if acknowledged is not True:
            raise ValidationException(
                {"acknowledged": ["Forfeiture must be explicitly acknowledged."]}
            )
        if actor.id != employee_id:
            raise ForbiddenException(
                "Only the employee concerned can acknowledge a forfeiture."
            )

        employee = await self.repository.get_employee(employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        leave_type = await self._annual_leave_type()

        processed: list[ForfeitureItem] = []
        async with self.repository.transaction():
            for item in await self._pending_items(employee_id, leave_type, as_of):
                await self.ledger.acknowledge_forfeiture(
                    employee_id, leave_type.id, item.year, actor_id=actor.id
                )
                balance = await self.ledger.apply_forfeiture(
                    employee_id, leave_type.id, item.year, item.days_forfeited,
                    actor_id=actor.id,
                )
                processed.append(build_item(balance, ForfeitureState.processed))
                logger.info(
                    "Forfeited %s day(s) of %d annual leave for employee %s",
                    item.days_forfeited, item.year, employee_id,
                )

            employee.forfeiture_acknowledgment_required = False
            if processed:
                employee.last_forfeiture_processed_at = datetime.now(timezone.utc)
            await self.repository.save_employee(employee)

        return processed

    async def sweep(self, as_of: date) -> ForfeitureSweepResult:
        """Flag every active employee who has forfeiture awaiting acknowledgment."""
        leave_type = await self._annual_leave_type()
        employees = await with_batch_retry(
            lambda: self.repository.list_active_employees(as_of)
        )
        result = ForfeitureSweepResult(as_of=as_of)

        for employee in employees:
            try:
                flagged = await with_batch_retry(
                    lambda: self._flag_employee(employee, leave_type, as_of)
                )
            except Exception as exc:
                logger.exception("Forfeiture sweep failed for employee %s", employee.id)
                result.failures.append(
                    BatchFailure(employee_id=employee.id, error=str(exc) or type(exc).__name__)
                )
                continue
            result.processed += 1
            if flagged:
                result.flagged += 1

        logger.info(
            "Forfeiture sweep %s: %d processed, %d flagged, %d failed",
            as_of.isoformat(), result.processed, result.flagged, len(result.failures),
        )
        return result

    async def _flag_employee(
        self, employee: Employee, leave_type: LeaveType, as_of: date,
    ) -> bool:
        due = bool(await self._pending_items(employee.id, leave_type, as_of))
        if employee.forfeiture_acknowledgment_required != due:
            async with self.repository.transaction():
                employee.forfeiture_acknowledgment_required = due
                await self.repository.save_employee(employee)
        return due

    async def list_pending(
        self, as_of: date, *, actor: Optional[Employee] = None,
    ) -> list[PendingForfeitureOut]:
        """Employees with unacknowledged forfeiture, for the admin overview."""
        if actor is not None and not actor.role.can(Capability.review_forfeitures):
            raise ForbiddenException()
        leave_type = await self._annual_leave_type()

        pending = []
        for employee in await self.repository.list_active_employees(as_of):
            items = await self._pending_items(employee.id, leave_type, as_of)
            if not items:
                continue
            pending.append(
                PendingForfeitureOut(
                    employee_id=employee.id,
                    full_name=employee.full_name,
                    email=employee.email,
                    department=employee.department,
                    total_days=sum((i.days_forfeited for i in items), Decimal("0")),
                    items=items,
                )
            )
        return pending
