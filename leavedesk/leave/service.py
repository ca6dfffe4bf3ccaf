"""Leave service layer — the operations the API and batch jobs call.

Wires the engine pieces around one repository:
  - Request submission, re-validated on the write path
  - Editing, withdrawing and cleaning up requests; the filtered request list
  - Approve / reject / cancel through the approval workflow
  - Balances per cycle and cumulative per leave type
  - Forfeiture preview, acknowledgment and the admin overview
  - Monthly accrual and forfeiture sweep batches
  - Lump-sum cycle opening for new hires and per-employee work schedules
  - Working-day counts and the public holiday calendar
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from leavedesk.calendar.models import PublicHoliday
from leavedesk.calendar.provider import HolidayProvider
from leavedesk.calendar.working_days import (
    is_working_day,
    iter_dates,
    local_today,
    years_touched,
)
from leavedesk.common.audit import ENTITY_LEAVE_REQUEST
from leavedesk.common.constants import Capability, LeaveAction, LeaveStatus
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    StateError,
    ValidationException,
)
from leavedesk.employees.models import Employee
from leavedesk.leave.accrual import AccrualEngine
from leavedesk.leave.forfeiture import ForfeitureEngine
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leavedesk.leave.repository import LeaveRepository
from leavedesk.leave.schemas import (
    AccrualRunResult,
    BalanceSummaryOut,
    CancelledCleanupOut,
    ForfeitureItem,
    ForfeitureSweepResult,
    LeaveRequestCreate,
    PendingForfeitureOut,
    ScheduleDayOut,
    ValidationResult,
    WorkScheduleOut,
)
from leavedesk.leave.validator import LeaveValidator, coerce_family_reason
from leavedesk.leave.workflow import ApprovalWorkflow

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Facade over the leave engine for one unit of work."""

    def __init__(self, repository: LeaveRepository) -> None:
        self.repository = repository
        self.holidays = HolidayProvider(repository)
        self.ledger = BalanceLedger(repository)
        self.validator = LeaveValidator(repository, self.holidays)
        self.workflow = ApprovalWorkflow(repository, self.ledger)
        self.accrual = AccrualEngine(repository, self.ledger)
        self.forfeiture = ForfeitureEngine(repository, self.ledger)

    # ── Lookups ─────────────────────────────────────────────────────

    async def _employee(self, employee_id: uuid.UUID) -> Employee:
        employee = await self.repository.get_employee(employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    async def _leave_type(self, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await self.repository.get_leave_type(leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", leave_type_id)
        return leave_type

    @staticmethod
    def _ensure_can_read(actor: Optional[Employee], employee_id: uuid.UUID) -> None:
        if actor is None or actor.id == employee_id:
            return
        if not actor.role.can(Capability.read_all_leave):
            raise ForbiddenException("You can only view your own leave.")

    @staticmethod
    def _request_fields(
        leave_type: LeaveType, data: LeaveRequestCreate, result: ValidationResult,
    ) -> dict[str, Any]:
        return {
            "leave_type_id": leave_type.id,
            "balance_year": result.balance_year,
            "start_date": data.start_date,
            "end_date": data.end_date,
            "total_days": result.working_days,
            "is_half_day": data.is_half_day,
            "half_day_period": data.half_day_period if data.is_half_day else None,
            "reason": data.reason,
            "family_reason": coerce_family_reason(data.family_reason),
            "requires_medical_certificate": result.requires_medical_certificate,
        }

    # ── Requests ────────────────────────────────────────────────────

    async def validate_request(
        self, employee_id: uuid.UUID, data: LeaveRequestCreate,
    ) -> ValidationResult:
        """Advisory check for the UI; never raises for rule violations."""
        employee = await self._employee(employee_id)
        leave_type = await self._leave_type(data.leave_type_id)
        return await self.validator.validate(
            employee, leave_type, data.start_date, data.end_date,
            is_half_day=data.is_half_day,
            half_day_period=data.half_day_period,
            family_reason=data.family_reason,
        )

    async def create_leave_request(
        self, employee_id: uuid.UUID, data: LeaveRequestCreate,
    ) -> LeaveRequest:
        """Store a pending request after re-running every eligibility rule.

        Raises:
            NotFoundException: unknown employee or leave type.
            ValidationException: malformed dates or half-day details.
            EligibilityError: a leave rule forbids the request.
        """
        employee = await self._employee(employee_id)
        leave_type = await self._leave_type(data.leave_type_id)

        async with self.repository.transaction():
            result = await self.validator.ensure_valid(
                employee, leave_type, data.start_date, data.end_date,
                is_half_day=data.is_half_day,
                half_day_period=data.half_day_period,
                family_reason=data.family_reason,
            )
            request = await self.repository.add_request(
                LeaveRequest(
                    employee_id=employee.id,
                    status=LeaveStatus.pending,
                    **self._request_fields(leave_type, data, result),
                )
            )
            await self.repository.record_audit(
                action="create",
                entity_type=ENTITY_LEAVE_REQUEST,
                entity_id=request.id,
                actor_id=employee.id,
                new_values={
                    "leave_type": leave_type.code,
                    "start_date": data.start_date.isoformat(),
                    "end_date": data.end_date.isoformat(),
                    "total_days": str(result.working_days),
                },
            )

        logger.info(
            "Leave request %s created: %s %s day(s) for employee %s",
            request.id, leave_type.code, result.working_days, employee.id,
        )
        return request

    async def transition_leave_request(
        self,
        request_id: uuid.UUID,
        actor: Employee,
        action: LeaveAction,
        *,
        remarks: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        return await self.workflow.transition(
            request_id, actor, action, remarks=remarks, reason=reason
        )

    async def get_leave_request(self, request_id: uuid.UUID, actor: Employee) -> LeaveRequest:
        request = await self.repository.get_request(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)
        self._ensure_can_read(actor, request.employee_id)
        return request

    async def list_leave_requests(
        self,
        actor: Employee,
        *,
        employee_id: Optional[uuid.UUID] = None,
        statuses: Optional[Sequence[LeaveStatus]] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        department: Optional[str] = None,
    ) -> list[LeaveRequest]:
        """Own requests for employees; anyone's for reviewers (the approvals queue)."""
        if not actor.role.can(Capability.read_all_leave):
            self._ensure_can_read(actor, employee_id or actor.id)
            employee_id = actor.id
        return await self.repository.list_requests(
            employee_id,
            statuses=statuses,
            leave_type_id=leave_type_id,
            start_from=start_date,
            end_until=end_date,
            department=department,
        )

    async def update_pending_request(
        self, request_id: uuid.UUID, actor: Employee, data: LeaveRequestCreate,
    ) -> LeaveRequest:
        """Replace a pending request's details; days are recounted and every rule re-run.

        Raises:
            ForbiddenException: the actor is not the requester.
            StateError: the request is no longer pending.
            ValidationException / EligibilityError: as for a new request.
        """
        request = await self.repository.get_request(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)
        if request.employee_id != actor.id:
            raise ForbiddenException("Only the requester can edit a leave request.")
        if request.status != LeaveStatus.pending:
            raise StateError(request.status.value, "edit")

        employee = await self._employee(request.employee_id)
        leave_type = await self._leave_type(data.leave_type_id)

        async with self.repository.transaction():
            result = await self.validator.ensure_valid(
                employee, leave_type, data.start_date, data.end_date,
                is_half_day=data.is_half_day,
                half_day_period=data.half_day_period,
                family_reason=data.family_reason,
                exclude_request_id=request.id,
            )
            fields = self._request_fields(leave_type, data, result)
            if not await self.repository.update_request_if_status(
                request.id, LeaveStatus.pending, **fields
            ):
                latest = await self.repository.get_request(request.id)
                raise StateError(latest.status.value if latest else "deleted", "edit")
            await self.repository.record_audit(
                action="update",
                entity_type=ENTITY_LEAVE_REQUEST,
                entity_id=request.id,
                actor_id=actor.id,
                old_values=_request_summary(request),
                new_values={
                    "leave_type_id": leave_type.id,
                    "start_date": data.start_date,
                    "end_date": data.end_date,
                    "total_days": result.working_days,
                },
            )

        logger.info(
            "Leave request %s edited: %s %s day(s)",
            request.id, leave_type.code, result.working_days,
        )
        return await self.repository.get_request(request.id)

    async def delete_leave_request(self, request_id: uuid.UUID, actor: Employee) -> None:
        """Withdraw a pending request, or remove a cancelled one from history.

        Pending requests can only be withdrawn by the requester. Cancelled
        ones can be cleaned up by the requester or an admin. Balances are never
        touched: neither state holds any days.
        """
        request = await self.repository.get_request(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)

        is_requester = request.employee_id == actor.id
        if request.status == LeaveStatus.pending:
            if not is_requester:
                raise ForbiddenException("Only the requester can withdraw a pending request.")
        elif request.status == LeaveStatus.cancelled:
            if not (is_requester or actor.role.can(Capability.cancel_any_leave)):
                raise ForbiddenException(
                    "Only the requester or an admin can delete a cancelled request."
                )
        else:
            raise StateError(request.status.value, "delete")

        async with self.repository.transaction():
            if not await self.repository.delete_request_if_status(request.id, request.status):
                latest = await self.repository.get_request(request.id)
                raise StateError(latest.status.value if latest else "deleted", "delete")
            await self.repository.record_audit(
                action="delete",
                entity_type=ENTITY_LEAVE_REQUEST,
                entity_id=request.id,
                actor_id=actor.id,
                old_values=_request_summary(request),
            )
        logger.info("Leave request %s (%s) deleted by %s", request.id, request.status.value, actor.id)

    async def purge_cancelled_requests(
        self, employee_id: uuid.UUID, actor: Employee,
    ) -> CancelledCleanupOut:
        if actor.id != employee_id and not actor.role.can(Capability.cancel_any_leave):
            raise ForbiddenException("Only an admin can clean up another employee's leave.")
        await self._employee(employee_id)

        async with self.repository.transaction():
            deleted = await self.repository.delete_requests(employee_id, LeaveStatus.cancelled)
            for request_id in deleted:
                await self.repository.record_audit(
                    action="delete",
                    entity_type=ENTITY_LEAVE_REQUEST,
                    entity_id=request_id,
                    actor_id=actor.id,
                    old_values={"status": LeaveStatus.cancelled},
                )
        logger.info(
            "Removed %d cancelled request(s) of employee %s", len(deleted), employee_id
        )
        return CancelledCleanupOut(employee_id=employee_id, deleted=len(deleted))

    # ── Balances ────────────────────────────────────────────────────

    async def get_balances(
        self,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
        *,
        actor: Optional[Employee] = None,
    ) -> list[LeaveBalance]:
        self._ensure_can_read(actor, employee_id)
        return await self.repository.list_balances(employee_id, year=year)

    async def get_balance_summary(
        self, employee_id: uuid.UUID, *, actor: Optional[Employee] = None,
    ) -> list[BalanceSummaryOut]:
        """Sum every cycle's row per leave type."""
        self._ensure_can_read(actor, employee_id)
        summary: "OrderedDict[uuid.UUID, BalanceSummaryOut]" = OrderedDict()
        for balance in await self.repository.list_balances(employee_id):
            entry = summary.get(balance.leave_type_id)
            if entry is None:
                leave_type = await self._leave_type(balance.leave_type_id)
                entry = summary[balance.leave_type_id] = BalanceSummaryOut(
                    leave_type_id=leave_type.id,
                    code=leave_type.code,
                    name=leave_type.name,
                    color=leave_type.color,
                    total_days=Decimal("0"),
                    used_days=Decimal("0"),
                    remaining_days=Decimal("0"),
                    cycles=0,
                )
            entry.total_days += Decimal(str(balance.total_days))
            entry.used_days += Decimal(str(balance.used_days))
            entry.remaining_days += Decimal(str(balance.remaining_days))
            entry.cycles += 1
        return list(summary.values())

    # ── Forfeiture ──────────────────────────────────────────────────

    async def preview_forfeiture(
        self,
        employee_id: uuid.UUID,
        as_of: Optional[date] = None,
        *,
        actor: Optional[Employee] = None,
    ) -> list[ForfeitureItem]:
        self._ensure_can_read(actor, employee_id)
        await self._employee(employee_id)
        return await self.forfeiture.preview(employee_id, as_of or local_today())

    async def acknowledge_and_process_forfeiture(
        self,
        employee_id: uuid.UUID,
        actor: Employee,
        *,
        acknowledged: bool,
        as_of: Optional[date] = None,
    ) -> list[ForfeitureItem]:
        return await self.forfeiture.acknowledge_and_process(
            employee_id,
            actor=actor,
            acknowledged=acknowledged,
            as_of=as_of or local_today(),
        )

    async def list_pending_forfeitures(
        self, actor: Employee, as_of: Optional[date] = None,
    ) -> list[PendingForfeitureOut]:
        return await self.forfeiture.list_pending(as_of or local_today(), actor=actor)

    # ── Batch jobs ──────────────────────────────────────────────────

    async def run_monthly_accrual(self, as_of: Optional[date] = None) -> AccrualRunResult:
        return await self.accrual.run(as_of or local_today())

    async def run_forfeiture_sweep(
        self, as_of: Optional[date] = None,
    ) -> ForfeitureSweepResult:
        return await self.forfeiture.sweep(as_of or local_today())

    # ── Cycles and work schedules ───────────────────────────────────

    async def open_leave_cycles(
        self, employee_id: uuid.UUID, actor: Employee, as_of: Optional[date] = None,
    ) -> list[LeaveBalance]:
        """Open the current sick and family responsibility cycles for a new hire."""
        if not actor.role.can_manage_users:
            raise ForbiddenException()
        employee = await self._employee(employee_id)
        return await self.accrual.open_cycles_for(employee, as_of or local_today())

    async def get_work_schedule(
        self, employee_id: uuid.UUID, *, actor: Optional[Employee] = None,
    ) -> WorkScheduleOut:
        self._ensure_can_read(actor, employee_id)
        employee = await self._employee(employee_id)
        return _schedule_out(employee)

    async def set_work_schedule(
        self, employee_id: uuid.UUID, days_off: Sequence[int], actor: Employee,
    ) -> WorkScheduleOut:
        """Set an employee's weekly days off. Existing requests keep their day counts."""
        if not actor.role.can_manage_users:
            raise ForbiddenException()
        employee = await self._employee(employee_id)
        before = sorted(employee.days_off)
        async with self.repository.transaction():
            employee.weekly_days_off = sorted(set(days_off))
            await self.repository.save_employee(employee)
        logger.info(
            "Work schedule of employee %s changed from %s to %s days off",
            employee.id, before, employee.weekly_days_off,
        )
        return _schedule_out(employee)

    async def get_schedule(
        self,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        actor: Optional[Employee] = None,
    ) -> list[ScheduleDayOut]:
        """Day-by-day view of an employee's working days, days off and holidays."""
        self._ensure_can_read(actor, employee_id)
        if end_date < start_date:
            raise ValidationException(
                {"end_date": ["End date must be on or after the start date."]}
            )
        employee = await self._employee(employee_id)
        names: dict[date, str] = {}
        for year in years_touched(start_date, end_date):
            for holiday in await self.repository.list_public_holidays(year):
                if holiday.is_observed:
                    names[holiday.date] = holiday.name
        return [
            ScheduleDayOut(
                date=day,
                is_working_day=is_working_day(day, frozenset(names), employee.days_off),
                is_day_off=day.weekday() in employee.days_off,
                holiday_name=names.get(day),
            )
            for day in iter_dates(start_date, end_date)
        ]

    # ── Calendar ────────────────────────────────────────────────────

    async def count_working_days(
        self,
        start_date: date,
        end_date: date,
        *,
        half_day: bool = False,
        employee: Optional[Employee] = None,
    ) -> Decimal:
        """Working days in the range, on ``employee``'s schedule when given."""
        if employee is None:
            return await self.holidays.count_working_days(
                start_date, end_date, half_day=half_day
            )
        return await self.holidays.count_working_days(
            start_date, end_date, half_day=half_day, weekend=employee.days_off
        )

    async def list_holidays(self, year: int) -> list[PublicHoliday]:
        return await self.repository.list_public_holidays(year)


def _request_summary(request: LeaveRequest) -> dict[str, Any]:
    return {
        "status": request.status,
        "leave_type_id": request.leave_type_id,
        "start_date": request.start_date,
        "end_date": request.end_date,
        "total_days": request.total_days,
    }


def _schedule_out(employee: Employee) -> WorkScheduleOut:
    return WorkScheduleOut(
        employee_id=employee.id,
        days_off=sorted(employee.days_off),
        work_days_per_week=employee.work_days_per_week,
    )
