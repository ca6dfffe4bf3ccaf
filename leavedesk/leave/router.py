"""Leave router — requests, approvals, balances, forfeiture, schedules, calendar.

All endpoints require authentication. Reviewer and admin endpoints enforce
capability checks; the engine repeats them for every mutation.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from leavedesk.auth.dependencies import get_current_user, require_capability
from leavedesk.calendar.working_days import local_today
from leavedesk.common.constants import Capability, LeaveAction, LeaveStatus
from leavedesk.dependencies import get_leave_service
from leavedesk.employees.models import Employee
from leavedesk.leave.schemas import (
    BalanceSummaryOut,
    CancelledCleanupOut,
    ForfeitureAcknowledgeRequest,
    ForfeitureItem,
    HolidayOut,
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    PendingForfeitureOut,
    ScheduleDayOut,
    ValidationResult,
    WorkingDaysOut,
    WorkScheduleOut,
    WorkScheduleUpdate,
)
from leavedesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def create_leave_request(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Submit a leave request. Every eligibility rule is re-checked here."""
    return await service.create_leave_request(employee.id, body)


# ── POST /requests/validate ─────────────────────────────────────────

@router.post("/requests/validate", response_model=ValidationResult)
async def validate_leave_request(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Advisory pre-check for the request form; nothing is stored."""
    return await service.validate_request(employee.id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=list[LeaveRequestOut])
async def list_leave_requests(
    status: Optional[list[LeaveStatus]] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None, description="Reviewers only; defaults to everyone"),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    start_date: Optional[date] = Query(None, description="Requests starting on or after"),
    end_date: Optional[date] = Query(None, description="Requests ending on or before"),
    department: Optional[str] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Employees see their own requests. Reviewers see everyone's, e.g. ``?status=pending``."""
    return await service.list_leave_requests(
        employee,
        employee_id=employee_id,
        statuses=status,
        leave_type_id=leave_type_id,
        start_date=start_date,
        end_date=end_date,
        department=department,
    )


# ── DELETE /requests/cancelled ──────────────────────────────────────

@router.delete("/requests/cancelled", response_model=CancelledCleanupOut)
async def purge_cancelled_requests(
    employee_id: Optional[uuid.UUID] = Query(None, description="Admins only; defaults to the caller"),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.purge_cancelled_requests(employee_id or employee.id, employee)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.get_leave_request(request_id, employee)


# ── PUT /requests/{id} ──────────────────────────────────────────────

@router.put("/requests/{request_id}", response_model=LeaveRequestOut)
async def update_leave_request(
    request_id: uuid.UUID,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Edit a pending request. The new dates are validated like a fresh submission."""
    return await service.update_pending_request(request_id, employee, body)


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}", status_code=204)
async def delete_leave_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Withdraw a pending request or remove a cancelled one."""
    await service.delete_leave_request(request_id, employee)


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(require_capability(Capability.approve_leave)),
    service: LeaveService = Depends(get_leave_service),
):
    """Approve a pending request. Draws the days from the balance."""
    return await service.transition_leave_request(
        request_id, employee, LeaveAction.approve, remarks=body.remarks,
    )


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(require_capability(Capability.approve_leave)),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.transition_leave_request(
        request_id, employee, LeaveAction.reject, remarks=body.remarks,
    )


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Cancel a pending or approved request. Approved days are restored."""
    return await service.transition_leave_request(
        request_id, employee, LeaveAction.cancel, reason=body.reason,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, description="Cycle year; all cycles when omitted"),
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.get_balances(employee_id or employee.id, year, actor=employee)


# ── GET /balances/summary ───────────────────────────────────────────

@router.get("/balances/summary", response_model=list[BalanceSummaryOut])
async def get_balance_summary(
    employee_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Per leave type totals summed across every cycle."""
    return await service.get_balance_summary(employee_id or employee.id, actor=employee)


# ── GET /forfeiture/preview ─────────────────────────────────────────

@router.get("/forfeiture/preview", response_model=list[ForfeitureItem])
async def preview_forfeiture(
    as_of: Optional[date] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.preview_forfeiture(
        employee_id or employee.id, as_of, actor=employee,
    )


# ── POST /forfeiture/acknowledge ────────────────────────────────────

@router.post("/forfeiture/acknowledge", response_model=list[ForfeitureItem])
async def acknowledge_forfeiture(
    body: ForfeitureAcknowledgeRequest,
    as_of: Optional[date] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Acknowledge and apply the caller's due forfeiture. Irreversible."""
    return await service.acknowledge_and_process_forfeiture(
        employee.id, employee, acknowledged=body.acknowledged, as_of=as_of,
    )


# ── GET /forfeiture/pending ─────────────────────────────────────────

@router.get("/forfeiture/pending", response_model=list[PendingForfeitureOut])
async def list_pending_forfeitures(
    as_of: Optional[date] = Query(None),
    employee: Employee = Depends(require_capability(Capability.review_forfeitures)),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.list_pending_forfeitures(employee, as_of)


# ── POST /balances/open ─────────────────────────────────────────────

@router.post("/balances/open", response_model=list[LeaveBalanceOut])
async def open_leave_cycles(
    employee_id: uuid.UUID = Query(...),
    as_of: Optional[date] = Query(None),
    employee: Employee = Depends(require_capability(Capability.manage_users)),
    service: LeaveService = Depends(get_leave_service),
):
    """Open a new hire's sick and family responsibility cycles without waiting for the monthly run."""
    return await service.open_leave_cycles(employee_id, employee, as_of)


# ── GET /employees/{id}/schedule ────────────────────────────────────

@router.get("/employees/{employee_id}/schedule", response_model=WorkScheduleOut)
async def get_work_schedule(
    employee_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.get_work_schedule(employee_id, actor=employee)


# ── PUT /employees/{id}/schedule ────────────────────────────────────

@router.put("/employees/{employee_id}/schedule", response_model=WorkScheduleOut)
async def set_work_schedule(
    employee_id: uuid.UUID,
    body: WorkScheduleUpdate,
    employee: Employee = Depends(require_capability(Capability.manage_users)),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.set_work_schedule(employee_id, body.days_off, employee)


# ── GET /schedule ───────────────────────────────────────────────────

@router.get("/schedule", response_model=list[ScheduleDayOut])
async def get_schedule(
    start_date: date = Query(...),
    end_date: date = Query(...),
    employee_id: Optional[uuid.UUID] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    """Working days, days off and public holidays for the range."""
    return await service.get_schedule(
        employee_id or employee.id, start_date, end_date, actor=employee,
    )


# ── GET /holidays ───────────────────────────────────────────────────

@router.get("/holidays", response_model=list[HolidayOut])
async def get_holidays(
    year: Optional[int] = Query(None),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.list_holidays(year or local_today().year)


# ── GET /working-days ───────────────────────────────────────────────

@router.get("/working-days", response_model=WorkingDaysOut)
async def count_working_days(
    start_date: date = Query(...),
    end_date: date = Query(...),
    is_half_day: bool = Query(False),
    employee: Employee = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service),
):
    working_days = await service.count_working_days(
        start_date, end_date, half_day=is_half_day, employee=employee,
    )
    return WorkingDaysOut(
        start_date=start_date,
        end_date=end_date,
        is_half_day=is_half_day,
        working_days=working_days,
    )
