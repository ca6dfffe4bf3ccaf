"""Scheduled-job endpoints, called by the cron trigger with CRON_SECRET."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from leavedesk.auth.dependencies import require_cron_secret
from leavedesk.common.rate_limit import JOB_RATE_LIMIT, limiter
from leavedesk.dependencies import get_leave_service
from leavedesk.leave.schemas import AccrualRunResult, ForfeitureSweepResult
from leavedesk.leave.service import LeaveService

router = APIRouter(
    prefix="",
    tags=["jobs"],
    dependencies=[Depends(require_cron_secret)],
)


# ── POST /monthly-accrual ───────────────────────────────────────────

@router.post("/monthly-accrual", response_model=AccrualRunResult)
@limiter.limit(JOB_RATE_LIMIT)
async def monthly_accrual(
    request: Request,
    as_of: Optional[date] = Query(None, description="Defaults to today (SAST)"),
    service: LeaveService = Depends(get_leave_service),
):
    """Credit this month's annual leave to every active employee.

    Per-employee failures are reported in the body, not as an error status.
    """
    return await service.run_monthly_accrual(as_of)


# ── POST /forfeiture-sweep ──────────────────────────────────────────

@router.post("/forfeiture-sweep", response_model=ForfeitureSweepResult)
@limiter.limit(JOB_RATE_LIMIT)
async def forfeiture_sweep(
    request: Request,
    as_of: Optional[date] = Query(None),
    service: LeaveService = Depends(get_leave_service),
):
    return await service.run_forfeiture_sweep(as_of)
