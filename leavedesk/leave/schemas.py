"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Result      → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leavedesk.common.constants import (
    FamilyResponsibilityReason,
    ForfeitureState,
    HalfDayPeriod,
    LeaveStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One balance row: a leave type's cycle for one employee."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    accrued_days: Decimal
    accrued_months: int
    carried_over_days: Decimal
    cycle_start_date: Optional[date] = None
    cycle_end_date: Optional[date] = None
    forfeited_days: Decimal
    forfeiture_processed_at: Optional[datetime] = None


class BalanceSummaryOut(BaseModel):
    """Cumulative view of one leave type: every cycle's row summed."""

    leave_type_id: uuid.UUID
    code: str
    name: str
    color: str
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    cycles: int


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create / Validate
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting (or pre-checking) a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    is_half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None
    reason: Optional[str] = Field(None, max_length=1000)
    family_reason: Optional[FamilyResponsibilityReason] = Field(
        None, description="Qualifying event; required for family responsibility leave"
    )

    @model_validator(mode="after")
    def validate_span(self) -> "LeaveRequestCreate":
        if (self.end_date - self.start_date).days > 366:
            raise ValueError("Leave request cannot span more than a year.")
        return self


class ValidationResult(BaseModel):
    """Outcome of checking a request against the leave rules.

    ``requires_medical_certificate`` is advisory only; it never makes a
    request invalid.
    """

    valid: bool = False
    message: str = ""
    working_days: Decimal = Decimal("0")
    requires_medical_certificate: bool = False
    balance_year: Optional[int] = None
    remaining_days: Optional[Decimal] = None
    # Portion that would come from the previous cycle's carry-over
    carry_over_days: Decimal = Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    balance_year: int
    start_date: date
    end_date: date
    total_days: Decimal
    carry_over_year: Optional[int] = None
    carry_over_days: Decimal = Decimal("0")
    is_half_day: bool
    half_day_period: Optional[HalfDayPeriod] = None
    reason: Optional[str] = None
    family_reason: Optional[FamilyResponsibilityReason] = None
    requires_medical_certificate: bool
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    reviewer_remarks: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    # Emptiness is checked by the workflow so it fails before any balance change
    reason: str = Field("", max_length=500)


class CancelledCleanupOut(BaseModel):
    """Cancelled requests permanently removed for one employee."""

    employee_id: uuid.UUID
    deleted: int


# ═════════════════════════════════════════════════════════════════════
# Forfeiture
# ═════════════════════════════════════════════════════════════════════


class ForfeitureItem(BaseModel):
    """Days of one annual-leave cycle that are (or were) forfeited."""

    balance_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    cycle_start_date: date
    cycle_end_date: date
    days_forfeited: Decimal
    due_date: date
    reason: str
    requires_acknowledgment: bool
    state: ForfeitureState


class ForfeitureAcknowledgeRequest(BaseModel):
    acknowledged: bool = Field(
        False, description="Explicit confirmation that the listed days will be removed"
    )


class PendingForfeitureOut(BaseModel):
    """An employee with forfeiture awaiting their acknowledgment."""

    employee_id: uuid.UUID
    full_name: str
    email: str
    department: Optional[str] = None
    total_days: Decimal
    items: list[ForfeitureItem]


# ═════════════════════════════════════════════════════════════════════
# Batch jobs
# ═════════════════════════════════════════════════════════════════════


class BatchFailure(BaseModel):
    employee_id: uuid.UUID
    error: str


class AccrualRunResult(BaseModel):
    as_of: date
    processed: int = 0
    opened_balances: int = 0
    credited_days: Decimal = Decimal("0")
    failures: list[BatchFailure] = Field(default_factory=list)


class ForfeitureSweepResult(BaseModel):
    as_of: date
    processed: int = 0
    flagged: int = 0
    failures: list[BatchFailure] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Calendar
# ═════════════════════════════════════════════════════════════════════


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    name: str
    is_observed: bool
    original_date: Optional[date] = None


class WorkingDaysOut(BaseModel):
    start_date: date
    end_date: date
    is_half_day: bool
    working_days: Decimal


# ═════════════════════════════════════════════════════════════════════
# Work schedule
# ═════════════════════════════════════════════════════════════════════


class WorkScheduleUpdate(BaseModel):
    """Weekly days off, Monday=0 … Sunday=6 (e.g. ``[4, 5, 6]`` for a 4-day week)."""

    # Six at most, so at least one working day remains
    days_off: list[int] = Field(..., max_length=6)

    @field_validator("days_off")
    @classmethod
    def validate_days_off(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("Weekdays must be between 0 (Monday) and 6 (Sunday).")
        return sorted(set(value))


class WorkScheduleOut(BaseModel):
    employee_id: uuid.UUID
    days_off: list[int]
    work_days_per_week: int


class ScheduleDayOut(BaseModel):
    date: date
    is_working_day: bool
    is_day_off: bool
    holiday_name: Optional[str] = None
