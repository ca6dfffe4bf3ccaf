"""Eligibility checks for a leave request before it is stored.

``validate`` is the advisory form used by the UI: it reports the first rule a
request breaks without raising. ``ensure_valid`` is the same check for the
write path and raises on the first failure.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from leavedesk.calendar.provider import HolidayProvider
from leavedesk.calendar.working_days import full_months_between
from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    FAMILY_RESPONSIBILITY_CODE,
    FAMILY_RESPONSIBILITY_MIN_SERVICE_MONTHS,
    FAMILY_RESPONSIBILITY_MIN_WORK_DAYS,
    SICK_LEAVE_CODE,
    SICK_LEAVE_MEDICAL_CERT_THRESHOLD,
    FamilyResponsibilityReason,
    HalfDayPeriod,
)
from leavedesk.common.exceptions import EligibilityError, ValidationException
from leavedesk.employees.models import Employee
from leavedesk.leave.cycles import carry_over_balance
from leavedesk.leave.models import LeaveType
from leavedesk.leave.repository import LeaveRepository
from leavedesk.leave.schemas import ValidationResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive overlap on ISO date strings, independent of any timezone."""
    return (
        start_a.isoformat() <= end_b.isoformat()
        and start_b.isoformat() <= end_a.isoformat()
    )


def coerce_family_reason(
    value: Union[FamilyResponsibilityReason, str, None],
) -> Optional[FamilyResponsibilityReason]:
    if value is None or isinstance(value, FamilyResponsibilityReason):
        return value
    try:
        return FamilyResponsibilityReason(value)
    except ValueError:
        raise EligibilityError(
            f"'{value}' is not a qualifying reason for family responsibility leave.",
            field="family_reason",
        ) from None


class LeaveValidator:
    def __init__(self, repository: LeaveRepository, holidays: HolidayProvider) -> None:
        self.repository = repository
        self.holidays = holidays

    async def validate(
        self,
        employee: Employee,
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        *,
        is_half_day: bool = False,
        half_day_period: Optional[HalfDayPeriod] = None,
        family_reason: Union[FamilyResponsibilityReason, str, None] = None,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> ValidationResult:
        result = ValidationResult()
        try:
            await self._check(
                result, employee, leave_type, start_date, end_date,
                is_half_day=is_half_day,
                half_day_period=half_day_period,
                family_reason=family_reason,
                exclude_request_id=exclude_request_id,
            )
        except (ValidationException, EligibilityError) as exc:
            result.valid = False
            result.message = exc.detail
        return result

    async def ensure_valid(
        self,
        employee: Employee,
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        *,
        is_half_day: bool = False,
        half_day_period: Optional[HalfDayPeriod] = None,
        family_reason: Union[FamilyResponsibilityReason, str, None] = None,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> ValidationResult:
        """
        Raises:
            ValidationException: malformed request (dates, half-day shape).
            EligibilityError: a leave rule forbids the request.
        """
        result = ValidationResult()
        await self._check(
            result, employee, leave_type, start_date, end_date,
            is_half_day=is_half_day,
            half_day_period=half_day_period,
            family_reason=family_reason,
            exclude_request_id=exclude_request_id,
        )
        return result

    # ── Rules ───────────────────────────────────────────────────────

    async def _check(
        self,
        result: ValidationResult,
        employee: Employee,
        leave_type: LeaveType,
        start_date: date,
        end_date: date,
        *,
        is_half_day: bool,
        half_day_period: Optional[HalfDayPeriod],
        family_reason: Union[FamilyResponsibilityReason, str, None],
        exclude_request_id: Optional[uuid.UUID],
    ) -> None:
        self._check_shape(start_date, end_date, is_half_day, half_day_period)

        if not leave_type.is_active:
            raise EligibilityError(
                f"Leave type '{leave_type.name}' is not available.", field="leave_type_id"
            )
        if not employee.is_active_on(start_date):
            raise EligibilityError(
                "Leave can only be requested for dates within your employment period.",
                field="start_date",
            )

        working_days = await self.holidays.count_working_days(
            start_date, end_date, half_day=is_half_day, weekend=employee.days_off
        )
        result.working_days = working_days
        if working_days <= 0:
            raise EligibilityError(
                "The selected dates contain no working days.", field="start_date"
            )

        await self._check_overlap(employee.id, start_date, end_date, exclude_request_id)

        if leave_type.code == SICK_LEAVE_CODE:
            result.requires_medical_certificate = (
                working_days >= SICK_LEAVE_MEDICAL_CERT_THRESHOLD
            )
        elif leave_type.code == FAMILY_RESPONSIBILITY_CODE:
            self._check_family_responsibility(employee, start_date, family_reason)
            if working_days > leave_type.max_days_per_cycle:
                raise EligibilityError(
                    f"Family responsibility leave is capped at "
                    f"{leave_type.max_days_per_cycle} day(s) per year."
                )

        balance = await self.repository.find_balance_covering(
            employee.id, leave_type.id, start_date
        )
        previous = await carry_over_balance(
            self.repository, employee.id, leave_type, start_date
        )
        if balance is None and previous is None:
            raise EligibilityError(
                f"No {leave_type.name} balance covers {start_date.isoformat()}.",
                field="leave_type_id",
            )
        remaining = Decimal(str(balance.remaining_days)) if balance else ZERO
        carried = Decimal(str(previous.remaining_days)) if previous else ZERO
        available = remaining + carried
        result.balance_year = balance.year if balance else start_date.year
        result.remaining_days = available
        # The previous cycle's days go first
        result.carry_over_days = min(carried, working_days)
        if working_days > available:
            raise EligibilityError(
                f"Insufficient {leave_type.name} balance: {available} day(s) "
                f"remaining, {working_days} requested."
            )

        result.valid = True
        result.message = (
            "Medical certificate required for sick leave of 2 or more days."
            if result.requires_medical_certificate
            else "Leave request is valid."
        )

    @staticmethod
    def _check_shape(
        start_date: date,
        end_date: date,
        is_half_day: bool,
        half_day_period: Optional[HalfDayPeriod],
    ) -> None:
        errors: dict[str, list[str]] = {}
        if end_date < start_date:
            errors["end_date"] = ["End date must be on or after the start date."]
        if is_half_day:
            if start_date != end_date:
                errors.setdefault("is_half_day", []).append(
                    "A half-day request must start and end on the same date."
                )
            if half_day_period is None:
                errors["half_day_period"] = [
                    "A half-day request must specify morning or afternoon."
                ]
        if errors:
            raise ValidationException(errors)

    async def _check_overlap(
        self,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> None:
        existing = await self.repository.list_requests(
            employee_id, statuses=ACTIVE_LEAVE_STATUSES
        )
        for request in existing:
            if request.id == exclude_request_id:
                continue
            if ranges_overlap(start_date, end_date, request.start_date, request.end_date):
                raise EligibilityError(
                    f"Dates overlap an existing {request.status.value} request "
                    f"({request.start_date.isoformat()} to {request.end_date.isoformat()}).",
                    field="start_date",
                )

    @staticmethod
    def _check_family_responsibility(
        employee: Employee,
        start_date: date,
        family_reason: Union[FamilyResponsibilityReason, str, None],
    ) -> None:
        months = full_months_between(employee.start_work_date, start_date)
        if months < FAMILY_RESPONSIBILITY_MIN_SERVICE_MONTHS:
            raise EligibilityError(
                f"Family responsibility leave requires at least "
                f"{FAMILY_RESPONSIBILITY_MIN_SERVICE_MONTHS} months of service."
            )
        if employee.work_days_per_week < FAMILY_RESPONSIBILITY_MIN_WORK_DAYS:
            raise EligibilityError(
                f"Family responsibility leave requires working at least "
                f"{FAMILY_RESPONSIBILITY_MIN_WORK_DAYS} days per week."
            )
        if coerce_family_reason(family_reason) is None:
            raise EligibilityError(
                "A qualifying reason is required for family responsibility leave.",
                field="family_reason",
            )
