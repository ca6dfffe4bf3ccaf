"""Tests for request eligibility: shape, overlap, balances, sick and family leave."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from leavedesk.common.constants import (
    FamilyResponsibilityReason,
    HalfDayPeriod,
    LeaveStatus,
)
from leavedesk.common.exceptions import (
    EligibilityError,
    NotFoundException,
    ValidationException,
)
from leavedesk.leave.schemas import LeaveRequestCreate
from leavedesk.leave.validator import ranges_overlap

from tests.factories import make_balance, make_employee, make_holiday, make_request


@pytest.fixture
def balances(repo, employee, leave_types):
    annual = make_balance(employee, leave_types.annual, 2025, total=21)
    sick = make_balance(
        employee, leave_types.sick, 2024, total=30,
        cycle_start_date=date(2024, 1, 1), cycle_end_date=date(2026, 12, 31),
    )
    family = make_balance(employee, leave_types.family, 2025, total=3)
    repo.seed(annual, sick, family)
    return annual, sick, family


def _body(leave_type, start, end, **kw) -> LeaveRequestCreate:
    return LeaveRequestCreate(leave_type_id=leave_type.id, start_date=start, end_date=end, **kw)


class TestRangesOverlap:
    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ((date(2025, 6, 2), date(2025, 6, 6)), (date(2025, 6, 6), date(2025, 6, 9)), True),
            ((date(2025, 6, 2), date(2025, 6, 6)), (date(2025, 6, 7), date(2025, 6, 9)), False),
            ((date(2025, 6, 2), date(2025, 6, 30)), (date(2025, 6, 10), date(2025, 6, 11)), True),
            ((date(2025, 6, 10), date(2025, 6, 10)), (date(2025, 6, 10), date(2025, 6, 10)), True),
        ],
    )
    def test_inclusive_overlap(self, a, b, expected):
        assert ranges_overlap(*a, *b) is expected
        assert ranges_overlap(*b, *a) is expected


class TestCreateLeaveRequest:
    async def test_week_of_annual_leave_costs_five_days(
        self, repo, service, employee, leave_types, balances,
    ):
        request = await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )

        assert request.total_days == Decimal("5")
        assert request.status == LeaveStatus.pending
        assert request.balance_year == 2025
        assert repo.stored_balance(balances[0].id).used_days == 0
        assert repo.audit[-1]["action"] == "create"

    async def test_public_holiday_is_not_charged(
        self, repo, service, employee, leave_types, balances,
    ):
        repo.seed(make_holiday(date(2025, 6, 16), "Youth Day"))
        request = await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 16), date(2025, 6, 20))
        )
        assert request.total_days == Decimal("4")

    async def test_end_before_start_is_a_validation_error(
        self, repo, service, employee, leave_types, balances,
    ):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 6), date(2025, 6, 2))
            )
        assert "end_date" in exc_info.value.errors
        assert repo.requests == {}

    async def test_unknown_leave_type_is_not_found(self, service, employee, leave_types):
        body = _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        body.leave_type_id = employee.id
        with pytest.raises(NotFoundException):
            await service.create_leave_request(employee.id, body)

    async def test_inactive_leave_type_is_refused(self, repo, service, employee, leave_types, balances):
        repo.leave_types[leave_types.annual.id].is_active = False
        with pytest.raises(EligibilityError, match="not available"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
            )

    async def test_weekend_only_request_is_refused(
        self, service, employee, leave_types, balances,
    ):
        with pytest.raises(EligibilityError, match="no working days"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 7), date(2025, 6, 8))
            )

    async def test_request_after_employment_ends_is_refused(self, repo, service, leave_types):
        leaver = make_employee(end_work_date=date(2025, 5, 31))
        repo.seed(leaver, make_balance(leaver, leave_types.annual, 2025, total=21))
        with pytest.raises(EligibilityError, match="employment period"):
            await service.create_leave_request(
                leaver.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
            )


class TestHalfDay:
    async def test_half_day_costs_half(self, service, employee, leave_types, balances):
        request = await service.create_leave_request(
            employee.id,
            _body(
                leave_types.annual, date(2025, 6, 4), date(2025, 6, 4),
                is_half_day=True, half_day_period=HalfDayPeriod.morning,
            ),
        )
        assert request.total_days == Decimal("0.5")
        assert request.half_day_period == HalfDayPeriod.morning

    async def test_half_day_needs_a_period(self, service, employee, leave_types, balances):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_leave_request(
                employee.id,
                _body(leave_types.annual, date(2025, 6, 4), date(2025, 6, 4), is_half_day=True),
            )
        assert "half_day_period" in exc_info.value.errors

    async def test_half_day_must_be_a_single_date(self, service, employee, leave_types, balances):
        with pytest.raises(ValidationException) as exc_info:
            await service.create_leave_request(
                employee.id,
                _body(
                    leave_types.annual, date(2025, 6, 4), date(2025, 6, 5),
                    is_half_day=True, half_day_period=HalfDayPeriod.afternoon,
                ),
            )
        assert "is_half_day" in exc_info.value.errors


class TestOverlapAndBalance:
    async def test_overlap_with_pending_request_is_refused(
        self, repo, service, employee, leave_types, balances,
    ):
        repo.seed(make_request(employee, leave_types.annual, date(2025, 6, 5), date(2025, 6, 10),
                               total_days=4))
        with pytest.raises(EligibilityError, match="overlap"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
            )

    async def test_overlap_with_approved_request_of_another_type_is_refused(
        self, repo, service, employee, leave_types, balances,
    ):
        repo.seed(make_request(employee, leave_types.sick, date(2025, 6, 6), date(2025, 6, 6),
                               total_days=1, status=LeaveStatus.approved, balance_year=2024))
        with pytest.raises(EligibilityError, match="overlap"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
            )

    @pytest.mark.parametrize("status", [LeaveStatus.rejected, LeaveStatus.cancelled])
    async def test_closed_requests_do_not_block_dates(
        self, repo, service, employee, leave_types, balances, status,
    ):
        repo.seed(make_request(employee, leave_types.annual, date(2025, 6, 2), date(2025, 6, 6),
                               total_days=5, status=status))
        request = await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )
        assert request.status == LeaveStatus.pending

    async def test_other_employees_requests_do_not_overlap(
        self, repo, service, employee, leave_types, balances,
    ):
        colleague = make_employee()
        repo.seed(colleague, make_request(colleague, leave_types.annual, date(2025, 6, 2),
                                          date(2025, 6, 6), total_days=5))
        request = await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )
        assert request.total_days == 5

    async def test_request_beyond_remaining_is_refused(self, repo, service, employee, leave_types):
        repo.seed(make_balance(employee, leave_types.annual, 2025, total=21, used=18))
        with pytest.raises(EligibilityError, match="Insufficient"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
            )

    async def test_missing_cycle_balance_is_refused(self, service, employee, leave_types, balances):
        with pytest.raises(EligibilityError, match="No Annual Leave balance"):
            await service.create_leave_request(
                employee.id, _body(leave_types.annual, date(2026, 2, 2), date(2026, 2, 3))
            )

    async def test_pending_requests_are_not_deducted_from_available(
        self, repo, service, employee, leave_types,
    ):
        repo.seed(make_balance(employee, leave_types.annual, 2025, total=6))
        await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )
        second = await service.create_leave_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 9), date(2025, 6, 13))
        )
        assert second.total_days == 5


class TestSickLeave:
    async def test_two_days_require_a_medical_certificate(
        self, service, employee, leave_types, balances,
    ):
        request = await service.create_leave_request(
            employee.id, _body(leave_types.sick, date(2025, 6, 2), date(2025, 6, 3))
        )
        assert request.requires_medical_certificate is True
        assert request.balance_year == 2024

    async def test_one_day_needs_no_certificate(self, service, employee, leave_types, balances):
        request = await service.create_leave_request(
            employee.id, _body(leave_types.sick, date(2025, 6, 2), date(2025, 6, 2))
        )
        assert request.requires_medical_certificate is False

    async def test_weekend_between_days_still_counts_working_days(
        self, service, employee, leave_types, balances,
    ):
        # Friday + Monday: two working days
        result = await service.validate_request(
            employee.id, _body(leave_types.sick, date(2025, 6, 6), date(2025, 6, 9))
        )
        assert result.valid
        assert result.working_days == 2
        assert result.requires_medical_certificate

    async def test_sick_cycle_balance_must_cover_request(self, repo, service, employee, leave_types):
        repo.seed(make_balance(
            employee, leave_types.sick, 2024, total=30, used=29,
            cycle_start_date=date(2024, 1, 1), cycle_end_date=date(2026, 12, 31),
        ))
        with pytest.raises(EligibilityError, match="Insufficient"):
            await service.create_leave_request(
                employee.id, _body(leave_types.sick, date(2025, 6, 2), date(2025, 6, 3))
            )


class TestFamilyResponsibility:
    async def test_missing_reason_is_refused_and_nothing_is_stored(
        self, repo, service, employee, leave_types, balances,
    ):
        with pytest.raises(EligibilityError, match="qualifying reason") as exc_info:
            await service.create_leave_request(
                employee.id, _body(leave_types.family, date(2025, 6, 2), date(2025, 6, 2))
            )
        assert "family_reason" in exc_info.value.errors
        assert repo.requests == {}

    async def test_qualifying_reason_is_accepted(self, service, employee, leave_types, balances):
        request = await service.create_leave_request(
            employee.id,
            _body(
                leave_types.family, date(2025, 6, 2), date(2025, 6, 3),
                family_reason=FamilyResponsibilityReason.child_illness,
            ),
        )
        assert request.family_reason == FamilyResponsibilityReason.child_illness
        assert request.total_days == 2

    async def test_unknown_reason_string_is_refused(self, service, employee, leave_types, balances):
        family = await service.repository.get_leave_type(leave_types.family.id)
        with pytest.raises(EligibilityError, match="not a qualifying reason"):
            await service.validator.ensure_valid(
                employee, family, date(2025, 6, 2), date(2025, 6, 2),
                family_reason="holiday_trip",
            )

    async def test_short_service_is_refused(self, repo, service, leave_types):
        newcomer = make_employee(start_work_date=date(2025, 3, 1))
        repo.seed(newcomer, make_balance(newcomer, leave_types.family, 2025, total=3))
        with pytest.raises(EligibilityError, match="4 months"):
            await service.create_leave_request(
                newcomer.id,
                _body(
                    leave_types.family, date(2025, 6, 2), date(2025, 6, 2),
                    family_reason=FamilyResponsibilityReason.death_parent,
                ),
            )

    async def test_part_time_worker_is_refused(self, repo, service, leave_types):
        # Works Monday, Tuesday and Thursday
        part_timer = make_employee(days_off=[2, 4, 5, 6])
        repo.seed(part_timer, make_balance(part_timer, leave_types.family, 2025, total=3))
        with pytest.raises(EligibilityError, match="days per week"):
            await service.create_leave_request(
                part_timer.id,
                _body(
                    leave_types.family, date(2025, 6, 2), date(2025, 6, 2),
                    family_reason=FamilyResponsibilityReason.child_birth,
                ),
            )

    async def test_annual_cap_is_enforced(self, service, employee, leave_types, balances):
        with pytest.raises(EligibilityError, match="capped"):
            await service.create_leave_request(
                employee.id,
                _body(
                    leave_types.family, date(2025, 6, 2), date(2025, 6, 5),
                    family_reason=FamilyResponsibilityReason.death_spouse,
                ),
            )


class TestWorkSchedule:
    @pytest.fixture
    def four_day(self, repo, leave_types):
        # Monday to Thursday
        person = make_employee(days_off=[4, 5, 6])
        repo.seed(person, make_balance(person, leave_types.annual, 2025, total=21))
        return person

    async def test_only_scheduled_days_are_charged(self, service, four_day, leave_types):
        request = await service.create_leave_request(
            four_day.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )
        assert request.total_days == Decimal("4")

    async def test_day_off_only_request_is_refused(self, service, four_day, leave_types):
        with pytest.raises(EligibilityError, match="no working days"):
            await service.create_leave_request(
                four_day.id, _body(leave_types.annual, date(2025, 6, 6), date(2025, 6, 8))
            )

    async def test_four_day_week_qualifies_for_family_leave(self, repo, service, four_day, leave_types):
        repo.seed(make_balance(four_day, leave_types.family, 2025, total=3))
        request = await service.create_leave_request(
            four_day.id,
            _body(
                leave_types.family, date(2025, 6, 2), date(2025, 6, 2),
                family_reason=FamilyResponsibilityReason.child_illness,
            ),
        )
        assert request.total_days == Decimal("1")


class TestAdvisoryValidation:
    async def test_invalid_request_is_reported_not_raised(
        self, service, employee, leave_types, balances,
    ):
        result = await service.validate_request(
            employee.id, _body(leave_types.family, date(2025, 6, 2), date(2025, 6, 2))
        )
        assert result.valid is False
        assert "qualifying reason" in result.message
        assert result.working_days == 1

    async def test_shape_errors_are_reported(self, service, employee, leave_types, balances):
        result = await service.validate_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 6), date(2025, 6, 2))
        )
        assert result.valid is False
        assert "End date" in result.message

    async def test_valid_request_reports_remaining(self, service, employee, leave_types, balances):
        result = await service.validate_request(
            employee.id, _body(leave_types.annual, date(2025, 6, 2), date(2025, 6, 6))
        )
        assert result.valid is True
        assert result.working_days == 5
        assert result.balance_year == 2025
        assert result.remaining_days == 21
