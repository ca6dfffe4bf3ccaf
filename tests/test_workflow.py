"""Tests for the approval workflow: transitions, permissions and balance effects."""

from __future__ import annotations

import asyncio
import itertools
from datetime import date
from decimal import Decimal

import pytest

from leavedesk.common.constants import LEAVE_TRANSITIONS, LeaveAction, LeaveStatus, UserRole
from leavedesk.common.exceptions import (
    ConcurrencyConflict,
    EligibilityError,
    ForbiddenException,
    PersistenceError,
    StateError,
    ValidationException,
)
from leavedesk.leave.workflow import next_status

from tests.factories import make_balance, make_employee, make_request

approve, reject, cancel = LeaveAction.approve, LeaveAction.reject, LeaveAction.cancel


@pytest.fixture
def balance(repo, employee, leave_types):
    row = make_balance(employee, leave_types.annual, 2025, total=21)
    repo.seed(row)
    return row


@pytest.fixture
def pending(repo, employee, leave_types, balance):
    request = make_request(employee, leave_types.annual, date(2025, 6, 2), date(2025, 6, 6),
                           total_days=5)
    repo.seed(request)
    return request


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current, action",
        list(itertools.product(LeaveStatus, LeaveAction)),
    )
    def test_only_listed_moves_are_legal(self, current, action):
        expected = LEAVE_TRANSITIONS.get((current, action))
        if expected is None:
            with pytest.raises(StateError):
                next_status(current, action)
        else:
            assert next_status(current, action) == expected

    @pytest.mark.parametrize("status", [LeaveStatus.rejected, LeaveStatus.cancelled])
    def test_closed_requests_are_terminal(self, status):
        for action in LeaveAction:
            with pytest.raises(StateError):
                next_status(status, action)


class TestApproveAndReject:
    async def test_approval_draws_the_balance(self, repo, service, manager, pending, balance):
        approved = await service.transition_leave_request(
            pending.id, manager, approve, remarks="Enjoy"
        )

        assert approved.status == LeaveStatus.approved
        assert approved.approved_by == manager.id
        assert approved.reviewer_remarks == "Enjoy"
        stored = repo.stored_balance(balance.id)
        assert stored.used_days == Decimal("5")
        assert stored.remaining_days == Decimal("16")
        assert [a["action"] for a in repo.audit] == ["apply_usage", "approve"]

    async def test_rejection_leaves_balance_alone(self, repo, service, manager, pending, balance):
        rejected = await service.transition_leave_request(pending.id, manager, reject)

        assert rejected.status == LeaveStatus.rejected
        assert repo.stored_balance(balance.id).version == balance.version

    async def test_rejected_request_cannot_be_approved(self, service, manager, pending):
        await service.transition_leave_request(pending.id, manager, reject)
        with pytest.raises(StateError):
            await service.transition_leave_request(pending.id, manager, approve)

    async def test_employee_cannot_approve(self, repo, service, pending):
        colleague = make_employee()
        repo.seed(colleague)
        with pytest.raises(ForbiddenException):
            await service.transition_leave_request(pending.id, colleague, approve)

    async def test_manager_cannot_review_own_request(self, repo, service, manager, leave_types):
        repo.seed(make_balance(manager, leave_types.annual, 2025, total=21))
        own = make_request(manager, leave_types.annual, date(2025, 6, 2), date(2025, 6, 2),
                           total_days=1)
        repo.seed(own)
        with pytest.raises(ForbiddenException, match="own"):
            await service.transition_leave_request(own.id, manager, approve)

    async def test_approval_without_funds_keeps_request_pending(
        self, repo, service, manager, employee, leave_types,
    ):
        repo.seed(make_balance(employee, leave_types.annual, 2025, total=21, used=19))
        request = make_request(employee, leave_types.annual, date(2025, 6, 2), date(2025, 6, 4),
                               total_days=3)
        repo.seed(request)

        with pytest.raises(EligibilityError):
            await service.transition_leave_request(request.id, manager, approve)
        assert repo.requests[request.id].status == LeaveStatus.pending
        assert repo.audit == []


class TestConcurrentApprovals:
    async def test_two_approvals_on_last_day_let_one_through(
        self, repo, service, employee, manager, admin, leave_types,
    ):
        row = make_balance(employee, leave_types.annual, 2025, total=1)
        first = make_request(employee, leave_types.annual, date(2025, 6, 2), date(2025, 6, 2),
                             total_days=1)
        second = make_request(employee, leave_types.annual, date(2025, 6, 9), date(2025, 6, 9),
                              total_days=1)
        repo.seed(row, first, second)

        outcomes = await asyncio.gather(
            service.transition_leave_request(first.id, manager, approve),
            service.transition_leave_request(second.id, admin, approve),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], (ConcurrencyConflict, EligibilityError))
        statuses = sorted(repo.requests[r.id].status.value for r in (first, second))
        assert statuses == ["approved", "pending"]
        stored = repo.stored_balance(row.id)
        assert stored.used_days == Decimal("1")
        assert stored.remaining_days == Decimal("0")

    async def test_same_request_approved_twice_draws_once(
        self, repo, service, manager, admin, pending, balance,
    ):
        outcomes = await asyncio.gather(
            service.transition_leave_request(pending.id, manager, approve),
            service.transition_leave_request(pending.id, admin, approve),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], (StateError, ConcurrencyConflict))
        assert repo.stored_balance(balance.id).used_days == Decimal("5")


class TestCancel:
    @pytest.fixture
    async def approved(self, service, manager, pending):
        return await service.transition_leave_request(pending.id, manager, approve)

    async def test_cancelling_approved_leave_restores_days(
        self, repo, service, employee, approved, balance,
    ):
        assert repo.stored_balance(balance.id).remaining_days == Decimal("16")

        cancelled = await service.transition_leave_request(
            approved.id, employee, cancel, reason="Trip called off"
        )

        assert cancelled.status == LeaveStatus.cancelled
        assert cancelled.cancellation_reason == "Trip called off"
        assert cancelled.cancelled_by == employee.id
        stored = repo.stored_balance(balance.id)
        assert stored.remaining_days == Decimal("21")
        assert stored.used_days == Decimal("0")

    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_reason_is_required_before_anything_changes(
        self, repo, service, employee, approved, balance, reason,
    ):
        audit_before = len(repo.audit)
        with pytest.raises(ValidationException) as exc_info:
            await service.transition_leave_request(approved.id, employee, cancel, reason=reason)

        assert "reason" in exc_info.value.errors
        assert repo.requests[approved.id].status == LeaveStatus.approved
        assert repo.stored_balance(balance.id).remaining_days == Decimal("16")
        assert len(repo.audit) == audit_before

    async def test_failed_reversal_keeps_request_approved(
        self, repo, service, employee, approved, balance, monkeypatch,
    ):
        async def unavailable(*args, **kwargs):
            raise PersistenceError("Simulated database timeout.")

        monkeypatch.setattr(service.ledger, "reverse_usage", unavailable)
        with pytest.raises(PersistenceError):
            await service.transition_leave_request(
                approved.id, employee, cancel, reason="Changed plans"
            )

        assert repo.requests[approved.id].status == LeaveStatus.approved
        assert repo.stored_balance(balance.id).used_days == Decimal("5")

    async def test_cancelling_pending_request_touches_no_balance(
        self, repo, service, employee, pending, balance,
    ):
        cancelled = await service.transition_leave_request(
            pending.id, employee, cancel, reason="Not needed"
        )
        assert cancelled.status == LeaveStatus.cancelled
        assert repo.stored_balance(balance.id).version == balance.version

    async def test_admin_may_cancel_for_anyone(self, service, admin, approved):
        cancelled = await service.transition_leave_request(
            approved.id, admin, cancel, reason="Business need"
        )
        assert cancelled.cancelled_by == admin.id

    async def test_manager_may_not_cancel_for_others(self, service, manager, approved):
        with pytest.raises(ForbiddenException):
            await service.transition_leave_request(
                approved.id, manager, cancel, reason="Business need"
            )

    async def test_cancelled_request_cannot_be_cancelled_again(
        self, service, employee, approved,
    ):
        await service.transition_leave_request(approved.id, employee, cancel, reason="x")
        with pytest.raises(StateError):
            await service.transition_leave_request(approved.id, employee, cancel, reason="y")


def test_managers_and_admins_review_leave():
    assert {r for r in UserRole if r.can_approve} == {UserRole.manager, UserRole.admin}
