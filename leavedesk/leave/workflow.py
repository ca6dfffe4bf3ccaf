"""Leave request lifecycle: pending → approved | rejected | cancelled, approved → cancelled."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from leavedesk.common.audit import ENTITY_LEAVE_REQUEST
from leavedesk.common.constants import (
    LEAVE_TRANSITIONS,
    Capability,
    LeaveAction,
    LeaveStatus,
)
from leavedesk.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    StateError,
    ValidationException,
)
from leavedesk.employees.models import Employee
from leavedesk.leave.cycles import carry_over_balance
from leavedesk.leave.ledger import BalanceLedger
from leavedesk.leave.models import LeaveRequest
from leavedesk.leave.repository import LeaveRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def next_status(current: LeaveStatus, action: LeaveAction) -> LeaveStatus:
    try:
        return LEAVE_TRANSITIONS[(current, action)]
    except KeyError:
        raise StateError(current.value, action.value) from None


def _authorize(request: LeaveRequest, actor: Employee, action: LeaveAction) -> None:
    is_requester = actor.id == request.employee_id
    if action in (LeaveAction.approve, LeaveAction.reject):
        if not actor.role.can_approve:
            raise ForbiddenException("Only managers and admins can review leave requests.")
        if is_requester:
            raise ForbiddenException("You cannot review your own leave request.")
    elif not (is_requester or actor.role.can(Capability.cancel_any_leave)):
        raise ForbiddenException("Only the requester or an admin can cancel this request.")


class ApprovalWorkflow:
    def __init__(self, repository: LeaveRepository, ledger: BalanceLedger) -> None:
        self.repository = repository
        self.ledger = ledger

    async def transition(
        self,
        request_id: uuid.UUID,
        actor: Employee,
        action: LeaveAction,
        *,
        remarks: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> LeaveRequest:
        """
        Apply ``action`` to a leave request on behalf of ``actor``.

        Approval draws the days from the balance, using any days still
        carried over from the previous annual cycle first. Cancelling an
        approved request puts them back where they came from before the status
        changes, inside the same transaction, so a failed reversal leaves the
        request approved.

        Raises:
            NotFoundException: no such request.
            ForbiddenException: actor may not perform the action.
            StateError: the move is not in the transition table.
            ValidationException: cancellation without a reason.
        """
        request = await self.repository.get_request(request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)

        _authorize(request, actor, action)
        current = request.status
        target = next_status(current, action)

        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {"status": target}
        if action == LeaveAction.cancel:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationException(
                    {"reason": ["A cancellation reason is required."]}
                )
            values.update(cancellation_reason=reason, cancelled_by=actor.id, cancelled_at=now)
        else:
            values.update(approved_by=actor.id, approved_at=now, reviewer_remarks=remarks)

        async with self.repository.transaction():
            if action == LeaveAction.approve:
                carry_year, carry_days = await self._draw(request, actor)
                values.update(carry_over_year=carry_year, carry_over_days=carry_days)
            elif action == LeaveAction.cancel and current == LeaveStatus.approved:
                await self._restore(request, actor)

            if not await self.repository.update_request_if_status(
                request.id, current, **values
            ):
                latest = await self.repository.get_request(request.id)
                raise StateError(latest.status.value if latest else current.value, action.value)

            await self.repository.record_audit(
                action=action.value,
                entity_type=ENTITY_LEAVE_REQUEST,
                entity_id=request.id,
                actor_id=actor.id,
                old_values={"status": current.value},
                new_values={"status": target.value},
            )

        logger.info(
            "Leave request %s %s → %s by %s", request.id, current.value, target.value, actor.id
        )
        return await self.repository.get_request(request.id)

    async def _draw(
        self, request: LeaveRequest, actor: Employee,
    ) -> tuple[Optional[int], Decimal]:
        """Take the request's days, previous-cycle carry-over first."""
        total = Decimal(str(request.total_days))
        leave_type = await self.repository.get_leave_type(request.leave_type_id)
        previous = None
        if leave_type is not None:
            previous = await carry_over_balance(
                self.repository, request.employee_id, leave_type, request.start_date
            )
        carried = min(Decimal(str(previous.remaining_days)), total) if previous else ZERO

        if carried:
            await self.ledger.apply_usage(
                request.employee_id, request.leave_type_id, previous.year, carried,
                actor_id=actor.id, carried_over=True,
            )
        if total > carried:
            await self.ledger.apply_usage(
                request.employee_id, request.leave_type_id, request.balance_year,
                total - carried, actor_id=actor.id,
            )
        return (previous.year if carried else None), carried

    async def _restore(self, request: LeaveRequest, actor: Employee) -> None:
        total = Decimal(str(request.total_days))
        carried = Decimal(str(request.carry_over_days or 0))
        if carried and request.carry_over_year is not None:
            await self.ledger.reverse_usage(
                request.employee_id, request.leave_type_id, request.carry_over_year,
                carried, actor_id=actor.id, carried_over=True,
            )
        if total > carried:
            await self.ledger.reverse_usage(
                request.employee_id, request.leave_type_id, request.balance_year,
                total - carried, actor_id=actor.id,
            )
