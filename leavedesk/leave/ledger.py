"""Balance ledger: the only code that writes leave balance figures.

Every operation follows the same shape: read a snapshot of the balance row,
check the rule against it, then issue one conditional update keyed on the
snapshot's ``version``. ``total_days``, ``used_days`` and ``remaining_days``
always move together so ``remaining = total - used`` holds after each write.
A lost race raises :class:`ConcurrencyConflict`, which is retried once.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from leavedesk.common.audit import ENTITY_LEAVE_BALANCE
from leavedesk.common.exceptions import (
    ConcurrencyConflict,
    EligibilityError,
    ValidationException,
)
from leavedesk.common.retry import retry_on_conflict
from leavedesk.leave.models import LeaveBalance
from leavedesk.leave.repository import LeaveRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _days(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _figures(balance: LeaveBalance) -> dict[str, str]:
    return {
        "total_days": str(balance.total_days),
        "used_days": str(balance.used_days),
        "remaining_days": str(balance.remaining_days),
        "version": str(balance.version),
    }


class BalanceLedger:
    def __init__(self, repository: LeaveRepository) -> None:
        self.repository = repository

    # ── Internals ───────────────────────────────────────────────────

    async def _load(
        self, employee_id: uuid.UUID, leave_type_id: uuid.UUID, year: int,
    ) -> LeaveBalance:
        balance = await self.repository.get_balance(employee_id, leave_type_id, year)
        if balance is None:
            raise EligibilityError(
                f"No leave balance exists for the {year} cycle of this leave type.",
                field="leave_type_id",
            )
        return balance

    async def _write(
        self,
        balance: LeaveBalance,
        expected_version: int,
        action: str,
        actor_id: Optional[uuid.UUID],
        old_values: dict[str, str],
        **values: Any,
    ) -> LeaveBalance:
        written = await self.repository.update_balance_if_unchanged(
            balance.id, expected_version, **values
        )
        if not written:
            logger.info(
                "Balance %s changed since version %s; %s lost the race",
                balance.id, expected_version, action,
            )
            raise ConcurrencyConflict("LeaveBalance", balance.id)

        updated = await self.repository.get_balance_by_id(balance.id)
        await self.repository.record_audit(
            action=action,
            entity_type=ENTITY_LEAVE_BALANCE,
            entity_id=balance.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=_figures(updated),
        )
        return updated

    @staticmethod
    def _carry_over(balance: LeaveBalance, change: Decimal) -> dict[str, Decimal]:
        if not change:
            return {}
        return {"carried_over_days": max(_days(balance.carried_over_days) + change, ZERO)}

    @staticmethod
    def _positive(days: Any) -> Decimal:
        amount = _days(days)
        if amount <= ZERO:
            raise ValidationException({"days": ["Day count must be greater than zero."]})
        return amount

    # ── Operations ──────────────────────────────────────────────────

    @retry_on_conflict
    async def apply_usage(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Any,
        *,
        actor_id: Optional[uuid.UUID] = None,
        carried_over: bool = False,
    ) -> LeaveBalance:
        """Move ``days`` from remaining to used. Fails rather than go negative.

        ``carried_over`` marks days taken after the cycle ended, inside its
        carry-over window; they are also counted in ``carried_over_days``.
        """
        amount = self._positive(days)
        balance = await self._load(employee_id, leave_type_id, year)
        version, before = balance.version, _figures(balance)
        used, remaining = _days(balance.used_days), _days(balance.remaining_days)

        if remaining < amount:
            raise EligibilityError(
                f"Insufficient leave balance: {remaining} day(s) remaining, "
                f"{amount} requested."
            )
        return await self._write(
            balance, version, "apply_usage", actor_id, before,
            used_days=used + amount,
            remaining_days=remaining - amount,
            **self._carry_over(balance, amount if carried_over else ZERO),
        )

    @retry_on_conflict
    async def reverse_usage(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Any,
        *,
        actor_id: Optional[uuid.UUID] = None,
        carried_over: bool = False,
    ) -> LeaveBalance:
        """Inverse of :meth:`apply_usage`, used when approved leave is cancelled."""
        amount = self._positive(days)
        balance = await self._load(employee_id, leave_type_id, year)
        version, before = balance.version, _figures(balance)
        used, remaining = _days(balance.used_days), _days(balance.remaining_days)

        if used < amount:
            raise EligibilityError(
                f"Cannot restore {amount} day(s): only {used} day(s) recorded as used."
            )
        return await self._write(
            balance, version, "reverse_usage", actor_id, before,
            used_days=used - amount,
            remaining_days=remaining + amount,
            **self._carry_over(balance, -amount if carried_over else ZERO),
        )

    @retry_on_conflict
    async def apply_forfeiture(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        days: Any,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Remove ``days`` from total and remaining; used is untouched."""
        amount = self._positive(days)
        balance = await self._load(employee_id, leave_type_id, year)
        version, before = balance.version, _figures(balance)
        total, remaining = _days(balance.total_days), _days(balance.remaining_days)

        if balance.forfeiture_processed_at is not None:
            raise EligibilityError(
                f"Forfeiture for the {year} cycle has already been processed."
            )
        if amount > remaining:
            raise EligibilityError(
                f"Cannot forfeit {amount} day(s): only {remaining} day(s) remaining."
            )
        return await self._write(
            balance, version, "apply_forfeiture", actor_id, before,
            total_days=total - amount,
            remaining_days=remaining - amount,
            forfeited_days=_days(balance.forfeited_days) + amount,
            forfeiture_processed_at=datetime.now(timezone.utc),
        )

    @retry_on_conflict
    async def acknowledge_forfeiture(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        balance = await self._load(employee_id, leave_type_id, year)
        if balance.forfeiture_acknowledged_at is not None:
            return balance
        return await self._write(
            balance, balance.version, "acknowledge_forfeiture", actor_id, _figures(balance),
            forfeiture_acknowledged_at=datetime.now(timezone.utc),
        )

    @retry_on_conflict
    async def apply_accrual(
        self,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        accrued_months: int,
        accrued_days: Any,
    ) -> LeaveBalance:
        """Raise the cycle's accrual to ``accrued_days`` for ``accrued_months`` months.

        Targets are absolute, so a retried or repeated call credits only the
        difference and a month already credited is a no-op.
        """
        balance = await self._load(employee_id, leave_type_id, year)
        if accrued_months <= balance.accrued_months:
            return balance

        version, before = balance.version, _figures(balance)
        credit = max(_days(accrued_days) - _days(balance.accrued_days), ZERO)
        return await self._write(
            balance, version, "apply_accrual", None, before,
            total_days=_days(balance.total_days) + credit,
            remaining_days=_days(balance.remaining_days) + credit,
            accrued_days=_days(balance.accrued_days) + credit,
            accrued_months=accrued_months,
        )
