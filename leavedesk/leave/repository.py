"""Persistence boundary for the leave engine.

The engine only talks to :class:`LeaveRepository`. Production wires in
:class:`SqlAlchemyLeaveRepository` around a request-scoped ``AsyncSession``;
tests substitute an in-memory implementation of the same interface.

Balance rows and request statuses are only ever changed through the
compare-and-set methods, which succeed only if nobody else wrote the row since
it was read.
"""

from __future__ import annotations

import abc
import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.calendar.models import PublicHoliday
from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import LeaveStatus
from leavedesk.common.exceptions import PersistenceError
from leavedesk.employees.models import Employee
from leavedesk.leave.models import LeaveBalance, LeaveRequest, LeaveType


class LeaveRepository(abc.ABC):
    """Queries and mutations the leave engine needs from the backing store."""

    # ── Transactions ────────────────────────────────────────────────

    @abc.abstractmethod
    def transaction(self) -> Any:
        """Async context manager; everything inside commits or rolls back together."""

    # ── Employees ───────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_employee(self, employee_id: uuid.UUID) -> Optional[Employee]: ...

    @abc.abstractmethod
    async def list_active_employees(self, as_of: date) -> list[Employee]: ...

    @abc.abstractmethod
    async def save_employee(self, employee: Employee) -> None: ...

    # ── Leave types ─────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_leave_type(self, leave_type_id: uuid.UUID) -> Optional[LeaveType]: ...

    @abc.abstractmethod
    async def get_leave_type_by_code(self, code: str) -> Optional[LeaveType]: ...

    @abc.abstractmethod
    async def list_leave_types(self, *, active_only: bool = False) -> list[LeaveType]: ...

    # ── Public holidays ─────────────────────────────────────────────

    @abc.abstractmethod
    async def list_public_holidays(self, year: int) -> list[PublicHoliday]: ...

    @abc.abstractmethod
    async def add_public_holidays(self, holidays: Iterable[PublicHoliday]) -> int:
        """Insert holidays not already present (by date + name); return how many."""

    # ── Balances ────────────────────────────────────────────────────

    @abc.abstractmethod
    async def get_balance_by_id(self, balance_id: uuid.UUID) -> Optional[LeaveBalance]: ...

    @abc.abstractmethod
    async def get_balance(
        self, employee_id: uuid.UUID, leave_type_id: uuid.UUID, year: int,
    ) -> Optional[LeaveBalance]: ...

    @abc.abstractmethod
    async def find_balance_covering(
        self, employee_id: uuid.UUID, leave_type_id: uuid.UUID, on_date: date,
    ) -> Optional[LeaveBalance]:
        """Balance whose cycle contains ``on_date`` (or whose year matches)."""

    @abc.abstractmethod
    async def list_balances(
        self,
        employee_id: uuid.UUID,
        *,
        year: Optional[int] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]: ...

    @abc.abstractmethod
    async def add_balance(self, balance: LeaveBalance) -> LeaveBalance: ...

    @abc.abstractmethod
    async def update_balance_if_unchanged(
        self, balance_id: uuid.UUID, expected_version: int, **values: Any,
    ) -> bool:
        """Atomically write ``values`` and bump ``version`` iff it still equals
        ``expected_version``. Returns False when another writer got there first."""

    # ── Leave requests ──────────────────────────────────────────────

    @abc.abstractmethod
    async def get_request(self, request_id: uuid.UUID) -> Optional[LeaveRequest]: ...

    @abc.abstractmethod
    async def add_request(self, request: LeaveRequest) -> LeaveRequest: ...

    @abc.abstractmethod
    async def list_requests(
        self,
        employee_id: Optional[uuid.UUID] = None,
        *,
        statuses: Optional[Sequence[LeaveStatus]] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        start_from: Optional[date] = None,
        end_until: Optional[date] = None,
        department: Optional[str] = None,
    ) -> list[LeaveRequest]:
        """Requests matching every given filter, by start date.

        ``start_from`` keeps requests starting on or after it and ``end_until``
        those ending on or before it. ``department`` is the requester's.
        """

    @abc.abstractmethod
    async def update_request_if_status(
        self, request_id: uuid.UUID, expected_status: LeaveStatus, **values: Any,
    ) -> bool:
        """Atomically write ``values`` iff the request is still ``expected_status``."""

    @abc.abstractmethod
    async def delete_request_if_status(
        self, request_id: uuid.UUID, expected_status: LeaveStatus,
    ) -> bool:
        """Delete the request iff it is still ``expected_status``."""

    @abc.abstractmethod
    async def delete_requests(
        self, employee_id: uuid.UUID, status: LeaveStatus,
    ) -> list[uuid.UUID]:
        """Delete all of an employee's requests in ``status``; return their ids."""

    # ── Audit ───────────────────────────────────────────────────────

    @abc.abstractmethod
    async def record_audit(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
    ) -> None: ...


# ═════════════════════════════════════════════════════════════════════
# SQLAlchemy implementation
# ═════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def _store_errors() -> AsyncIterator[None]:
    """Surface driver / pool failures as PersistenceError (constraint errors pass through)."""
    try:
        yield
    except IntegrityError:
        raise
    except (OperationalError, InterfaceError, PoolTimeoutError, asyncio.TimeoutError) as exc:
        raise PersistenceError(f"Database call failed: {exc.__class__.__name__}.") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise PersistenceError("Database connection lost.") from exc
        raise


class SqlAlchemyLeaveRepository(LeaveRepository):
    """LeaveRepository over an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with _store_errors():
            async with self.session.begin_nested():
                yield

    # ── Employees ───────────────────────────────────────────────────

    async def get_employee(self, employee_id: uuid.UUID) -> Optional[Employee]:
        async with _store_errors():
            return await self.session.get(Employee, employee_id)

    async def list_active_employees(self, as_of: date) -> list[Employee]:
        async with _store_errors():
            result = await self.session.execute(
                select(Employee)
                .where(
                    Employee.start_work_date <= as_of,
                    or_(
                        Employee.end_work_date.is_(None),
                        Employee.end_work_date > as_of,
                    ),
                )
                .order_by(Employee.start_work_date, Employee.id)
            )
            return list(result.scalars().all())

    async def save_employee(self, employee: Employee) -> None:
        async with _store_errors():
            employee.updated_at = func.now()
            self.session.add(employee)
            await self.session.flush()
            await self.session.refresh(employee)

    # ── Leave types ─────────────────────────────────────────────────

    async def get_leave_type(self, leave_type_id: uuid.UUID) -> Optional[LeaveType]:
        async with _store_errors():
            return await self.session.get(LeaveType, leave_type_id)

    async def get_leave_type_by_code(self, code: str) -> Optional[LeaveType]:
        async with _store_errors():
            result = await self.session.execute(
                select(LeaveType).where(LeaveType.code == code)
            )
            return result.scalars().first()

    async def list_leave_types(self, *, active_only: bool = False) -> list[LeaveType]:
        query = select(LeaveType).order_by(LeaveType.code)
        if active_only:
            query = query.where(LeaveType.is_active.is_(True))
        async with _store_errors():
            result = await self.session.execute(query)
            return list(result.scalars().all())

    # ── Public holidays ─────────────────────────────────────────────

    async def list_public_holidays(self, year: int) -> list[PublicHoliday]:
        async with _store_errors():
            result = await self.session.execute(
                select(PublicHoliday)
                .where(PublicHoliday.year == year)
                .order_by(PublicHoliday.date)
            )
            return list(result.scalars().all())

    async def add_public_holidays(self, holidays: Iterable[PublicHoliday]) -> int:
        added = 0
        async with _store_errors():
            for holiday in holidays:
                existing = await self.session.execute(
                    select(PublicHoliday.id).where(
                        PublicHoliday.date == holiday.date,
                        PublicHoliday.name == holiday.name,
                    )
                )
                if existing.scalar() is None:
                    self.session.add(holiday)
                    added += 1
            await self.session.flush()
        return added

    # ── Balances ────────────────────────────────────────────────────

    async def get_balance_by_id(self, balance_id: uuid.UUID) -> Optional[LeaveBalance]:
        async with _store_errors():
            result = await self.session.execute(
                select(LeaveBalance)
                .where(LeaveBalance.id == balance_id)
                .execution_options(populate_existing=True)
            )
            return result.scalars().first()

    async def get_balance(
        self, employee_id: uuid.UUID, leave_type_id: uuid.UUID, year: int,
    ) -> Optional[LeaveBalance]:
        async with _store_errors():
            result = await self.session.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_type_id == leave_type_id,
                    LeaveBalance.year == year,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalars().first()

    async def find_balance_covering(
        self, employee_id: uuid.UUID, leave_type_id: uuid.UUID, on_date: date,
    ) -> Optional[LeaveBalance]:
        async with _store_errors():
            result = await self.session.execute(
                select(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_type_id == leave_type_id,
                    or_(
                        and_(
                            LeaveBalance.cycle_start_date <= on_date,
                            LeaveBalance.cycle_end_date >= on_date,
                        ),
                        and_(
                            LeaveBalance.cycle_start_date.is_(None),
                            LeaveBalance.year == on_date.year,
                        ),
                    ),
                )
                .order_by(LeaveBalance.year.desc())
                .execution_options(populate_existing=True)
            )
            return result.scalars().first()

    async def list_balances(
        self,
        employee_id: uuid.UUID,
        *,
        year: Optional[int] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]:
        query = (
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id)
            .order_by(LeaveBalance.year, LeaveBalance.leave_type_id)
            .execution_options(populate_existing=True)
        )
        if year is not None:
            query = query.where(LeaveBalance.year == year)
        if leave_type_id is not None:
            query = query.where(LeaveBalance.leave_type_id == leave_type_id)
        async with _store_errors():
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def add_balance(self, balance: LeaveBalance) -> LeaveBalance:
        async with _store_errors():
            self.session.add(balance)
            await self.session.flush()
            return balance

    async def update_balance_if_unchanged(
        self, balance_id: uuid.UUID, expected_version: int, **values: Any,
    ) -> bool:
        async with _store_errors():
            result = await self.session.execute(
                update(LeaveBalance)
                .where(
                    LeaveBalance.id == balance_id,
                    LeaveBalance.version == expected_version,
                )
                .values(
                    version=LeaveBalance.version + 1,
                    updated_at=func.now(),
                    **values,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    # ── Leave requests ──────────────────────────────────────────────

    async def get_request(self, request_id: uuid.UUID) -> Optional[LeaveRequest]:
        async with _store_errors():
            result = await self.session.execute(
                select(LeaveRequest)
                .where(LeaveRequest.id == request_id)
                .execution_options(populate_existing=True)
            )
            return result.scalars().first()

    async def add_request(self, request: LeaveRequest) -> LeaveRequest:
        async with _store_errors():
            self.session.add(request)
            await self.session.flush()
            await self.session.refresh(request)
            return request

    async def list_requests(
        self,
        employee_id: Optional[uuid.UUID] = None,
        *,
        statuses: Optional[Sequence[LeaveStatus]] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        start_from: Optional[date] = None,
        end_until: Optional[date] = None,
        department: Optional[str] = None,
    ) -> list[LeaveRequest]:
        query = (
            select(LeaveRequest)
            .order_by(LeaveRequest.start_date, LeaveRequest.created_at)
            .execution_options(populate_existing=True)
        )
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if start_from is not None:
            query = query.where(LeaveRequest.start_date >= start_from)
        if end_until is not None:
            query = query.where(LeaveRequest.end_date <= end_until)
        if department is not None:
            query = query.join(Employee, Employee.id == LeaveRequest.employee_id).where(
                Employee.department == department
            )
        if statuses:
            query = query.where(LeaveRequest.status.in_(list(statuses)))
        if leave_type_id is not None:
            query = query.where(LeaveRequest.leave_type_id == leave_type_id)
        async with _store_errors():
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def update_request_if_status(
        self, request_id: uuid.UUID, expected_status: LeaveStatus, **values: Any,
    ) -> bool:
        async with _store_errors():
            result = await self.session.execute(
                update(LeaveRequest)
                .where(
                    LeaveRequest.id == request_id,
                    LeaveRequest.status == expected_status,
                )
                .values(updated_at=func.now(), **values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def delete_request_if_status(
        self, request_id: uuid.UUID, expected_status: LeaveStatus,
    ) -> bool:
        async with _store_errors():
            result = await self.session.execute(
                delete(LeaveRequest)
                .where(
                    LeaveRequest.id == request_id,
                    LeaveRequest.status == expected_status,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def delete_requests(
        self, employee_id: uuid.UUID, status: LeaveStatus,
    ) -> list[uuid.UUID]:
        async with _store_errors():
            result = await self.session.execute(
                delete(LeaveRequest)
                .where(
                    LeaveRequest.employee_id == employee_id,
                    LeaveRequest.status == status,
                )
                .returning(LeaveRequest.id)
                .execution_options(synchronize_session=False)
            )
            return list(result.scalars().all())

    # ── Audit ───────────────────────────────────────────────────────

    async def record_audit(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        old_values: Optional[dict[str, Any]] = None,
        new_values: Optional[dict[str, Any]] = None,
    ) -> None:
        async with _store_errors():
            await create_audit_entry(
                self.session,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                old_values=old_values,
                new_values=new_values,
            )
