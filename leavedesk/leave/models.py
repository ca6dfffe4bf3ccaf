"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.common.constants import (
    AccrualMethod,
    FamilyResponsibilityReason,
    HalfDayPeriod,
    LeaveStatus,
)
from leavedesk.database import Base

DAYS = sa.Numeric(6, 2)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    color: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="#3b82f6")
    is_statutory: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    cycle_months: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=12)
    accrual_method: Mapped[AccrualMethod] = mapped_column(
        sa.Enum(
            AccrualMethod,
            name="accrual_method",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=AccrualMethod.lump_sum,
    )
    max_days_per_cycle: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint(
            "remaining_days = total_days - used_days", name="ck_balance_remaining"
        ),
        sa.CheckConstraint("total_days >= 0", name="ck_balance_total_nonneg"),
        sa.CheckConstraint("used_days >= 0", name="ck_balance_used_nonneg"),
        sa.CheckConstraint("remaining_days >= 0", name="ck_balance_remaining_nonneg"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    # Year the cycle starts in; sick leave cycles span three of them
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False, default=Decimal("0"))
    used_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False, default=Decimal("0"))
    remaining_days: Mapped[Decimal] = mapped_column(
        DAYS, nullable=False, default=Decimal("0")
    )
    accrued_days: Mapped[Decimal] = mapped_column(
        DAYS, nullable=False, default=Decimal("0")
    )
    accrued_months: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    carried_over_days: Mapped[Decimal] = mapped_column(
        DAYS, nullable=False, default=Decimal("0")
    )
    cycle_start_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    cycle_end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    forfeited_days: Mapped[Decimal] = mapped_column(
        DAYS, nullable=False, default=Decimal("0")
    )
    forfeiture_acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    forfeiture_processed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    def covers(self, on_date: date) -> bool:
        """True when ``on_date`` falls inside this balance's cycle."""
        if self.cycle_start_date and self.cycle_end_date:
            return self.cycle_start_date <= on_date <= self.cycle_end_date
        return self.year == on_date.year

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.employee_id}/{self.leave_type_id}/{self.year} "
            f"total={self.total_days} used={self.used_days} remaining={self.remaining_days}>"
        )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    # Cycle year of the balance this request draws from
    balance_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(DAYS, nullable=False)
    # Part of an approved annual-leave request drawn from the previous cycle
    carry_over_year: Mapped[Optional[int]] = mapped_column(sa.Integer)
    carry_over_days: Mapped[Decimal] = mapped_column(
        DAYS, nullable=False, default=Decimal("0")
    )
    is_half_day: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    half_day_period: Mapped[Optional[HalfDayPeriod]] = mapped_column(
        sa.Enum(HalfDayPeriod, name="half_day_period")
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    family_reason: Mapped[Optional[FamilyResponsibilityReason]] = mapped_column(
        sa.Enum(FamilyResponsibilityReason, name="family_responsibility_reason")
    )
    requires_medical_certificate: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    reviewer_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
