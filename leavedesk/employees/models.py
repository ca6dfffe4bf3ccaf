"""Employee ORM model — identity, role and the employment dates leave rules depend on."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import AbstractSet, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.common.constants import SA_WEEKEND, UserRole
from leavedesk.database import Base


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    department: Mapped[Optional[str]] = mapped_column(sa.String(100))
    start_work_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_work_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    # Weekdays off (Monday=0 … Sunday=6); NULL means the standard Saturday/Sunday weekend
    weekly_days_off: Mapped[Optional[list[int]]] = mapped_column(JSONB)
    forfeiture_acknowledgment_required: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    last_forfeiture_processed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    def is_active_on(self, as_of: date) -> bool:
        """Employed on ``as_of``: started, and no end date or an end date after it."""
        if self.start_work_date > as_of:
            return False
        return self.end_work_date is None or self.end_work_date > as_of

    @property
    def days_off(self) -> AbstractSet[int]:
        if self.weekly_days_off is None:
            return SA_WEEKEND
        return frozenset(self.weekly_days_off)

    @property
    def work_days_per_week(self) -> int:
        return 7 - len(self.days_off)

    def __repr__(self) -> str:
        return f"<Employee {self.email} ({self.role.value})>"
