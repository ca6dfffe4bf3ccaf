"""Public holiday ORM model — read-only reference data for working-day counts."""

from __future__ import annotations

import datetime
import uuid
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.database import Base


class PublicHoliday(Base):
    __tablename__ = "public_holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", "name", name="uq_public_holiday_date_name"),
        sa.Index("ix_public_holidays_year", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    date: Mapped[datetime.date] = mapped_column(sa.Date, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    # False for a weekend holiday whose day off moved to the next working day
    is_observed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    original_date: Mapped[Optional[datetime.date]] = mapped_column(sa.Date)

    def __repr__(self) -> str:
        return f"<PublicHoliday {self.date.isoformat()} {self.name}>"
