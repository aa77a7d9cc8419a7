"""Staff timekeeping models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, TimestampMixin
from app.models.validators import non_negative, one_of


class ShiftStatus(str, Enum):
    """Shift status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Shift(Base, TimestampMixin):
    """A worked interval. Completed shifts are the hours the tip pool is split against."""

    __tablename__ = "shifts"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Naive local time in settings.timezone
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    location: Mapped[str] = mapped_column(String(100), default="main", nullable=False)
    hours_worked: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=ShiftStatus.ACTIVE.value, nullable=False)
    tip_pool_calculated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    user = relationship("User")

    @validates("status")
    def _validate_status(self, key, value):
        return one_of(key, value, ShiftStatus)

    @validates("hours_worked")
    def _validate_hours(self, key, value):
        return non_negative(key, value)
