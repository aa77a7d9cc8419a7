"""Guest order model (the source of tip revenue)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db.base import Base, TimestampMixin
from app.models.validators import non_negative, one_of


class OrderStatus(str, Enum):
    """Lifecycle of a guest order."""

    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class Order(Base, TimestampMixin):
    """A guest order. Closed orders carry the tip that feeds the daily tip pool."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    table_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False, index=True)
    tip_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    server_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    closed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Naive local time in settings.timezone
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    @validates("status")
    def _validate_status(self, key, value):
        return one_of(key, value, OrderStatus)

    @validates("total_amount", "tip_amount")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)
