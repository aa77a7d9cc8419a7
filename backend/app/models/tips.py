"""Tip pooling models: distribution rules, daily pools, payouts and disputes."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.db.base import Base, TimestampMixin
from app.models.validators import non_negative, one_of


class TipPoolStatus(str, Enum):
    """Tip pool status. ``calculated`` -> ``finalized`` (terminal)."""
    CALCULATED = "calculated"
    FINALIZED = "finalized"


class TipPayoutStatus(str, Enum):
    """Tip payout status."""
    PENDING = "pending"
    APPROVED = "approved"


class TipDisputeStatus(str, Enum):
    """Tip dispute status."""
    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TipDistributionRule(Base, TimestampMixin):
    """Named allocation policy.

    ``rules`` is stored as opaque JSON and only interpreted at calculation time:
    {"default": {"method": "hours_weighted", "multiplier": 1},
     "roles": {"server": {"method": "percentage", "percentage": 70,
                          "individualMethod": "equal"}}}
    """

    __tablename__ = "tip_distribution_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    rules: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    creator = relationship("User", foreign_keys=[created_by])


class TipPool(Base, TimestampMixin):
    """One pool per calendar day; recalculation replaces it in place."""

    __tablename__ = "tip_pools"
    __table_args__ = (
        UniqueConstraint("shift_date", name="uq_tip_pools_shift_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_tips: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    distribution_rule_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tip_distribution_rules.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default=TipPoolStatus.CALCULATED.value, nullable=False)
    calculated_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finalized_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    distribution_rule = relationship("TipDistributionRule")
    payouts: Mapped[List["TipPayout"]] = relationship(
        "TipPayout", back_populates="pool", cascade="all, delete-orphan", passive_deletes=True
    )

    @validates("status")
    def _validate_status(self, key, value):
        return one_of(key, value, TipPoolStatus)

    @property
    def is_finalized(self) -> bool:
        return self.status == TipPoolStatus.FINALIZED.value


class TipPayout(Base):
    """An individual's share of a pool for one shift."""

    __tablename__ = "tip_payouts"

    id: Mapped[int] = mapped_column(primary_key=True)
    tip_pool_id: Mapped[int] = mapped_column(
        ForeignKey("tip_pools.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    shift_id: Mapped[Optional[int]] = mapped_column(ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True)
    base_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hours_worked: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    percentage_share: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 2), nullable=True)
    calculation_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TipPayoutStatus.PENDING.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    pool = relationship("TipPool", back_populates="payouts")

    @validates("base_amount", "bonus_amount", "total_amount")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("status")
    def _validate_status(self, key, value):
        return one_of(key, value, TipPayoutStatus)


class TipDispute(Base):
    """A staff member's objection to one of their payouts."""

    __tablename__ = "tip_disputes"

    id: Mapped[int] = mapped_column(primary_key=True)
    payout_id: Mapped[int] = mapped_column(
        ForeignKey("tip_payouts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=TipDisputeStatus.PENDING.value, nullable=False)
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    @validates("status")
    def _validate_status(self, key, value):
        return one_of(key, value, TipDisputeStatus)
