"""SQLAlchemy models."""

from app.models.user import User
from app.models.order import Order, OrderStatus
from app.models.staff import Shift, ShiftStatus
from app.models.tips import (
    TipDistributionRule,
    TipPool,
    TipPayout,
    TipDispute,
    TipPoolStatus,
    TipPayoutStatus,
    TipDisputeStatus,
)

__all__ = [
    "User",
    "Order",
    "OrderStatus",
    "Shift",
    "ShiftStatus",
    "TipDistributionRule",
    "TipPool",
    "TipPayout",
    "TipDispute",
    "TipPoolStatus",
    "TipPayoutStatus",
    "TipDisputeStatus",
]
