# Services module

from app.services.event_bus import EventBus, EventType, event_bus
from app.services.tip_allocation import (
    InvalidDistributionRule,
    RolePolicy,
    ShiftHours,
    calculate_payouts,
)
from app.services.tip_pool_service import (
    TipPoolService,
    TipPoolError,
    RuleNotFound,
    NoTipsForDate,
    NoShiftsForDate,
    PoolNotFound,
    PoolAlreadyFinalized,
    InvalidShift,
)
from app.services.tip_dispute_service import (
    TipDisputeService,
    PayoutNotFound,
    DisputeAlreadyExists,
    DisputeNotFound,
    InvalidDisputeTransition,
)
from app.services.order_service import (
    OrderService,
    OrderError,
    OrderNotFound,
    OrderAlreadyClosed,
    OrderNotReady,
    OrderNotAssigned,
    InvalidTip,
)

__all__ = [
    "EventBus",
    "EventType",
    "event_bus",
    "InvalidDistributionRule",
    "RolePolicy",
    "ShiftHours",
    "calculate_payouts",
    "TipPoolService",
    "TipPoolError",
    "RuleNotFound",
    "NoTipsForDate",
    "NoShiftsForDate",
    "PoolNotFound",
    "PoolAlreadyFinalized",
    "InvalidShift",
    "TipDisputeService",
    "PayoutNotFound",
    "DisputeAlreadyExists",
    "DisputeNotFound",
    "InvalidDisputeTransition",
    "OrderService",
    "OrderError",
    "OrderNotFound",
    "OrderAlreadyClosed",
    "OrderNotReady",
    "OrderNotAssigned",
    "InvalidTip",
]
