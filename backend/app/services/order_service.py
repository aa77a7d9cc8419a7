"""Order closing: records the tip that later feeds the daily tip pool."""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.order import Order, OrderStatus
from app.services.event_bus import EventBus, EventType, event_bus
from app.services.tip_allocation import to_decimal
from app.services.tip_pool_service import local_now

logger = logging.getLogger(__name__)

CLOSABLE_STATUSES = frozenset({OrderStatus.COMPLETED.value, OrderStatus.READY.value})


class OrderError(Exception):
    """Base class for order closing failures."""


class OrderNotFound(OrderError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class OrderAlreadyClosed(OrderError):
    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} is already closed")


class OrderNotReady(OrderError):
    def __init__(self, order_id: int, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} must be completed before closing (status: {status})")


class OrderNotAssigned(OrderError):
    def __init__(self, order_id: int, user_id: int):
        self.order_id = order_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not assigned to order {order_id}")


class InvalidTip(OrderError):
    def __init__(self, message: str):
        super().__init__(message)


class OrderService:
    """Service for closing orders with their tip."""

    def __init__(self, db: Session, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or event_bus

    def close_order(
        self,
        order_id: int,
        tip_amount: Any,
        closed_by: int,
        tip_percentage: Any = None,
        payment_method: Optional[str] = None,
        server_id: Optional[int] = None,
        is_manager: bool = False,
    ) -> Dict[str, Any]:
        """Close a completed order and record its tip.

        Servers may only close orders they are assigned to: the explicit
        ``server_id`` when given, otherwise the order's creator. Managers may
        close any order.
        """
        try:
            tip = to_decimal(tip_amount or 0)
        except (InvalidOperation, ValueError):
            raise InvalidTip(f"Tip amount is not a number: {tip_amount!r}")
        if tip < 0:
            raise InvalidTip("Tip amount cannot be negative")

        order = self.db.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        if order.status == OrderStatus.CLOSED.value:
            raise OrderAlreadyClosed(order_id)
        if order.status not in CLOSABLE_STATUSES:
            raise OrderNotReady(order_id, order.status)

        if not is_manager:
            assigned = server_id == closed_by if server_id else order.created_by == closed_by
            if not assigned:
                raise OrderNotAssigned(order_id, closed_by)

        if tip_percentage is None and tip > 0 and order.total_amount:
            tip_percentage = tip / to_decimal(order.total_amount) * Decimal("100")
        if tip_percentage is not None:
            tip_percentage = to_decimal(tip_percentage).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        try:
            order.status = OrderStatus.CLOSED.value
            order.tip_amount = tip.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            order.tip_percentage = tip_percentage
            order.payment_method = payment_method
            order.server_id = server_id or closed_by
            order.closed_by = closed_by
            order.closed_at = local_now()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)

        logger.info(f"Order {order_id} closed by user {closed_by} with tip ${order.tip_amount}")
        self.bus.publish(EventType.ORDER_CLOSED, {
            "order_id": order.id,
            "tip_amount": str(order.tip_amount),
            "tip_percentage": str(order.tip_percentage) if order.tip_percentage is not None else None,
            "closed_by": closed_by,
            "closed_at": order.closed_at.isoformat(),
        })
        return self._to_dict(order)

    @staticmethod
    def _to_dict(order: Order) -> Dict[str, Any]:
        return {
            "id": order.id,
            "customer_name": order.customer_name,
            "table_number": order.table_number,
            "status": order.status,
            "total_amount": order.total_amount,
            "tip_amount": order.tip_amount,
            "tip_percentage": order.tip_percentage,
            "payment_method": order.payment_method,
            "server_id": order.server_id,
            "created_by": order.created_by,
            "closed_by": order.closed_by,
            "closed_at": order.closed_at.isoformat() if order.closed_at else None,
        }
