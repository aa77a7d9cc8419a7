"""Order routes - closing an order records the tip for the daily pool."""

from fastapi import APIRouter, HTTPException

from app.core.rbac import RequireServerOrManager
from app.db.session import DbSession
from app.schemas.tips import OrderClose
from app.services.order_service import (
    InvalidTip, OrderAlreadyClosed, OrderNotAssigned, OrderNotFound,
    OrderNotReady, OrderService,
)

router = APIRouter()


@router.post("/{order_id}/close")
def close_order(order_id: int, payload: OrderClose, db: DbSession, current_user: RequireServerOrManager):
    """Close a completed order with its tip."""
    try:
        order = OrderService(db).close_order(
            order_id,
            payload.tip_amount,
            closed_by=current_user.id,
            tip_percentage=payload.tip_percentage,
            payment_method=payload.payment_method,
            server_id=payload.server_id,
            is_manager=current_user.is_manager,
        )
    except InvalidTip as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (OrderAlreadyClosed, OrderNotReady) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderNotAssigned:
        raise HTTPException(status_code=403, detail="You can only close orders you are assigned to")

    return {"message": "Order closed successfully", "order": order}
