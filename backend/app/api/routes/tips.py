"""Tip pooling routes - daily pools, payouts, distribution rules, shifts and disputes."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from app.core.config import settings
from app.core.rate_limit import limiter
from app.core.rbac import CurrentUser, RequireManager
from app.db.session import DbSession
from app.schemas.tips import (
    DisputeCreate, DisputeResolve, DistributionRuleCreate,
    ShiftRecordCreate, TipPoolCalculateRequest,
)
from app.services.tip_allocation import InvalidDistributionRule
from app.services.tip_dispute_service import (
    DisputeAlreadyExists, DisputeNotFound, InvalidDisputeTransition,
    PayoutNotFound, TipDisputeService,
)
from app.services.tip_pool_service import (
    InvalidShift, NoShiftsForDate, NoTipsForDate, PoolAlreadyFinalized,
    PoolNotFound, RuleNotFound, TipPoolService,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Tip Pools ==============

@router.get("/tip-pools")
def list_tip_pools(
    db: DbSession,
    current_user: CurrentUser,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None),
):
    """Tip pools in a date range. Staff only see pools they were paid from."""
    end = end_date or date.today()
    start = start_date or end - timedelta(days=settings.tip_summary_default_days)
    allowed_user_id = user_id if current_user.is_manager else current_user.id

    return TipPoolService(db).get_tip_pool_summary(start, end, allowed_user_id)


@router.get("/tip-pools/{tip_pool_id}")
def get_tip_pool(tip_pool_id: int, db: DbSession, current_user: RequireManager):
    """A single pool with all of its payouts."""
    try:
        return TipPoolService(db).get_pool(tip_pool_id)
    except PoolNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/tip-pools/calculate")
@limiter.limit(settings.tip_calculation_rate_limit)
def calculate_tip_pool(
    request: Request,
    payload: TipPoolCalculateRequest,
    db: DbSession,
    current_user: RequireManager,
):
    """Calculate (or recalculate) the tip pool for a day."""
    service = TipPoolService(db)
    try:
        result = service.calculate_tip_pool(
            payload.shift_date,
            payload.distribution_rule_id,
            calculated_by=current_user.id,
        )
    except RuleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (NoTipsForDate, NoShiftsForDate) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PoolAlreadyFinalized as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidDistributionRule as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "message": "Tip pool calculated successfully",
        **result,
    }


@router.put("/tip-pools/{tip_pool_id}/finalize")
def finalize_tip_pool(tip_pool_id: int, db: DbSession, current_user: RequireManager):
    """Finalize a pool and approve its payouts."""
    try:
        result = TipPoolService(db).finalize_tip_pool(tip_pool_id, finalized_by=current_user.id)
    except PoolNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "message": "Tip pool already finalized" if result["already_finalized"] else "Tip pool finalized successfully",
        **result,
    }


@router.get("/my-tips")
def my_tips(
    db: DbSession,
    current_user: CurrentUser,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    """The caller's payouts with totals and hourly average."""
    payouts = TipPoolService(db).get_user_payouts(current_user.id, start_date, end_date)

    total_amount = sum((Decimal(str(p["total_amount"])) for p in payouts), Decimal("0"))
    total_hours = sum((Decimal(str(p["hours_worked"] or 0)) for p in payouts), Decimal("0"))

    return {
        "payouts": payouts,
        "stats": {
            "total_payouts": len(payouts),
            "total_amount": total_amount,
            "avg_amount": (total_amount / len(payouts)).quantize(Decimal("0.01")) if payouts else Decimal("0"),
            "total_hours": total_hours,
            "avg_hourly_tips": (total_amount / total_hours).quantize(Decimal("0.01")) if total_hours else Decimal("0"),
        },
    }


# ============== Distribution Rules ==============

@router.get("/distribution-rules")
def list_distribution_rules(db: DbSession, current_user: RequireManager):
    """Active distribution rules, newest first."""
    return TipPoolService(db).get_distribution_rules()


@router.post("/distribution-rules", status_code=status.HTTP_201_CREATED)
def create_distribution_rule(payload: DistributionRuleCreate, db: DbSession, current_user: RequireManager):
    """Create a distribution rule."""
    return TipPoolService(db).create_distribution_rule(
        name=payload.name,
        description=payload.description,
        rules=payload.rules_document(),
        created_by=current_user.id,
    )


@router.delete("/distribution-rules/{rule_id}")
def deactivate_distribution_rule(rule_id: int, db: DbSession, current_user: RequireManager):
    """Retire a rule. Pools calculated with it keep their reference."""
    try:
        return TipPoolService(db).deactivate_distribution_rule(rule_id)
    except RuleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# ============== Shifts ==============

@router.post("/shifts", status_code=status.HTTP_201_CREATED)
def record_shift(payload: ShiftRecordCreate, db: DbSession, current_user: CurrentUser):
    """Record a completed shift for the caller."""
    if payload.role != current_user.role.value and not current_user.is_manager:
        raise HTTPException(status_code=403, detail="You can only record shifts for your own role")

    try:
        return TipPoolService(db).record_shift(
            current_user.id,
            payload.start_time,
            payload.end_time,
            payload.role,
            payload.location,
        )
    except InvalidShift as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============== Disputes ==============

@router.get("/disputes")
def list_disputes(db: DbSession, current_user: CurrentUser):
    """Disputes; staff only see their own."""
    user_id = None if current_user.is_manager else current_user.id
    return TipDisputeService(db).list_disputes(user_id)


@router.post("/disputes", status_code=status.HTTP_201_CREATED)
def create_dispute(payload: DisputeCreate, db: DbSession, current_user: CurrentUser):
    """Dispute one of the caller's payouts."""
    try:
        return TipDisputeService(db).create_dispute(payload.payout_id, current_user.id, payload.reason)
    except PayoutNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DisputeAlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/disputes/{dispute_id}/resolve")
def resolve_dispute(dispute_id: int, payload: DisputeResolve, db: DbSession, current_user: RequireManager):
    """Move a dispute to investigating, resolved or rejected."""
    try:
        return TipDisputeService(db).resolve_dispute(
            dispute_id,
            payload.status,
            resolution=payload.resolution,
            resolved_by=current_user.id,
        )
    except DisputeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidDisputeTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
