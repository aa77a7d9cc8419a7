"""Tip Pool Service.

Calculates the daily tip pool from closed orders and completed shifts,
persists one payout per shift, and finalizes pools once the numbers are
approved. Each calculate/finalize call runs in a single transaction: either
every read and write of the call commits, or the session is rolled back and
the original exception propagates.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, aliased

from app.core.config import settings
from app.models.order import Order, OrderStatus
from app.models.staff import Shift, ShiftStatus
from app.models.tips import (
    TipDistributionRule, TipPayout, TipPayoutStatus, TipPool, TipPoolStatus,
)
from app.models.user import User
from app.services.event_bus import EventBus, EventType, event_bus
from app.services.tip_allocation import ShiftHours, calculate_payouts, to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SECONDS_PER_HOUR = Decimal("3600")


class TipPoolError(Exception):
    """Base class for tip pool failures detected before any write."""


class RuleNotFound(TipPoolError):
    """Raised when a distribution rule is missing or inactive."""
    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"Distribution rule {rule_id} not found or inactive")


class NoTipsForDate(TipPoolError):
    """Raised when a date has no closed orders with a tip."""
    def __init__(self, shift_date: date):
        self.shift_date = shift_date
        super().__init__(f"No tips found for {shift_date.isoformat()}")


class NoShiftsForDate(TipPoolError):
    """Raised when a date has no completed shifts to split tips against."""
    def __init__(self, shift_date: date):
        self.shift_date = shift_date
        super().__init__(f"No completed shifts found for {shift_date.isoformat()}")


class PoolNotFound(TipPoolError):
    """Raised when a tip pool id does not exist."""
    def __init__(self, tip_pool_id: int):
        self.tip_pool_id = tip_pool_id
        super().__init__(f"Tip pool {tip_pool_id} not found")


class PoolAlreadyFinalized(TipPoolError):
    """Raised when recalculating a finalized pool while finalized pools are locked."""
    def __init__(self, tip_pool_id: int, shift_date: date):
        self.tip_pool_id = tip_pool_id
        self.shift_date = shift_date
        super().__init__(
            f"Tip pool {tip_pool_id} for {shift_date.isoformat()} is finalized and cannot be recalculated"
        )


class InvalidShift(TipPoolError):
    """Raised when a shift cannot be recorded."""
    def __init__(self, message: str):
        super().__init__(message)


def to_money(value: Any) -> Decimal:
    """Round to currency precision."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def local_now() -> datetime:
    """Current naive local time; every timestamp the services write uses this."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time in the configured timezone."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def day_bounds(d: date) -> Tuple[datetime, datetime]:
    """Half-open [start, end) range of naive local datetimes covering one day."""
    start = datetime.combine(d, time.min)
    return start, start + timedelta(days=1)


def hours_between(start: datetime, end: datetime) -> Decimal:
    """Decimal hours from start to end."""
    return Decimal(str((end - start).total_seconds())) / SECONDS_PER_HOUR


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _pool_to_dict(pool: TipPool) -> Dict[str, Any]:
    return {
        "id": pool.id,
        "shift_date": _iso(pool.shift_date),
        "total_tips": pool.total_tips,
        "total_orders": pool.total_orders,
        "distribution_rule_id": pool.distribution_rule_id,
        "status": pool.status,
        "calculated_by": pool.calculated_by,
        "calculated_at": _iso(pool.calculated_at),
        "distributed_at": _iso(pool.distributed_at),
        "finalized_by": pool.finalized_by,
    }


def _payout_to_dict(payout: TipPayout) -> Dict[str, Any]:
    return {
        "id": payout.id,
        "tip_pool_id": payout.tip_pool_id,
        "user_id": payout.user_id,
        "shift_id": payout.shift_id,
        "base_amount": payout.base_amount,
        "bonus_amount": payout.bonus_amount,
        "total_amount": payout.total_amount,
        "hours_worked": payout.hours_worked,
        "role": payout.role,
        "percentage_share": payout.percentage_share,
        "calculation_details": payout.calculation_details,
        "status": payout.status,
    }


def _rule_to_dict(rule: TipDistributionRule, created_by_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "rules": rule.rules,
        "is_active": rule.is_active,
        "created_by": rule.created_by,
        "created_by_name": created_by_name,
        "created_at": _iso(rule.created_at),
    }


def _shift_to_dict(shift: Shift) -> Dict[str, Any]:
    return {
        "id": shift.id,
        "user_id": shift.user_id,
        "start_time": _iso(shift.start_time),
        "end_time": _iso(shift.end_time),
        "role": shift.role,
        "location": shift.location,
        "hours_worked": shift.hours_worked,
        "status": shift.status,
        "tip_pool_calculated": shift.tip_pool_calculated,
    }


class TipPoolService:
    """Service for tip pool calculation, finalization and reporting."""

    def __init__(self, db: Session, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or event_bus

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate_tip_pool(
        self,
        shift_date: date,
        distribution_rule_id: int,
        calculated_by: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Calculate and persist the tip pool for a date.

        Replaces any earlier calculation for the same date: pool totals, rule
        and status are overwritten and all payouts are regenerated.

        Raises:
            RuleNotFound, NoTipsForDate, NoShiftsForDate, PoolAlreadyFinalized,
            InvalidDistributionRule
        """
        try:
            rule = self._get_active_rule(distribution_rule_id)

            total_tips, total_orders = self._tip_totals(shift_date)
            if total_tips <= 0:
                raise NoTipsForDate(shift_date)

            shifts = self._completed_shifts(shift_date)
            if not shifts:
                raise NoShiftsForDate(shift_date)

            computed = calculate_payouts(
                [shift_hours for _, shift_hours in shifts], total_tips, rule.rules
            )

            pool = self._upsert_pool(shift_date, total_tips, total_orders, rule.id, calculated_by)

            self.db.execute(delete(TipPayout).where(TipPayout.tip_pool_id == pool.id))

            rows = []
            for line in computed:
                row = TipPayout(
                    tip_pool_id=pool.id,
                    user_id=line.user_id,
                    shift_id=line.shift_id,
                    base_amount=to_money(line.base_amount),
                    bonus_amount=to_money(line.bonus_amount),
                    total_amount=to_money(line.total_amount),
                    hours_worked=to_money(line.hours_worked),
                    role=line.role,
                    percentage_share=to_money(line.percentage_share),
                    calculation_details=line.calculation_details,
                    status=TipPayoutStatus.PENDING.value,
                )
                self.db.add(row)
                rows.append(row)

            for shift, _ in shifts:
                shift.tip_pool_calculated = True

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        unrounded_total = sum((line.total_amount for line in computed), Decimal("0"))
        distributed = sum((row.total_amount for row in rows), Decimal("0"))
        warnings = self._distribution_warnings(total_tips, unrounded_total, distributed)
        for warning in warnings:
            logger.warning(f"Tip pool {shift_date.isoformat()}: {warning}")

        logger.info(
            f"Tip pool {pool.id} calculated for {shift_date.isoformat()}: "
            f"${total_tips} across {len(rows)} shifts using rule '{rule.name}'"
        )

        summary = {
            "total_tips": total_tips,
            "total_orders": total_orders,
            "total_staff": len(shifts),
            "distribution_rule": rule.name,
            "total_distributed": distributed,
            "warnings": warnings,
        }

        self.bus.publish(EventType.TIP_POOL_CALCULATED, {
            "tip_pool_id": pool.id,
            "shift_date": shift_date.isoformat(),
            "total_tips": str(total_tips),
            "total_staff": len(shifts),
            "calculated_by": calculated_by,
        })

        return {
            "pool": _pool_to_dict(pool),
            "payouts": [_payout_to_dict(row) for row in rows],
            "summary": summary,
        }

    def _get_active_rule(self, rule_id: int) -> TipDistributionRule:
        rule = self.db.execute(
            select(TipDistributionRule).where(
                TipDistributionRule.id == rule_id,
                TipDistributionRule.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if rule is None:
            raise RuleNotFound(rule_id)
        return rule

    def _tip_totals(self, shift_date: date) -> Tuple[Decimal, int]:
        """Sum and count of positive tips on orders closed during the day."""
        start, end = day_bounds(shift_date)
        total, count = self.db.execute(
            select(
                func.coalesce(func.sum(Order.tip_amount), 0),
                func.count(Order.id),
            ).where(
                Order.status == OrderStatus.CLOSED.value,
                Order.tip_amount > 0,
                Order.closed_at >= start,
                Order.closed_at < end,
            )
        ).one()
        return to_money(total), int(count)

    def _completed_shifts(self, shift_date: date) -> List[Tuple[Shift, ShiftHours]]:
        """Completed, clocked-out shifts that started during the day, with their hours."""
        start, end = day_bounds(shift_date)
        rows = self.db.execute(
            select(Shift, User.role)
            .join(User, Shift.user_id == User.id)
            .where(
                Shift.status == ShiftStatus.COMPLETED.value,
                Shift.end_time.is_not(None),
                Shift.start_time >= start,
                Shift.start_time < end,
            )
            .order_by(Shift.start_time, Shift.id)
        ).all()

        shifts = []
        for shift, user_role in rows:
            hours = hours_between(shift.start_time, shift.end_time)
            if hours < 0:
                logger.warning(f"Shift {shift.id} ends before it starts; counting it as 0 hours")
                hours = Decimal("0")
            shifts.append((shift, ShiftHours(
                shift_id=shift.id,
                user_id=shift.user_id,
                role=user_role or shift.role,
                hours_worked=hours,
            )))
        return shifts

    def _upsert_pool(
        self,
        shift_date: date,
        total_tips: Decimal,
        total_orders: int,
        rule_id: int,
        calculated_by: Optional[int],
    ) -> TipPool:
        pool = self.db.execute(
            select(TipPool).where(TipPool.shift_date == shift_date).with_for_update()
        ).scalar_one_or_none()

        if pool is None:
            pool = TipPool(shift_date=shift_date)
            self.db.add(pool)
        elif pool.is_finalized:
            if settings.lock_finalized_pools:
                raise PoolAlreadyFinalized(pool.id, shift_date)
            logger.warning(
                f"Recalculating finalized tip pool {pool.id} for {shift_date.isoformat()}; "
                "approved payouts will be replaced"
            )

        pool.total_tips = total_tips
        pool.total_orders = total_orders
        pool.distribution_rule_id = rule_id
        pool.status = TipPoolStatus.CALCULATED.value
        pool.calculated_at = local_now()
        pool.calculated_by = calculated_by
        self.db.flush()
        return pool

    @staticmethod
    def _distribution_warnings(
        total_tips: Decimal, unrounded_total: Decimal, distributed: Decimal
    ) -> List[str]:
        if abs(unrounded_total - total_tips) >= CENT:
            return [
                f"Rule allocates ${to_money(unrounded_total)} of a ${total_tips} pool; "
                "role allocations do not add up to the pool"
            ]
        if distributed != total_tips:
            return [f"Rounding difference: ${total_tips - distributed}"]
        return []

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize_tip_pool(self, tip_pool_id: int, finalized_by: Optional[int] = None) -> Dict[str, Any]:
        """Lock a pool in and approve its pending payouts.

        Finalizing an already finalized pool changes nothing and still succeeds.
        """
        try:
            pool = self.db.execute(
                select(TipPool).where(TipPool.id == tip_pool_id).with_for_update()
            ).scalar_one_or_none()
            if pool is None:
                raise PoolNotFound(tip_pool_id)

            already_finalized = pool.is_finalized
            if not already_finalized:
                pool.status = TipPoolStatus.FINALIZED.value
                pool.distributed_at = local_now()
                pool.finalized_by = finalized_by

            result = self.db.execute(
                update(TipPayout)
                .where(
                    TipPayout.tip_pool_id == tip_pool_id,
                    TipPayout.status == TipPayoutStatus.PENDING.value,
                )
                .values(status=TipPayoutStatus.APPROVED.value)
            )
            approved = result.rowcount or 0
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not already_finalized:
            logger.info(f"Tip pool {tip_pool_id} finalized by user {finalized_by}; {approved} payouts approved")
            self.bus.publish(EventType.TIP_POOL_FINALIZED, {
                "tip_pool_id": tip_pool_id,
                "shift_date": pool.shift_date.isoformat(),
                "total_tips": str(pool.total_tips),
                "finalized_by": finalized_by,
            })

        return {
            "success": True,
            "tip_pool_id": tip_pool_id,
            "approved_payouts": approved,
            "already_finalized": already_finalized,
        }

    # =========================================================================
    # Queries
    # =========================================================================

    def get_pool(self, tip_pool_id: int) -> Dict[str, Any]:
        """Get a single pool with its payouts."""
        pool = self.db.get(TipPool, tip_pool_id)
        if pool is None:
            raise PoolNotFound(tip_pool_id)
        payouts = self.db.execute(
            select(TipPayout).where(TipPayout.tip_pool_id == tip_pool_id).order_by(TipPayout.id)
        ).scalars().all()
        result = _pool_to_dict(pool)
        result["payouts"] = [_payout_to_dict(p) for p in payouts]
        return result

    def get_tip_pool_summary(
        self,
        start_date: date,
        end_date: date,
        user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Pools in a date range with rule, payout and finalizer details.

        With ``user_id`` only pools the user has a payout in are returned.
        """
        finalizer = aliased(User)
        user_payout = aliased(TipPayout)

        payout_count = func.count(TipPayout.id).label("payout_count")
        total_distributed = func.coalesce(func.sum(TipPayout.total_amount), 0).label("total_distributed")

        stmt = (
            select(
                TipPool,
                TipDistributionRule.name,
                TipDistributionRule.description,
                payout_count,
                total_distributed,
                finalizer.first_name,
                finalizer.last_name,
            )
            .outerjoin(TipDistributionRule, TipPool.distribution_rule_id == TipDistributionRule.id)
            .outerjoin(TipPayout, TipPayout.tip_pool_id == TipPool.id)
            .outerjoin(finalizer, TipPool.finalized_by == finalizer.id)
            .where(TipPool.shift_date.between(start_date, end_date))
        )

        if user_id is not None:
            stmt = stmt.where(
                select(user_payout.id)
                .where(user_payout.tip_pool_id == TipPool.id, user_payout.user_id == user_id)
                .exists()
            )

        stmt = stmt.group_by(
            TipPool.id,
            TipDistributionRule.name,
            TipDistributionRule.description,
            finalizer.first_name,
            finalizer.last_name,
        ).order_by(TipPool.shift_date.desc())

        summary = []
        for pool, rule_name, rule_description, count, distributed, first, last in self.db.execute(stmt).all():
            item = _pool_to_dict(pool)
            item.update({
                "rule_name": rule_name,
                "rule_description": rule_description,
                "payout_count": int(count),
                "total_distributed": to_money(distributed),
                "finalized_by_name": f"{first} {last or ''}".strip() if first else None,
            })
            summary.append(item)
        return summary

    def get_user_payouts(
        self,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """Every payout of a user with its pool, shift and rule details, newest first."""
        stmt = (
            select(
                TipPayout,
                TipPool.shift_date,
                TipPool.total_tips,
                TipPool.total_orders,
                TipPool.status,
                Shift.start_time,
                Shift.end_time,
                TipDistributionRule.name,
            )
            .join(TipPool, TipPayout.tip_pool_id == TipPool.id)
            .outerjoin(Shift, TipPayout.shift_id == Shift.id)
            .outerjoin(TipDistributionRule, TipPool.distribution_rule_id == TipDistributionRule.id)
            .where(TipPayout.user_id == user_id)
        )
        if start_date is not None:
            stmt = stmt.where(TipPool.shift_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(TipPool.shift_date <= end_date)
        stmt = stmt.order_by(TipPool.shift_date.desc(), TipPayout.id)

        payouts = []
        for payout, shift_date, pool_total, total_orders, pool_status, start, end, rule_name in self.db.execute(stmt).all():
            item = _payout_to_dict(payout)
            item.update({
                "shift_date": _iso(shift_date),
                "pool_total": pool_total,
                "total_orders": total_orders,
                "pool_status": pool_status,
                "start_time": _iso(start),
                "end_time": _iso(end),
                "rule_name": rule_name,
            })
            payouts.append(item)
        return payouts

    # =========================================================================
    # Distribution rules
    # =========================================================================

    def create_distribution_rule(
        self,
        name: str,
        description: Optional[str],
        rules: Dict[str, Any],
        created_by: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Store a new rule document. The document is validated when it is used."""
        rule = TipDistributionRule(
            name=name,
            description=description,
            rules=rules,
            created_by=created_by,
            is_active=True,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Distribution rule {rule.id} '{name}' created by user {created_by}")
        return _rule_to_dict(rule)

    def get_distribution_rules(self) -> List[Dict[str, Any]]:
        """Active rules, newest first."""
        rows = self.db.execute(
            select(TipDistributionRule, User.first_name)
            .outerjoin(User, TipDistributionRule.created_by == User.id)
            .where(TipDistributionRule.is_active.is_(True))
            .order_by(TipDistributionRule.created_at.desc(), TipDistributionRule.id.desc())
        ).all()
        return [_rule_to_dict(rule, created_by_name) for rule, created_by_name in rows]

    def deactivate_distribution_rule(self, rule_id: int) -> Dict[str, Any]:
        """Retire a rule. The row stays so past pools can still reference it."""
        rule = self.db.get(TipDistributionRule, rule_id)
        if rule is None or not rule.is_active:
            raise RuleNotFound(rule_id)
        rule.is_active = False
        self.db.commit()
        self.db.refresh(rule)
        return _rule_to_dict(rule)

    # =========================================================================
    # Shifts
    # =========================================================================

    def record_shift(
        self,
        user_id: int,
        start_time: datetime,
        end_time: datetime,
        role: str,
        location: str = "main",
    ) -> Dict[str, Any]:
        """Record a completed shift for later tip calculation."""
        start = to_local_naive(start_time)
        end = to_local_naive(end_time)
        if end <= start:
            raise InvalidShift("Shift end time must be after its start time")

        shift = Shift(
            user_id=user_id,
            start_time=start,
            end_time=end,
            role=role,
            location=location or "main",
            hours_worked=to_money(hours_between(start, end)),
            status=ShiftStatus.COMPLETED.value,
        )
        self.db.add(shift)
        self.db.commit()
        self.db.refresh(shift)
        return _shift_to_dict(shift)
