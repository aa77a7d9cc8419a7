"""Tip dispute workflow: staff contest a payout, managers investigate and close it."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from app.models.tips import TipDispute, TipDisputeStatus, TipPayout, TipPool
from app.models.user import User
from app.services.event_bus import EventBus, EventType, event_bus
from app.services.tip_pool_service import local_now

logger = logging.getLogger(__name__)

# Allowed status changes; resolved and rejected are terminal
DISPUTE_TRANSITIONS = {
    TipDisputeStatus.PENDING.value: {
        TipDisputeStatus.INVESTIGATING.value,
        TipDisputeStatus.RESOLVED.value,
        TipDisputeStatus.REJECTED.value,
    },
    TipDisputeStatus.INVESTIGATING.value: {
        TipDisputeStatus.RESOLVED.value,
        TipDisputeStatus.REJECTED.value,
    },
}


class PayoutNotFound(Exception):
    """Raised when a payout does not exist or belongs to someone else."""
    def __init__(self, payout_id: int):
        self.payout_id = payout_id
        super().__init__(f"Tip payout {payout_id} not found")


class DisputeAlreadyExists(Exception):
    """Raised when the user already disputed this payout."""
    def __init__(self, payout_id: int, dispute_id: int):
        self.payout_id = payout_id
        self.dispute_id = dispute_id
        super().__init__(f"Payout {payout_id} is already disputed (dispute {dispute_id})")


class DisputeNotFound(Exception):
    def __init__(self, dispute_id: int):
        self.dispute_id = dispute_id
        super().__init__(f"Tip dispute {dispute_id} not found")


class InvalidDisputeTransition(Exception):
    def __init__(self, dispute_id: int, current: str, requested: str):
        self.dispute_id = dispute_id
        self.current = current
        self.requested = requested
        super().__init__(f"Dispute {dispute_id} cannot move from '{current}' to '{requested}'")


class TipDisputeService:
    """Service for opening, listing and resolving tip disputes."""

    def __init__(self, db: Session, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or event_bus

    def create_dispute(self, payout_id: int, user_id: int, reason: str) -> Dict[str, Any]:
        """Open a dispute on one of the user's own payouts."""
        payout = self.db.execute(
            select(TipPayout).where(TipPayout.id == payout_id, TipPayout.user_id == user_id)
        ).scalar_one_or_none()
        if payout is None:
            raise PayoutNotFound(payout_id)

        existing = self.db.execute(
            select(TipDispute.id).where(TipDispute.payout_id == payout_id, TipDispute.user_id == user_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise DisputeAlreadyExists(payout_id, existing)

        dispute = TipDispute(
            payout_id=payout_id,
            user_id=user_id,
            reason=reason,
            status=TipDisputeStatus.PENDING.value,
        )
        self.db.add(dispute)
        self.db.commit()
        self.db.refresh(dispute)

        logger.info(f"Tip dispute {dispute.id} opened by user {user_id} on payout {payout_id}")
        self.bus.publish(EventType.TIP_DISPUTE_CREATED, {
            "dispute_id": dispute.id,
            "payout_id": payout_id,
            "user_id": user_id,
            "reason": reason,
        })
        return self._to_dict(dispute)

    def list_disputes(self, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Disputes with payout amount, pool date and people, newest first.

        With ``user_id`` only that user's disputes are returned.
        """
        disputer = aliased(User)
        resolver = aliased(User)
        stmt = (
            select(
                TipDispute,
                TipPayout.total_amount,
                TipPool.shift_date,
                disputer.first_name,
                resolver.first_name,
            )
            .join(TipPayout, TipDispute.payout_id == TipPayout.id)
            .join(TipPool, TipPayout.tip_pool_id == TipPool.id)
            .join(disputer, TipDispute.user_id == disputer.id)
            .outerjoin(resolver, TipDispute.resolved_by == resolver.id)
        )
        if user_id is not None:
            stmt = stmt.where(TipDispute.user_id == user_id)
        stmt = stmt.order_by(TipDispute.created_at.desc(), TipDispute.id.desc())

        disputes = []
        for dispute, amount, shift_date, disputer_name, resolver_name in self.db.execute(stmt).all():
            item = self._to_dict(dispute)
            item.update({
                "total_amount": amount,
                "shift_date": shift_date.isoformat() if shift_date else None,
                "disputer_name": disputer_name,
                "resolver_name": resolver_name,
            })
            disputes.append(item)
        return disputes

    def resolve_dispute(
        self,
        dispute_id: int,
        status: str,
        resolution: Optional[str] = None,
        resolved_by: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Move a dispute along its workflow."""
        dispute = self.db.get(TipDispute, dispute_id)
        if dispute is None:
            raise DisputeNotFound(dispute_id)

        previous = dispute.status
        if status not in DISPUTE_TRANSITIONS.get(previous, set()):
            raise InvalidDisputeTransition(dispute_id, previous, status)

        dispute.status = status
        if resolution is not None:
            dispute.resolution = resolution
        if status in (TipDisputeStatus.RESOLVED.value, TipDisputeStatus.REJECTED.value):
            dispute.resolved_at = local_now()
            dispute.resolved_by = resolved_by
        self.db.commit()
        self.db.refresh(dispute)

        logger.info(f"Tip dispute {dispute_id}: {previous} -> {status} by user {resolved_by}")
        self.bus.publish(EventType.TIP_DISPUTE_UPDATED, {
            "dispute_id": dispute_id,
            "previous_status": previous,
            "status": status,
            "resolved_by": resolved_by,
        })
        return self._to_dict(dispute)

    @staticmethod
    def _to_dict(dispute: TipDispute) -> Dict[str, Any]:
        return {
            "id": dispute.id,
            "payout_id": dispute.payout_id,
            "user_id": dispute.user_id,
            "reason": dispute.reason,
            "status": dispute.status,
            "resolution": dispute.resolution,
            "created_at": dispute.created_at.isoformat() if dispute.created_at else None,
            "resolved_at": dispute.resolved_at.isoformat() if dispute.resolved_at else None,
            "resolved_by": dispute.resolved_by,
        }
