# affiliate_system/services/lock_service.py
"""
Lock sweep - moves pending commissions past their lock date to locked.
Safe to re-run: already locked records are not touched.
"""
from typing import Any, Dict, Set
import logging

from sqlalchemy.orm import Session

from models.commission_record import CommissionRecord
from affiliate_system.config.statuses import CommissionStatus
from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.services.tier_service import TierService
from affiliate_system.services.transition_service import TransitionService
from affiliate_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class LockService:
    """Service for the periodic lock sweep."""

    def __init__(self, session: Session):
        self.session = session
        self.transitions = TransitionService(session)

    async def lockDueCommissions(self) -> Dict[str, Any]:
        """
        Lock every pending record whose lock_date has passed and whose
        invoice was not cancelled, then recompute tier once per partner.

        Returns:
            Stats dict: checked, locked, skipped, partners, tierChanges
        """
        now = timeMachine.now
        commissionMonth = timeMachine.toBusinessMonth(now)

        due = self.session.query(CommissionRecord).filter(
            CommissionRecord.status == CommissionStatus.PENDING.value,
            CommissionRecord.lock_date <= now,
            CommissionRecord.invoice_cancelled_at.is_(None)
        ).order_by(CommissionRecord.lock_date.asc()).all()

        stats = {
            "checked": len(due),
            "locked": 0,
            "skipped": 0,
            "partners": 0,
            "tierChanges": 0,
            "commissionMonth": commissionMonth,
        }

        if not due:
            logger.debug("Lock sweep: nothing due")
            return stats

        affectedPartners: Set[int] = set()
        lockedIds = []

        for record in due:
            locked = await self.transitions.applyTransition(
                record,
                CommissionStatus.LOCKED,
                locked_at=now,
                commission_month=commissionMonth,
            )
            if locked:
                stats["locked"] += 1
                lockedIds.append(record.id)
                affectedPartners.add(record.f0_id)
            else:
                stats["skipped"] += 1

        tierService = TierService(self.session)
        for partnerId in sorted(affectedPartners):
            result = await tierService.recalculateTier(partnerId)
            if result["changed"]:
                stats["tierChanges"] += 1

        stats["partners"] = len(affectedPartners)

        if lockedIds:
            await eventBus.emit(AffiliateEvents.COMMISSION_LOCKED, {
                "commissionIds": lockedIds,
                "partnerIds": sorted(affectedPartners),
                "commissionMonth": commissionMonth,
            })

        logger.info(
            f"Lock sweep: {stats['locked']}/{stats['checked']} locked for {commissionMonth}, "
            f"{stats['skipped']} skipped, {stats['partners']} partners recalculated, "
            f"{stats['tierChanges']} tier changes"
        )
        return stats
