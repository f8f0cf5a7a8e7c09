# affiliate_system/services/tier_service.py
"""
Tier qualification for partners.

Qualification is always recomputed from commission records plus stats
adjustments. Partner.current_tier is a write-through cache for display.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.partner import Partner
from models.commission_record import CommissionRecord
from models.stats_adjustment import StatsAdjustment
from affiliate_system.config.statuses import TIER_QUALIFYING_STATUSES
from affiliate_system.config.tiers import TierRung, load_tier_ladder, base_rung
from affiliate_system.errors import NotFoundError
from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.utils.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class TierQualification:
    """Raw and adjusted qualification figures for one partner."""
    raw_referral_count: int
    raw_revenue: Decimal
    f1_delta: int
    revenue_delta: Decimal
    commission_delta: Decimal

    @property
    def adjusted_referral_count(self) -> int:
        return max(0, self.raw_referral_count + self.f1_delta)

    @property
    def adjusted_revenue(self) -> Decimal:
        return max(ZERO, self.raw_revenue + self.revenue_delta)


def determine_tier(ladder: List[TierRung], referrals: int, revenue: Decimal) -> TierRung:
    """
    Walk the ladder upward and return the highest rung reached.
    The walk stops at the first rung whose requirements are not met.
    """
    reached = base_rung(ladder)
    for rung in ladder:
        if not rung.isSatisfiedBy(referrals, revenue):
            break
        reached = rung
    return reached


def next_rung(ladder: List[TierRung], current: TierRung) -> Optional[TierRung]:
    for rung in ladder:
        if rung.level > current.level:
            return rung
    return None


class TierService:
    """Service for partner tier qualification."""

    def __init__(self, session: Session):
        self.session = session

    def _getPartner(self, partnerId: int) -> Partner:
        partner = self.session.query(Partner).filter_by(id=partnerId).first()
        if not partner:
            raise NotFoundError(f"Partner {partnerId} not found")
        return partner

    async def calculateQualification(self, partnerId: int) -> TierQualification:
        """
        Aggregate qualifying records and adjustments for a partner.

        Only locked and paid records are selected. Adjustments are summed
        over every cancellation; adjusted figures are clamped at zero.
        """
        rawCount, rawRevenue = self.session.query(
            func.count(func.distinct(CommissionRecord.f1_customer_id)),
            func.coalesce(func.sum(CommissionRecord.invoice_amount), 0)
        ).filter(
            CommissionRecord.f0_id == partnerId,
            CommissionRecord.status.in_(TIER_QUALIFYING_STATUSES)
        ).one()

        f1Delta, revenueDelta, commissionDelta = self.session.query(
            func.coalesce(func.sum(StatsAdjustment.f1_adjustment), 0),
            func.coalesce(func.sum(StatsAdjustment.revenue_adjustment), 0),
            func.coalesce(func.sum(StatsAdjustment.commission_adjustment), 0)
        ).filter(
            StatsAdjustment.f0_id == partnerId
        ).one()

        return TierQualification(
            raw_referral_count=int(rawCount or 0),
            raw_revenue=to_decimal(rawRevenue, "raw_revenue"),
            f1_delta=int(f1Delta or 0),
            revenue_delta=to_decimal(revenueDelta, "revenue_delta"),
            commission_delta=to_decimal(commissionDelta, "commission_delta"),
        )

    async def computeTier(self, partnerId: int, ladder: Optional[List[TierRung]] = None) -> TierRung:
        """Tier the partner qualifies for right now. No writes."""
        ladder = ladder or load_tier_ladder(self.session)
        qualification = await self.calculateQualification(partnerId)
        return determine_tier(
            ladder,
            qualification.adjusted_referral_count,
            qualification.adjusted_revenue
        )

    async def recalculateTier(self, partnerId: int) -> Dict[str, Any]:
        """
        Recompute tier and write it through to Partner.current_tier.

        Writes only when the tier changed.

        Raises:
            NotFoundError: If partner does not exist
            ConfigurationError: If the tier ladder is missing or malformed
        """
        partner = self._getPartner(partnerId)
        ladder = load_tier_ladder(self.session)

        qualification = await self.calculateQualification(partnerId)
        rung = determine_tier(
            ladder,
            qualification.adjusted_referral_count,
            qualification.adjusted_revenue
        )

        oldTier = partner.current_tier
        changed = (oldTier or "").upper() != rung.code

        if changed:
            partner.current_tier = rung.code
            self.session.flush()

            logger.info(
                f"Partner {partner.f0_code} tier {oldTier} -> {rung.code} "
                f"(referrals={qualification.adjusted_referral_count}, "
                f"revenue={qualification.adjusted_revenue})"
            )

            await eventBus.emit(AffiliateEvents.TIER_CHANGED, {
                "partnerId": partner.id,
                "f0Code": partner.f0_code,
                "oldTier": oldTier,
                "newTier": rung.code,
            })
        else:
            logger.debug(f"Partner {partner.f0_code} stays at {rung.code}")

        return {
            "partnerId": partner.id,
            "oldTier": oldTier,
            "newTier": rung.code,
            "changed": changed,
            "adjustedReferralCount": qualification.adjusted_referral_count,
            "adjustedRevenue": qualification.adjusted_revenue,
        }

    async def recalculateAllTiers(self) -> Dict[str, int]:
        """
        Recompute tiers for every active partner.

        Returns:
            Stats dict with checked/updated/errors counts
        """
        stats = {"checked": 0, "updated": 0, "errors": 0}

        partnerIds = [
            row.id for row in self.session.query(Partner.id).filter(
                Partner.is_active == True  # noqa: E712
            ).all()
        ]

        for partnerId in partnerIds:
            stats["checked"] += 1
            try:
                result = await self.recalculateTier(partnerId)
                if result["changed"]:
                    stats["updated"] += 1
            except NotFoundError as e:
                logger.error(f"Tier recalculation skipped: {e}")
                stats["errors"] += 1

        logger.info(
            f"Tier recalculation: checked={stats['checked']}, "
            f"updated={stats['updated']}, errors={stats['errors']}"
        )
        return stats

    async def getTierProgress(self, partnerId: int) -> Dict[str, Any]:
        """
        Current tier, next tier and distance to it.

        Raises:
            NotFoundError: If partner does not exist
            ConfigurationError: If the tier ladder is missing or malformed
        """
        self._getPartner(partnerId)
        ladder = load_tier_ladder(self.session)
        qualification = await self.calculateQualification(partnerId)

        current = determine_tier(
            ladder,
            qualification.adjusted_referral_count,
            qualification.adjusted_revenue
        )
        upcoming = next_rung(ladder, current)

        referralsToNext = 0
        revenueToNext = ZERO
        if upcoming:
            referralsToNext = max(0, upcoming.min_referrals - qualification.adjusted_referral_count)
            revenueToNext = max(ZERO, upcoming.min_revenue - qualification.adjusted_revenue)

        return {
            "current": current.toDict(),
            "next": upcoming.toDict() if upcoming else None,
            "referralsToNextTier": referralsToNext,
            "revenueToNextTier": revenueToNext,
            "tierList": [rung.toDict() for rung in ladder],
            "qualification": qualification,
        }
