# tests/test_tier_service.py
"""
Tests for tier qualification.

    adjusted_referral_count = max(0, distinct customers of locked/paid records
                                     + sum(f1_adjustment))
    adjusted_revenue        = max(0, invoice revenue + sum(revenue_adjustment))

The ladder is walked upward and stops at the first rung not satisfied.

Run:
    pytest tests/test_tier_service.py -v
"""
import asyncio
from decimal import Decimal

import pytest

from config import ConfigurationError
from models import Partner, StatsAdjustment, TierDefinition
from affiliate_system.config.tiers import TierRung, load_tier_ladder, validate_ladder
from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.services.tier_service import TierService, determine_tier


def rung(code, level, referrals=0, revenue="0", bonus="0"):
    return TierRung(code=code, name=code.title(), level=level, min_referrals=referrals,
                    min_revenue=Decimal(revenue), bonus_rate=Decimal(bonus))


LADDER = [rung("SILVER", 1), rung("GOLD", 2, referrals=11), rung("DIAMOND", 3, referrals=31)]


# =============================================================================
# TEST CLASS: Ladder walk
# =============================================================================

class TestDetermineTier:
    """Tests for determine_tier()."""

    @pytest.mark.parametrize("referrals, expected", [
        (0, "SILVER"),
        (10, "SILVER"),
        (11, "GOLD"),
        (30, "GOLD"),
        (31, "DIAMOND"),
    ])
    def test_referral_thresholds(self, referrals, expected):
        assert determine_tier(LADDER, referrals, Decimal("0")).code == expected

    def test_walk_stops_at_first_failure(self):
        """
        TEST: A higher rung is not reached past an unmet one.
        """
        ladder = [rung("A", 1), rung("B", 2, revenue="100"), rung("C", 3, referrals=5, revenue="100")]
        validate_ladder(ladder)

        assert determine_tier(ladder, 10, Decimal("0")).code == "A"

    def test_base_rung_when_nothing_satisfied(self):
        ladder = [rung("ENTRY", 1, referrals=1), rung("PRO", 2, referrals=5)]
        assert determine_tier(ladder, 0, Decimal("0")).code == "ENTRY"


# =============================================================================
# TEST CLASS: Ladder validation
# =============================================================================

class TestLadderValidation:

    def test_valid_ladder(self):
        validate_ladder(LADDER)

    @pytest.mark.parametrize("ladder", [
        [],
        [rung("A", 1), rung("B", 1)],
        [rung("A", 1), rung("A", 2)],
        [rung("A", 1, referrals=-1)],
        [rung("A", 1, referrals=10), rung("B", 2, referrals=5)],
        [rung("A", 1, revenue="100"), rung("B", 2, revenue="50")],
    ], ids=["empty", "duplicate-level", "duplicate-code", "negative", "referrals-decrease", "revenue-decrease"])
    def test_invalid_ladder(self, ladder):
        """
        TEST: Malformed ladders are a configuration error.
        """
        with pytest.raises(ConfigurationError):
            validate_ladder(ladder)

    def test_no_definitions_in_store(self, session):
        with pytest.raises(ConfigurationError):
            load_tier_ladder(session)

    def test_load_orders_by_level_and_skips_inactive(self, session, tier_ladder):
        session.add(TierDefinition(tier_code="RETIRED", tier_level=9, is_active=False,
                                   requirements={"min_referrals": 0}))
        session.commit()

        ladder = load_tier_ladder(session)

        assert [r.code for r in ladder] == ["SILVER", "GOLD", "DIAMOND"]
        assert ladder[1].bonus_rate == Decimal("0.02")
        assert ladder[1].lifetime_rate == Decimal("0.07")
        assert ladder[2].first_order_rate == Decimal("0.15")

    def test_malformed_requirement(self, session):
        session.add(TierDefinition(tier_code="BAD", tier_level=1,
                                   requirements={"min_revenue": "lots"}))
        session.commit()

        with pytest.raises(ConfigurationError):
            load_tier_ladder(session)


# =============================================================================
# TEST CLASS: Qualification and recalculation
# =============================================================================

class TestRecalculateTier:
    """Tests for TierService against the store."""

    def test_eleven_referrals_is_gold(self, session, partner, tier_ladder, make_record):
        """
        TEST: adjusted_referral_count=11 with SILVER/GOLD/DIAMOND -> GOLD.
        """
        for _ in range(11):
            make_record(partner, status="locked")

        result = asyncio.run(TierService(session).recalculateTier(partner.id))

        assert result["adjustedReferralCount"] == 11
        assert result["newTier"] == "GOLD"
        assert result["changed"] is True
        assert session.query(Partner).get(partner.id).current_tier == "GOLD"

    def test_pending_records_not_counted(self, session, partner, tier_ladder, make_record):
        """
        TEST: Partner with only pending records has 0 referrals.
        """
        for _ in range(15):
            make_record(partner, status="pending")

        qualification = asyncio.run(TierService(session).calculateQualification(partner.id))

        assert qualification.adjusted_referral_count == 0
        assert qualification.adjusted_revenue == Decimal("0")

    def test_distinct_customers(self, session, partner, tier_ladder, make_record):
        """
        TEST: Several orders of one customer count as one referral.
        """
        for _ in range(3):
            make_record(partner, status="paid", customer="F1-SAME", amount="1000000")

        qualification = asyncio.run(TierService(session).calculateQualification(partner.id))

        assert qualification.raw_referral_count == 1
        assert qualification.raw_revenue == Decimal("3000000")

    def test_adjustments_clamped_at_zero(self, session, partner, tier_ladder, make_record):
        """
        TEST: Adjustments larger than raw figures clamp to 0, never negative.
        """
        record = make_record(partner, status="locked", amount="1000000")
        session.add(StatsAdjustment(
            f0_id=partner.id, f0_code=partner.f0_code, commission_record_id=record.id,
            adjustment_type="INVOICE_CANCELLED_BEFORE_PAID",
            f1_adjustment=-5, revenue_adjustment=Decimal("-9000000"),
            commission_adjustment=Decimal("0")
        ))
        session.commit()

        qualification = asyncio.run(TierService(session).calculateQualification(partner.id))

        assert qualification.adjusted_referral_count == 0
        assert qualification.adjusted_revenue == Decimal("0")

    def test_recalculation_is_idempotent(self, session, partner, tier_ladder, make_record):
        """
        TEST: Second recalculation changes nothing and emits no event.
        """
        events = []

        async def capture(data):
            events.append(data)

        eventBus.subscribe(AffiliateEvents.TIER_CHANGED, capture)
        for _ in range(11):
            make_record(partner, status="locked")

        service = TierService(session)
        first = asyncio.run(service.recalculateTier(partner.id))
        second = asyncio.run(service.recalculateTier(partner.id))

        assert first["changed"] is True
        assert second["changed"] is False
        assert second["newTier"] == "GOLD"
        assert len(events) == 1
        assert events[0]["oldTier"] == "SILVER"
        assert events[0]["newTier"] == "GOLD"

    def test_recalculate_all(self, session, partner, other_partner, tier_ladder, make_record):
        for _ in range(31):
            make_record(other_partner, status="paid")

        stats = asyncio.run(TierService(session).recalculateAllTiers())

        assert stats == {"checked": 2, "updated": 1, "errors": 0}
        assert session.query(Partner).get(other_partner.id).current_tier == "DIAMOND"

    def test_progress_to_next_tier(self, session, partner, tier_ladder, make_record):
        for _ in range(5):
            make_record(partner, status="locked")

        progress = asyncio.run(TierService(session).getTierProgress(partner.id))

        assert progress["current"]["tier_code"] == "SILVER"
        assert progress["next"]["tier_code"] == "GOLD"
        assert progress["referralsToNextTier"] == 6
        assert len(progress["tierList"]) == 3

    def test_progress_at_top_tier(self, session, partner, tier_ladder, make_record):
        for _ in range(31):
            make_record(partner, status="locked")

        progress = asyncio.run(TierService(session).getTierProgress(partner.id))

        assert progress["current"]["tier_code"] == "DIAMOND"
        assert progress["next"] is None
        assert progress["referralsToNextTier"] == 0
