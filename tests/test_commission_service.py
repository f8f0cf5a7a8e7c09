# tests/test_commission_service.py
"""
Tests for commission calculation and order processing.

    total_commission = basic_amount + first_order_amount + tier_bonus_amount

First order: first-order rate, customer assigned to the partner for life.
Repeat order: lifetime rate at the tier recorded on the assignment.

Run:
    pytest tests/test_commission_service.py -v
"""
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from models import CommissionRecord, F1CustomerAssignment, VoucherTracking
from affiliate_system.config.settings import RateSetting
from affiliate_system.config.tiers import TierRung
from affiliate_system.errors import NotFoundError, ValidationError
from affiliate_system.services.commission_service import CommissionService, calculate_breakdown
from affiliate_system.utils.validators import parse_order_event


def process(session, payload):
    return asyncio.run(CommissionService(session).processOrder(parse_order_event(payload)))


SILVER = TierRung(code="SILVER", name="Silver", level=1, min_referrals=0,
                  min_revenue=Decimal("0"), bonus_rate=Decimal("0"))
FIRST_ORDER_10 = RateSetting(rate=Decimal("0.10"), min_order_value=Decimal("0"), max_commission=None)
LIFETIME_5 = RateSetting(rate=Decimal("0.05"), min_order_value=Decimal("0"), max_commission=None)


# =============================================================================
# TEST CLASS: Pure calculation
# =============================================================================

class TestCalculateBreakdown:
    """Tests for calculate_breakdown() without the store."""

    def test_first_order_uses_first_order_rate_only(self):
        """
        TEST: First order earns first-order rate, no basic component.
        """
        breakdown = calculate_breakdown(Decimal("2000000"), SILVER, True,
                                        basicSetting=LIFETIME_5, firstOrderSetting=FIRST_ORDER_10)

        assert breakdown.first_order_amount == Decimal("200000")
        assert breakdown.basic_amount == Decimal("0")
        assert breakdown.first_order_applied is True
        assert breakdown.total == Decimal("200000")

    def test_repeat_order_uses_lifetime_rate_only(self):
        """
        TEST: Repeat order earns lifetime rate, no first-order component.
        """
        breakdown = calculate_breakdown(Decimal("1000000"), SILVER, False,
                                        basicSetting=LIFETIME_5, firstOrderSetting=FIRST_ORDER_10)

        assert breakdown.basic_amount == Decimal("50000")
        assert breakdown.first_order_amount == Decimal("0")
        assert breakdown.total == Decimal("50000")

    def test_tier_overrides_take_precedence(self):
        """
        TEST: Rung lifetime/first-order rates override the settings table.
        """
        rung = TierRung(code="GOLD", name="Gold", level=2, min_referrals=11,
                        min_revenue=Decimal("0"), bonus_rate=Decimal("0.02"),
                        lifetime_rate=Decimal("0.07"), first_order_rate=Decimal("0.12"))

        first = calculate_breakdown(Decimal("1000000"), rung, True,
                                    basicSetting=LIFETIME_5, firstOrderSetting=FIRST_ORDER_10)
        repeat = calculate_breakdown(Decimal("1000000"), rung, False,
                                     basicSetting=LIFETIME_5, firstOrderSetting=FIRST_ORDER_10)

        assert first.first_order_amount == Decimal("120000")
        assert first.tier_bonus_amount == Decimal("20000")
        assert repeat.basic_amount == Decimal("70000")
        assert repeat.tier_bonus_amount == Decimal("20000")

    def test_components_rounded_before_summing(self):
        """
        TEST: Each component rounds half up; total is the sum of rounded parts.
        """
        rung = TierRung(code="X", name="X", level=1, min_referrals=0,
                        min_revenue=Decimal("0"), bonus_rate=Decimal("0.015"))

        breakdown = calculate_breakdown(Decimal("333333"), rung, True, firstOrderSetting=FIRST_ORDER_10)

        # 33333.3 -> 33333, 4999.995 -> 5000
        assert breakdown.first_order_amount == Decimal("33333")
        assert breakdown.tier_bonus_amount == Decimal("5000")
        assert breakdown.total == breakdown.basic_amount + breakdown.first_order_amount + breakdown.tier_bonus_amount

    def test_half_rounds_up(self):
        """
        TEST: 0.5 currency units round up.
        """
        breakdown = calculate_breakdown(Decimal("5"), SILVER, True, firstOrderSetting=FIRST_ORDER_10)
        assert breakdown.first_order_amount == Decimal("1")

    def test_first_order_below_minimum_skipped(self):
        """
        TEST: Invoice under min_order_value earns no first-order commission.
        """
        setting = RateSetting(rate=Decimal("0.10"), min_order_value=Decimal("500000"), max_commission=None)

        breakdown = calculate_breakdown(Decimal("400000"), SILVER, True, firstOrderSetting=setting)

        assert breakdown.first_order_amount == Decimal("0")
        assert breakdown.first_order_applied is False

    def test_first_order_capped(self):
        """
        TEST: max_commission caps the first-order component.
        """
        setting = RateSetting(rate=Decimal("0.10"), min_order_value=Decimal("0"), max_commission=Decimal("150000"))

        breakdown = calculate_breakdown(Decimal("2000000"), SILVER, True, firstOrderSetting=setting)

        assert breakdown.first_order_amount == Decimal("150000")

    def test_no_settings_means_zero_rates(self):
        """
        TEST: Without settings or overrides only the tier bonus applies.
        """
        breakdown = calculate_breakdown(Decimal("1000000"), SILVER, True)
        assert breakdown.total == Decimal("0")
        assert breakdown.first_order_applied is False


# =============================================================================
# TEST CLASS: processOrder - qualifying orders
# =============================================================================

class TestProcessOrder:
    """Tests for CommissionService.processOrder() on qualifying orders."""

    def test_first_order_scenario(self, session, engine_config, partner, make_order):
        """
        TEST: 2,000,000 first order at 10%, base tier -> 200,000 pending.
        """
        result = process(session, make_order(amount="2000000"))

        assert result["success"] is True
        assert result["created"] is True
        assert result["totalCommission"] == Decimal("200000")
        assert result["tierCode"] == "SILVER"

        record = session.query(CommissionRecord).get(result["commissionId"])
        assert record.status == "pending"
        assert record.is_new_customer is True
        assert record.first_order_amount == Decimal("200000")
        assert record.basic_amount == Decimal("0")
        assert record.tier_bonus_amount == Decimal("0")
        assert record.total_commission == Decimal("200000")

    def test_repeat_order_scenario(self, session, engine_config, partner, make_order):
        """
        TEST: Later 1,000,000 repeat order of the same customer at 5% lifetime.
        """
        process(session, make_order(amount="2000000", customer="F1-001"))
        result = process(session, make_order(amount="1000000", customer="F1-001", first=False))

        assert result["created"] is True
        assert result["isLifetimeCommission"] is True

        record = session.query(CommissionRecord).get(result["commissionId"])
        assert record.basic_amount == Decimal("50000")
        assert record.first_order_amount == Decimal("0")
        assert record.total_commission == Decimal("50000")

    def test_first_order_assigns_customer(self, session, engine_config, partner, make_order):
        """
        TEST: First order creates one assignment carrying the tier at that time.
        """
        process(session, make_order(customer="F1-777", customer_phone="+84 912 345 678"))

        assignment = session.query(F1CustomerAssignment).filter_by(f1_customer_id="F1-777").one()
        assert assignment.f0_id == partner.id
        assert assignment.tier_code == "SILVER"
        assert assignment.f1_phone == "0912345678"

    def test_repeat_order_keeps_assignment_tier(self, session, engine_config, partner, make_order, make_record):
        """
        TEST: Repeat order uses the tier recorded on the assignment,
        not the partner's current tier.
        """
        process(session, make_order(amount="1000000", customer="F1-LOYAL"))

        # Partner climbs to GOLD afterwards
        for _ in range(11):
            make_record(partner, status="locked")

        result = process(session, make_order(amount="1000000", customer="F1-LOYAL", first=False))

        record = session.query(CommissionRecord).get(result["commissionId"])
        assert record.tier_code == "SILVER"
        assert record.basic_amount == Decimal("50000")
        assert record.tier_bonus_amount == Decimal("0")

    def test_first_order_at_higher_tier_gets_bonus(self, session, engine_config, partner, make_order, make_record):
        """
        TEST: First order of a GOLD partner earns 10% first order + 2% tier bonus.
        """
        for _ in range(11):
            make_record(partner, status="locked")

        result = process(session, make_order(amount="1000000", customer="F1-NEW"))

        record = session.query(CommissionRecord).get(result["commissionId"])
        assert record.tier_code == "GOLD"
        assert record.first_order_amount == Decimal("100000")
        assert record.tier_bonus_amount == Decimal("20000")
        assert record.total_commission == Decimal("120000")

    def test_lock_date_is_qualified_plus_lock_period(self, session, engine_config, partner, make_order, frozen_time):
        """
        TEST: lock_date = qualified_at + 24h lock period.
        """
        result = process(session, make_order())

        record = session.query(CommissionRecord).get(result["commissionId"])
        assert record.qualified_at == frozen_time.now
        assert record.lock_date == frozen_time.now + timedelta(hours=24)
        assert result["lockDate"] == frozen_time.now + timedelta(hours=24)

    def test_idempotent_on_invoice_code(self, session, engine_config, partner, make_order):
        """
        TEST: Same invoice twice -> one record, second call reports it.
        """
        payload = make_order()
        first = process(session, payload)
        second = process(session, payload)

        assert first["created"] is True
        assert second["created"] is False
        assert second["commissionId"] == first["commissionId"]
        assert session.query(CommissionRecord).count() == 1

    def test_partner_by_numeric_id(self, session, engine_config, partner, make_order):
        """
        TEST: partner_reference may be the partner id.
        """
        result = process(session, make_order(partner_reference=str(partner.id)))
        assert result["created"] is True

    def test_voucher_linked_to_commission(self, session, engine_config, partner, make_order, make_voucher):
        """
        TEST: Redeemed voucher records the invoice and mirrors pending status.
        """
        voucher = make_voucher(partner)
        payload = make_order(voucher_code=voucher.code)

        result = process(session, payload)

        session.refresh(voucher)
        assert voucher.invoice_code == payload["invoice_code"]
        assert voucher.commission_record_id == result["commissionId"]
        assert voucher.commission_status == "pending"
        assert voucher.activation_status == "used"


# =============================================================================
# TEST CLASS: processOrder - rejected orders
# =============================================================================

class TestProcessOrderRejected:
    """Orders that do not produce a commission."""

    @pytest.mark.parametrize("overrides, reason", [
        ({"invoice_status": "cancelled"}, "INVOICE_CANCELLED"),
        ({"invoice_status": "processing"}, "INVOICE_NOT_COMPLETED"),
        ({"total_payment": "1000000"}, "INVOICE_NOT_FULLY_PAID"),
        ({"first": False}, "CUSTOMER_NOT_NEW"),
    ])
    def test_invalid_reason(self, session, engine_config, partner, make_order, overrides, reason):
        """
        TEST: Non-qualifying invoices are rejected with a reason code.
        """
        result = process(session, make_order(**overrides))

        assert result["success"] is False
        assert result["invalidReasonCode"] == reason
        assert session.query(CommissionRecord).count() == 0

    def test_inactive_partner(self, session, engine_config, partner, make_order):
        """
        TEST: Inactive partner earns nothing.
        """
        partner.is_active = False
        session.commit()

        result = process(session, make_order())
        assert result["invalidReasonCode"] == "PARTNER_INACTIVE"

    def test_customer_owned_by_other_partner(self, session, engine_config, partner, other_partner, make_order):
        """
        TEST: Customer assigned to another partner cannot be claimed.
        """
        process(session, make_order(customer="F1-SHARED", partner_reference=other_partner.f0_code))

        result = process(session, make_order(customer="F1-SHARED"))

        assert result["success"] is False
        assert result["invalidReasonCode"] == "CUSTOMER_OWNED_BY_OTHER_PARTNER"
        assert session.query(CommissionRecord).filter_by(f0_id=partner.id).count() == 0

    def test_rejection_marks_voucher_invalid(self, session, engine_config, partner, make_order, make_voucher):
        """
        TEST: Voucher on a rejected invoice gets commission_status=invalid.
        """
        voucher = make_voucher(partner)

        process(session, make_order(voucher_code=voucher.code, invoice_status="processing"))

        voucher = session.query(VoucherTracking).get(voucher.code)
        assert voucher.commission_status == "invalid"
        assert voucher.invalid_reason_code == "INVOICE_NOT_COMPLETED"

    def test_unknown_partner(self, session, engine_config, make_order):
        """
        TEST: Unknown partner raises NotFoundError.
        """
        with pytest.raises(NotFoundError):
            process(session, make_order(partner_reference="NOPE"))

    def test_voucher_of_other_partner(self, session, engine_config, partner, other_partner,
                                      make_order, make_voucher):
        """
        TEST: Voucher issued by another partner is a validation error.
        """
        voucher = make_voucher(other_partner)

        with pytest.raises(ValidationError):
            process(session, make_order(voucher_code=voucher.code))
