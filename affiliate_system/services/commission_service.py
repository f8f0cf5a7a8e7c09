# affiliate_system/services/commission_service.py
"""
Commission calculation service - creates commission records from orders.

Two kinds of qualifying order:
- first order of a new referred customer: first-order rate + tier bonus,
  and the customer is assigned to the partner for life
- repeat order of an already assigned customer: lifetime (basic) rate +
  tier bonus, at the tier recorded when the customer was assigned
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from config import Config
from models.partner import Partner
from models.voucher_tracking import VoucherTracking
from models.commission_record import CommissionRecord
from models.f1_assignment import F1CustomerAssignment
from affiliate_system.config.settings import (
    RateSetting,
    load_lock_period,
    load_rate_setting,
    APPLIES_TO_ALL,
    APPLIES_TO_FIRST_ORDER,
)
from affiliate_system.config.statuses import CommissionStatus, InvalidReason
from affiliate_system.config.tiers import TierRung, load_tier_ladder, find_rung, base_rung
from affiliate_system.errors import NotFoundError, ValidationError
from affiliate_system.services.tier_service import TierService
from affiliate_system.utils.money import ZERO, quantize_money
from affiliate_system.utils.time_machine import timeMachine
from affiliate_system.utils.validators import OrderEvent

logger = logging.getLogger(__name__)


@dataclass
class CommissionBreakdown:
    """Per-component amounts, each rounded to currency precision."""
    basic_rate: Decimal
    basic_amount: Decimal
    first_order_rate: Decimal
    first_order_amount: Decimal
    first_order_applied: bool
    tier_code: str
    tier_bonus_rate: Decimal
    tier_bonus_amount: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.basic_amount + self.first_order_amount

    @property
    def total(self) -> Decimal:
        return self.basic_amount + self.first_order_amount + self.tier_bonus_amount


def _capped(amount: Decimal, cap: Optional[Decimal]) -> Decimal:
    if cap is not None and cap > ZERO and amount > cap:
        return cap
    return amount


def calculate_breakdown(
        invoiceAmount: Decimal,
        rung: TierRung,
        isFirstOrder: bool,
        basicSetting: Optional[RateSetting] = None,
        firstOrderSetting: Optional[RateSetting] = None
) -> CommissionBreakdown:
    """
    Compute commission components for one invoice.

    - basic: lifetime rate on repeat orders only
    - first order: first-order rate on the customer's first order, skipped
      below min_order_value, capped at max_commission
    - tier bonus: rung's bonus rate on every qualifying order
    """
    basicRate = ZERO
    basicAmount = ZERO
    firstOrderRate = ZERO
    firstOrderAmount = ZERO
    firstOrderApplied = False

    if isFirstOrder:
        if rung.first_order_rate is not None:
            firstOrderRate = rung.first_order_rate
        elif firstOrderSetting:
            firstOrderRate = firstOrderSetting.rate

        minOrder = firstOrderSetting.min_order_value if firstOrderSetting else ZERO
        if invoiceAmount >= minOrder:
            cap = firstOrderSetting.max_commission if firstOrderSetting else None
            firstOrderAmount = quantize_money(_capped(invoiceAmount * firstOrderRate, cap))
            firstOrderApplied = firstOrderRate > ZERO
        else:
            logger.info(
                f"First-order commission skipped: invoice {invoiceAmount} "
                f"< minimum {minOrder}"
            )
    else:
        if rung.lifetime_rate is not None:
            basicRate = rung.lifetime_rate
        elif basicSetting:
            basicRate = basicSetting.rate

        cap = basicSetting.max_commission if basicSetting else None
        basicAmount = quantize_money(_capped(invoiceAmount * basicRate, cap))

    tierBonusAmount = quantize_money(invoiceAmount * rung.bonus_rate)

    return CommissionBreakdown(
        basic_rate=basicRate,
        basic_amount=basicAmount,
        first_order_rate=firstOrderRate,
        first_order_amount=firstOrderAmount,
        first_order_applied=firstOrderApplied,
        tier_code=rung.code,
        tier_bonus_rate=rung.bonus_rate,
        tier_bonus_amount=tierBonusAmount,
    )


class CommissionService:
    """Service for creating commission records from qualifying orders."""

    def __init__(self, session: Session):
        self.session = session

    async def processOrder(self, event: OrderEvent) -> Dict[str, Any]:
        """
        Process one order-ingestion event.
        Idempotent on invoice_code.

        Returns:
            {"success": True, "created": bool, "commissionId", ...} or
            {"success": False, "invalidReasonCode", "invalidReasonText"}

        Raises:
            NotFoundError: Unknown partner
            ValidationError: Voucher belongs to another partner
            ConfigurationError: Tier ladder or lock settings missing
        """
        existing = self.session.query(CommissionRecord).filter_by(
            invoice_code=event.invoice_code
        ).first()

        if existing:
            logger.info(
                f"Invoice {event.invoice_code} already has commission {existing.id} "
                f"({existing.status}), skipping"
            )
            return {
                "success": True,
                "created": False,
                "commissionId": existing.id,
                "status": existing.status,
                "totalCommission": existing.total_commission,
            }

        partner = self._findPartner(event.partner_reference)
        voucher = self._attachVoucher(event, partner)

        # ═══════════════════════════════════════════════════════════
        # VALIDATION
        # ═══════════════════════════════════════════════════════════
        if not partner.is_active:
            return self._reject(voucher, InvalidReason.PARTNER_INACTIVE,
                                f"Partner {partner.f0_code} is inactive")

        cancelledStatus = Config.get(Config.INVOICE_CANCELLED_STATUS, "cancelled")
        completedStatus = Config.get(Config.INVOICE_COMPLETED_STATUS, "completed")

        if event.invoice_status == cancelledStatus:
            return self._reject(voucher, InvalidReason.INVOICE_CANCELLED,
                                f"Invoice {event.invoice_code} is cancelled")

        if event.invoice_status != completedStatus:
            return self._reject(voucher, InvalidReason.INVOICE_NOT_COMPLETED,
                                f"Invoice status is '{event.invoice_status}'")

        if not event.is_fully_paid:
            return self._reject(
                voucher, InvalidReason.INVOICE_NOT_FULLY_PAID,
                f"Invoice total {event.invoice_amount}, paid {event.total_payment}"
            )

        # ═══════════════════════════════════════════════════════════
        # CLASSIFICATION: first order or lifetime
        # ═══════════════════════════════════════════════════════════
        assignment = self._findAssignment(event)
        ladder = load_tier_ladder(self.session)

        if assignment and assignment.f0_id != partner.id:
            return self._reject(
                voucher, InvalidReason.CUSTOMER_OWNED_BY_OTHER_PARTNER,
                f"Customer {event.referred_customer_reference} belongs to {assignment.f0_code}"
            )

        if assignment:
            isFirstOrder = False
            rung = find_rung(ladder, assignment.tier_code) or base_rung(ladder)
        elif event.is_first_order:
            isFirstOrder = True
            rung = await TierService(self.session).computeTier(partner.id, ladder)
        else:
            return self._reject(
                voucher, InvalidReason.CUSTOMER_NOT_NEW,
                f"Customer {event.referred_customer_reference} is not new "
                f"and not assigned to {partner.f0_code}"
            )

        # ═══════════════════════════════════════════════════════════
        # CALCULATION
        # ═══════════════════════════════════════════════════════════
        breakdown = calculate_breakdown(
            event.invoice_amount,
            rung,
            isFirstOrder,
            basicSetting=load_rate_setting(self.session, APPLIES_TO_ALL),
            firstOrderSetting=load_rate_setting(self.session, APPLIES_TO_FIRST_ORDER),
        )

        qualifiedAt = timeMachine.now
        lockDate = qualifiedAt + load_lock_period(self.session)

        record = CommissionRecord(
            f0_id=partner.id,
            f0_code=partner.f0_code,
            voucher_code=voucher.code if voucher else None,
            f1_customer_id=event.referred_customer_reference,
            f1_phone=event.customer_phone,
            f1_name=event.customer_name,
            invoice_id=event.invoice_id,
            invoice_code=event.invoice_code,
            invoice_amount=event.invoice_amount,
            invoice_date=event.invoice_date,
            invoice_status=event.invoice_status,
            is_new_customer=isFirstOrder,
            is_lifetime_commission=not isFirstOrder,
            basic_rate=breakdown.basic_rate,
            basic_amount=breakdown.basic_amount,
            first_order_rate=breakdown.first_order_rate,
            first_order_amount=breakdown.first_order_amount,
            first_order_applied=breakdown.first_order_applied,
            tier_code=breakdown.tier_code,
            tier_bonus_rate=breakdown.tier_bonus_rate,
            tier_bonus_amount=breakdown.tier_bonus_amount,
            subtotal_commission=breakdown.subtotal,
            total_commission=breakdown.total,
            status=CommissionStatus.PENDING.value,
            qualified_at=qualifiedAt,
            lock_date=lockDate,
        )
        self.session.add(record)

        if isFirstOrder:
            self._assignCustomer(event, partner, rung, voucher)

        self.session.flush()

        if voucher:
            voucher.commission_record_id = record.id
            voucher.commission_status = CommissionStatus.PENDING.value
            voucher.invalid_reason_code = None
            voucher.invalid_reason_text = None
            voucher.activation_status = "used"

        logger.info(
            f"Commission {record.id} created for {partner.f0_code}, invoice {event.invoice_code}: "
            f"{'first order' if isFirstOrder else 'lifetime'} "
            f"basic={breakdown.basic_amount} first_order={breakdown.first_order_amount} "
            f"tier_bonus={breakdown.tier_bonus_amount} total={breakdown.total}, "
            f"locks at {lockDate.isoformat()}"
        )

        return {
            "success": True,
            "created": True,
            "commissionId": record.id,
            "status": record.status,
            "isLifetimeCommission": not isFirstOrder,
            "tierCode": breakdown.tier_code,
            "totalCommission": breakdown.total,
            "lockDate": lockDate,
        }

    # ═══════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════

    def _findPartner(self, reference: str) -> Partner:
        """Partner by f0_code, or by numeric id."""
        partner = self.session.query(Partner).filter_by(f0_code=reference).first()
        if not partner and reference.isdigit():
            partner = self.session.query(Partner).filter_by(id=int(reference)).first()
        if not partner:
            raise NotFoundError(f"Partner '{reference}' not found")
        return partner

    def _attachVoucher(self, event: OrderEvent, partner: Partner) -> Optional[VoucherTracking]:
        """Record invoice details on the redeemed voucher."""
        if not event.voucher_code:
            return None

        voucher = self.session.query(VoucherTracking).filter_by(code=event.voucher_code).first()
        if not voucher:
            logger.warning(f"Voucher {event.voucher_code} not tracked, continuing without it")
            return None

        if voucher.f0_id != partner.id:
            raise ValidationError(
                f"Voucher {voucher.code} belongs to {voucher.f0_code}, "
                f"not {partner.f0_code}"
            )

        voucher.invoice_id = event.invoice_id
        voucher.invoice_code = event.invoice_code
        voucher.invoice_amount = event.invoice_amount
        voucher.invoice_status = event.invoice_status
        return voucher

    def _findAssignment(self, event: OrderEvent) -> Optional[F1CustomerAssignment]:
        assignment = self.session.query(F1CustomerAssignment).filter_by(
            f1_customer_id=event.referred_customer_reference,
            is_active=True
        ).first()

        if not assignment and event.customer_phone:
            assignment = self.session.query(F1CustomerAssignment).filter_by(
                f1_phone=event.customer_phone,
                is_active=True
            ).first()

        return assignment

    def _assignCustomer(
            self,
            event: OrderEvent,
            partner: Partner,
            rung: TierRung,
            voucher: Optional[VoucherTracking]
    ):
        assignment = F1CustomerAssignment(
            f1_customer_id=event.referred_customer_reference,
            f1_phone=event.customer_phone,
            f1_name=event.customer_name,
            f0_id=partner.id,
            f0_code=partner.f0_code,
            tier_code=rung.code,
            first_voucher_code=voucher.code if voucher else None,
            first_invoice_code=event.invoice_code,
            first_invoice_date=event.invoice_date,
            assigned_at=timeMachine.now,
        )
        self.session.add(assignment)
        logger.info(
            f"Customer {event.referred_customer_reference} assigned to "
            f"{partner.f0_code} at tier {rung.code}"
        )

    def _reject(
            self,
            voucher: Optional[VoucherTracking],
            reason: InvalidReason,
            text: str
    ) -> Dict[str, Any]:
        logger.info(f"Order not eligible for commission: {reason.value} ({text})")

        if voucher:
            voucher.commission_status = "invalid"
            voucher.invalid_reason_code = reason.value
            voucher.invalid_reason_text = text

        return {
            "success": False,
            "created": False,
            "invalidReasonCode": reason.value,
            "invalidReasonText": text,
        }
