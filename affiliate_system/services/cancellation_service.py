# affiliate_system/services/cancellation_service.py
"""
Invoice cancellation handling.

- pending/locked record: status -> cancelled,
  one INVOICE_CANCELLED_BEFORE_PAID adjustment
- paid record: status stays paid, flagged invoice_cancelled_after_paid,
  one INVOICE_CANCELLED_AFTER_PAID adjustment

Every adjustment carries negative revenue and commission deltas. The
referral delta is -1 only when no other live record remains for the
same customer and partner.
"""
from typing import Any, Dict
import logging

from sqlalchemy.orm import Session

from models.commission_record import CommissionRecord
from models.stats_adjustment import StatsAdjustment
from models.voucher_tracking import VoucherTracking
from affiliate_system.config.statuses import AdjustmentType, CommissionStatus, InvalidReason
from affiliate_system.errors import NotFoundError
from affiliate_system.services.tier_service import TierService
from affiliate_system.services.transition_service import TransitionService
from affiliate_system.utils.time_machine import timeMachine
from affiliate_system.utils.validators import CancellationEvent

logger = logging.getLogger(__name__)

# A lost race re-reads the record and tries again from its new status
MAX_TRANSITION_ATTEMPTS = 3


class CancellationService:
    """Service for processing invoice cancellations."""

    def __init__(self, session: Session):
        self.session = session
        self.transitions = TransitionService(session)

    async def cancelInvoice(self, event: CancellationEvent, reason: str = None) -> Dict[str, Any]:
        """
        Apply an invoice cancellation.
        Idempotent: a second call for the same invoice changes nothing.

        Returns:
            Result dict with "action" describing what happened

        Raises:
            NotFoundError: No commission record or voucher for the invoice
        """
        reason = reason or f"Invoice {event.invoice_code} cancelled"

        record = self.session.query(CommissionRecord).filter_by(
            invoice_code=event.invoice_code
        ).first()

        if not record:
            return self._invalidateVoucherOnly(event)

        existing = self.session.query(StatsAdjustment).filter_by(
            commission_record_id=record.id
        ).first()
        if existing:
            logger.info(
                f"Invoice {event.invoice_code} already adjusted "
                f"({existing.adjustment_type}), skipping"
            )
            return {
                "success": True,
                "action": "already_adjusted",
                "commissionId": record.id,
                "adjustmentId": existing.id,
            }

        adjustment = None
        for attempt in range(MAX_TRANSITION_ATTEMPTS):
            if record.status == CommissionStatus.PAID.value:
                adjustment = self._cancelAfterPaid(record, event, reason)
                break

            if record.status == CommissionStatus.CANCELLED.value:
                logger.warning(
                    f"Commission {record.id} already cancelled without adjustment, skipping"
                )
                break

            cancelled = await self.transitions.applyTransition(
                record,
                CommissionStatus.CANCELLED,
                cancelled_at=timeMachine.now,
                cancelled_reason=reason,
                invoice_cancelled_at=event.cancelled_at,
            )
            if cancelled:
                adjustment = self._writeAdjustment(
                    record, AdjustmentType.INVOICE_CANCELLED_BEFORE_PAID, reason
                )
                break

            logger.info(
                f"Retrying cancellation of commission {record.id} "
                f"from status {record.status} (attempt {attempt + 2})"
            )

        if adjustment is None:
            return {"success": True, "action": "no_change", "commissionId": record.id}

        self._markVoucherCancelled(record)
        self.session.flush()

        tierResult = await TierService(self.session).recalculateTier(record.f0_id)

        logger.info(
            f"Invoice {event.invoice_code} cancelled: commission {record.id} "
            f"now {record.status}, adjustment {adjustment.adjustment_type} "
            f"(f1={adjustment.f1_adjustment}, revenue={adjustment.revenue_adjustment}, "
            f"commission={adjustment.commission_adjustment})"
        )

        return {
            "success": True,
            "action": adjustment.adjustment_type,
            "commissionId": record.id,
            "status": record.status,
            "adjustmentId": adjustment.id,
            "f1Adjustment": adjustment.f1_adjustment,
            "revenueAdjustment": adjustment.revenue_adjustment,
            "commissionAdjustment": adjustment.commission_adjustment,
            "tier": tierResult["newTier"],
        }

    # ═══════════════════════════════════════════════════════════════════
    # PATHS
    # ═══════════════════════════════════════════════════════════════════

    def _cancelAfterPaid(
            self,
            record: CommissionRecord,
            event: CancellationEvent,
            reason: str
    ) -> StatsAdjustment:
        """Payout already happened: keep status paid, flag and compensate."""
        record.invoice_cancelled_after_paid = True
        record.invoice_cancelled_at = event.cancelled_at
        record.notes = reason

        logger.warning(
            f"Invoice {record.invoice_code} cancelled after payout of "
            f"{record.total_commission} to {record.f0_code}"
        )
        return self._writeAdjustment(record, AdjustmentType.INVOICE_CANCELLED_AFTER_PAID, reason)

    def _writeAdjustment(
            self,
            record: CommissionRecord,
            adjustmentType: AdjustmentType,
            reason: str
    ) -> StatsAdjustment:
        wasUnique = self._isLastLiveRecordForCustomer(record)

        adjustment = StatsAdjustment(
            f0_id=record.f0_id,
            f0_code=record.f0_code,
            commission_record_id=record.id,
            invoice_code=record.invoice_code,
            voucher_code=record.voucher_code,
            f1_customer_id=record.f1_customer_id,
            adjustment_type=adjustmentType.value,
            adjustment_reason=reason,
            f1_adjustment=-1 if wasUnique else 0,
            f1_was_unique=wasUnique,
            revenue_adjustment=-record.invoice_amount,
            commission_adjustment=-record.total_commission,
            commission_was_paid=adjustmentType == AdjustmentType.INVOICE_CANCELLED_AFTER_PAID,
            created_at=timeMachine.now,
        )
        self.session.add(adjustment)
        self.session.flush()
        return adjustment

    def _isLastLiveRecordForCustomer(self, record: CommissionRecord) -> bool:
        """No other non-cancelled record for this customer and partner."""
        if not record.f1_customer_id:
            return True

        others = self.session.query(CommissionRecord).filter(
            CommissionRecord.f0_id == record.f0_id,
            CommissionRecord.f1_customer_id == record.f1_customer_id,
            CommissionRecord.id != record.id,
            CommissionRecord.status != CommissionStatus.CANCELLED.value,
            CommissionRecord.invoice_cancelled_after_paid == False  # noqa: E712
        ).count()
        return others == 0

    def _markVoucherCancelled(self, record: CommissionRecord):
        if not record.voucher_code:
            return
        voucher = self.session.query(VoucherTracking).filter_by(code=record.voucher_code).first()
        if not voucher:
            return

        voucher.invoice_status = "cancelled"
        if record.status == CommissionStatus.CANCELLED.value:
            voucher.commission_status = CommissionStatus.CANCELLED.value
            voucher.invalid_reason_code = InvalidReason.INVOICE_CANCELLED.value
            voucher.invalid_reason_text = record.cancelled_reason

    def _invalidateVoucherOnly(self, event: CancellationEvent) -> Dict[str, Any]:
        """Cancellation for an invoice that never produced a commission."""
        voucher = self.session.query(VoucherTracking).filter_by(
            invoice_code=event.invoice_code
        ).first()

        if not voucher:
            raise NotFoundError(f"No commission or voucher for invoice {event.invoice_code}")

        voucher.invoice_status = "cancelled"
        voucher.commission_status = "invalid"
        voucher.invalid_reason_code = InvalidReason.INVOICE_CANCELLED.value
        voucher.invalid_reason_text = f"Invoice {event.invoice_code} cancelled"

        logger.info(f"Invoice {event.invoice_code} cancelled before commission, voucher {voucher.code} invalidated")
        return {"success": True, "action": "voucher_invalidated", "voucherCode": voucher.code}
