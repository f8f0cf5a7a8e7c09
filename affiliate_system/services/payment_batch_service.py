# affiliate_system/services/payment_batch_service.py
"""
Payment batches - administrative payout of locked commissions.

One batch pays every locked, unpaid record of a commission month.
Records move locked -> paid through the transition service, so a record
cancelled mid-batch is skipped rather than paid.
"""
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from models.commission_record import CommissionRecord
from models.payment_batch import PaymentBatch
from affiliate_system.config.statuses import CommissionStatus, PaymentBatchStatus
from affiliate_system.errors import NotFoundError, ValidationError
from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.services.transition_service import TransitionService
from affiliate_system.utils.money import ZERO
from affiliate_system.utils.time_machine import timeMachine
from affiliate_system.utils.validators import parse_month

logger = logging.getLogger(__name__)


class PaymentBatchService:
    """Service for creating and inspecting payment batches."""

    def __init__(self, session: Session):
        self.session = session
        self.transitions = TransitionService(session)

    async def processPaymentBatch(
            self,
            paymentMonth: str,
            adminUserId: str,
            adminUserName: Optional[str] = None,
            notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Pay all locked commissions of a month.

        Raises:
            ValidationError: Bad month or missing admin id
            NotFoundError: No locked commissions for the month
        """
        paymentMonth = parse_month(paymentMonth)
        if not adminUserId:
            raise ValidationError("admin_user_id is required")

        records = self.session.query(CommissionRecord).filter(
            CommissionRecord.status == CommissionStatus.LOCKED.value,
            CommissionRecord.commission_month == paymentMonth,
            CommissionRecord.payment_batch_id.is_(None)
        ).order_by(CommissionRecord.f0_id, CommissionRecord.id).all()

        if not records:
            raise NotFoundError(f"No locked commissions for {paymentMonth}")

        now = timeMachine.now
        batch = PaymentBatch(
            payment_month=paymentMonth,
            payment_date=now,
            status=PaymentBatchStatus.OPEN.value,
            created_by=str(adminUserId),
            created_by_name=adminUserName,
            notes=notes,
            created_at=now,
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            f"Payment batch {batch.id} for {paymentMonth}: "
            f"{len(records)} locked commissions, created by {adminUserName or adminUserId}"
        )

        perPartner: Dict[int, Dict[str, Any]] = {}
        total = ZERO
        skipped = 0

        for record in records:
            paid = await self.transitions.applyTransition(
                record,
                CommissionStatus.PAID,
                paid_at=now,
                paid_by=str(adminUserId),
                payment_batch_id=batch.id,
            )
            if not paid:
                skipped += 1
                continue

            amount = Decimal(record.total_commission or 0)
            total += amount
            entry = perPartner.setdefault(record.f0_id, {
                "f0Id": record.f0_id,
                "f0Code": record.f0_code,
                "amount": ZERO,
                "count": 0,
            })
            entry["amount"] += amount
            entry["count"] += 1

        batch.total_f0_count = len(perPartner)
        batch.total_commission = total
        batch.status = PaymentBatchStatus.COMPLETED.value
        batch.completed_at = timeMachine.now
        self.session.flush()

        if perPartner:
            await eventBus.emit(AffiliateEvents.COMMISSION_PAID, {
                "batchId": batch.id,
                "paymentMonth": paymentMonth,
                "partners": list(perPartner.values()),
            })

        logger.info(
            f"Payment batch {batch.id} completed: {len(perPartner)} partners, "
            f"total {total}, {skipped} skipped"
        )

        return {
            "success": True,
            "batchId": batch.id,
            "paymentMonth": paymentMonth,
            "totalF0Count": batch.total_f0_count,
            "totalCommission": total,
            "totalRecords": len(records) - skipped,
            "skipped": skipped,
            "partners": list(perPartner.values()),
        }

    async def getBatchSummary(self, batchId: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown batch
        """
        batch = self.session.query(PaymentBatch).filter_by(id=batchId).first()
        if not batch:
            raise NotFoundError(f"Payment batch {batchId} not found")

        recordCount = self.session.query(CommissionRecord).filter_by(
            payment_batch_id=batch.id
        ).count()

        return {
            "batchId": batch.id,
            "paymentMonth": batch.payment_month,
            "paymentDate": batch.payment_date,
            "status": batch.status,
            "totalF0Count": batch.total_f0_count,
            "totalCommission": batch.total_commission,
            "recordCount": recordCount,
            "createdBy": batch.created_by,
            "createdByName": batch.created_by_name,
            "notes": batch.notes,
            "completedAt": batch.completed_at,
        }
