# affiliate_system/services/sync_service.py
"""
Commission sync - reconciles the external order source with local state.

Pass 1: vouchers redeemed on an invoice but without a commission record
        are re-evaluated (new commissions, or cancellation).
Pass 2: open commission records whose invoice was cancelled upstream
        go through the cancellation path.
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

from config import Config
from models.commission_record import CommissionRecord
from models.voucher_tracking import VoucherTracking
from affiliate_system.config.statuses import CommissionStatus, InvalidReason
from affiliate_system.errors import NotFoundError, ValidationError
from affiliate_system.services.cancellation_service import CancellationService
from affiliate_system.services.commission_service import CommissionService
from affiliate_system.sources.order_source import OrderSource
from affiliate_system.utils.time_machine import timeMachine
from affiliate_system.utils.validators import (
    CancellationEvent,
    parse_datetime,
    parse_order_event,
)

logger = logging.getLogger(__name__)

# Invalid vouchers that may qualify later (payment completed afterwards)
RECHECKABLE_REASONS = (
    InvalidReason.INVOICE_NOT_FULLY_PAID.value,
    InvalidReason.INVOICE_NOT_COMPLETED.value,
)


class CommissionSyncService:
    """Service for the periodic commission sync."""

    def __init__(self, session: Session, orderSource: OrderSource):
        self.session = session
        self.orderSource = orderSource

    def _batchSize(self, batchSize: Optional[int]) -> int:
        return batchSize or int(Config.get(Config.COMMISSION_SYNC_BATCH_SIZE, 50))

    def _isCancelled(self, payload: Dict[str, Any]) -> bool:
        return payload.get("invoice_status") == Config.get(Config.INVOICE_CANCELLED_STATUS, "cancelled")

    def _cancellationEvent(self, payload: Dict[str, Any]) -> CancellationEvent:
        cancelledAt = payload.get("cancelled_at")
        return CancellationEvent(
            invoice_code=payload["invoice_code"],
            cancelled_at=parse_datetime(cancelledAt, "cancelled_at") if cancelledAt else timeMachine.now,
        )

    async def runSync(self, batchSize: Optional[int] = None) -> Dict[str, Any]:
        vouchers = await self.syncVoucherInvoices(batchSize)
        cancellations = await self.syncCancelledInvoices(batchSize)
        return {"vouchers": vouchers, "cancellations": cancellations}

    async def syncVoucherInvoices(self, batchSize: Optional[int] = None) -> Dict[str, int]:
        """
        Re-evaluate vouchers with an invoice but no commission record.

        Returns:
            Stats dict: checked, created, invalid, cancelled, notFound, errors
        """
        stats = {"checked": 0, "created": 0, "invalid": 0, "cancelled": 0, "notFound": 0, "errors": 0}

        vouchers = self.session.query(VoucherTracking).filter(
            VoucherTracking.invoice_code.isnot(None),
            VoucherTracking.commission_record_id.is_(None),
            or_(
                VoucherTracking.commission_status.notin_(("invalid", "cancelled")),
                and_(
                    VoucherTracking.commission_status == "invalid",
                    VoucherTracking.invalid_reason_code.in_(RECHECKABLE_REASONS)
                )
            )
        ).order_by(VoucherTracking.updated_at.asc()).limit(self._batchSize(batchSize)).all()

        if not vouchers:
            logger.debug("Commission sync: no vouchers waiting")
            return stats

        invoices = await self.orderSource.fetchInvoices([v.invoice_code for v in vouchers])
        if invoices is None:
            logger.warning("Commission sync: order source unavailable, vouchers skipped")
            stats["errors"] += 1
            return stats

        for voucher in vouchers:
            stats["checked"] += 1
            payload = invoices.get(voucher.invoice_code)

            if payload is None:
                stats["notFound"] += 1
                continue

            try:
                if self._isCancelled(payload):
                    await CancellationService(self.session).cancelInvoice(
                        self._cancellationEvent(payload),
                        reason="Invoice cancelled upstream (sync)"
                    )
                    stats["cancelled"] += 1
                    continue

                payload = dict(payload)
                payload.setdefault("voucher_code", voucher.code)
                payload.setdefault("partner_reference", voucher.f0_code)

                result = await CommissionService(self.session).processOrder(
                    parse_order_event(payload)
                )
                if result.get("created"):
                    stats["created"] += 1
                elif not result.get("success"):
                    stats["invalid"] += 1

            except (ValidationError, NotFoundError) as e:
                logger.warning(f"Commission sync: voucher {voucher.code} skipped: {e}")
                stats["errors"] += 1

        logger.info(
            f"Commission sync (vouchers): checked={stats['checked']}, created={stats['created']}, "
            f"invalid={stats['invalid']}, cancelled={stats['cancelled']}, "
            f"notFound={stats['notFound']}, errors={stats['errors']}"
        )
        return stats

    async def syncCancelledInvoices(self, batchSize: Optional[int] = None) -> Dict[str, int]:
        """
        Cancel open commission records whose invoice was cancelled upstream.

        Returns:
            Stats dict: checked, cancelled, errors
        """
        stats = {"checked": 0, "cancelled": 0, "errors": 0}

        records = self.session.query(CommissionRecord).filter(
            CommissionRecord.status.in_((
                CommissionStatus.PENDING.value,
                CommissionStatus.LOCKED.value
            )),
            CommissionRecord.invoice_cancelled_at.is_(None)
        ).order_by(CommissionRecord.qualified_at.desc()).limit(self._batchSize(batchSize)).all()

        if not records:
            return stats

        invoices = await self.orderSource.fetchInvoices([r.invoice_code for r in records])
        if invoices is None:
            logger.warning("Commission sync: order source unavailable, cancellations skipped")
            stats["errors"] += 1
            return stats

        cancellationService = CancellationService(self.session)
        for record in records:
            stats["checked"] += 1
            payload = invoices.get(record.invoice_code)
            if not payload or not self._isCancelled(payload):
                continue

            try:
                result = await cancellationService.cancelInvoice(
                    self._cancellationEvent(payload),
                    reason="Invoice cancelled upstream (sync)"
                )
                if result.get("adjustmentId") and result.get("action") != "already_adjusted":
                    stats["cancelled"] += 1
            except (ValidationError, NotFoundError) as e:
                logger.warning(f"Commission sync: invoice {record.invoice_code} skipped: {e}")
                stats["errors"] += 1

        logger.info(
            f"Commission sync (cancellations): checked={stats['checked']}, "
            f"cancelled={stats['cancelled']}, errors={stats['errors']}"
        )
        return stats
