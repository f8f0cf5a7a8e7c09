# affiliate_system/services/transition_service.py
"""
Commission status transitions.

Every status change goes through applyTransition(): the move is validated
against the status table, then written as

    UPDATE commission_records SET status = :target, ...
    WHERE id = :id AND status = :expected

and the affected-row count is checked. A concurrent writer that got there
first leaves the count at 0 and this call becomes a no-op.
"""
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from models.commission_record import CommissionRecord
from models.voucher_tracking import VoucherTracking
from affiliate_system.config.statuses import CommissionStatus, validate_transition
from affiliate_system.errors import InvalidTransitionError
from affiliate_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class TransitionService:
    """Single entry point for commission status changes."""

    def __init__(self, session: Session):
        self.session = session

    async def applyTransition(
            self,
            record: CommissionRecord,
            target: CommissionStatus,
            **fields: Any
    ) -> bool:
        """
        Move record to target status, setting extra columns atomically.

        Args:
            record: Commission record (refreshed after the update)
            target: Target status
            **fields: Extra columns to set in the same UPDATE

        Returns:
            True if this call performed the transition. False if the move is
            not allowed from the current status or another writer won.
        """
        try:
            source = validate_transition(record.status, target)
        except InvalidTransitionError as e:
            logger.warning(
                f"Commission {record.id} ({record.invoice_code}): {e.message}, skipped"
            )
            return False

        # Pending ORM changes must reach the store before the bulk UPDATE
        self.session.flush()

        values: Dict[str, Any] = {
            "status": target.value,
            "updated_at": timeMachine.now,
        }
        values.update(fields)

        updated = self.session.query(CommissionRecord).filter(
            CommissionRecord.id == record.id,
            CommissionRecord.status == source.value
        ).update(values, synchronize_session=False)

        self.session.refresh(record)

        if updated == 0:
            logger.warning(
                f"Commission {record.id} ({record.invoice_code}) changed concurrently: "
                f"expected {source.value}, now {record.status}. "
                f"Transition to {target.value} skipped"
            )
            return False

        self._mirrorVoucherStatus(record)

        logger.info(
            f"Commission {record.id} ({record.invoice_code}): "
            f"{source.value} -> {target.value}"
        )
        return True

    def _mirrorVoucherStatus(self, record: CommissionRecord):
        """Keep voucher_affiliate_tracking.commission_status in step."""
        if not record.voucher_code:
            return

        voucher = self.session.query(VoucherTracking).filter_by(
            code=record.voucher_code
        ).first()

        if voucher and voucher.commission_record_id == record.id:
            voucher.commission_status = record.status
