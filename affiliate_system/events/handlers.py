# affiliate_system/events/handlers.py
"""
Event handlers for the affiliate engine.
Process inbound events from the event bus, one unit of work each.
"""
import logging
from typing import Any, Dict

from config import ConfigurationError
from core.db import get_db_session_ctx
from affiliate_system.errors import AffiliateError
from affiliate_system.services.commission_service import CommissionService
from affiliate_system.services.cancellation_service import CancellationService
from affiliate_system.utils.validators import parse_order_event, parse_cancellation_event

logger = logging.getLogger(__name__)


def _configuration_failure(error: ConfigurationError) -> Dict[str, Any]:
    return {"success": False, "error": str(error), "code": ConfigurationError.code}


async def handle_order_received(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle ORDER_RECEIVED event.

    Validates the payload and creates a pending commission record when the
    invoice qualifies. Errors with a code are returned, not raised.

    Args:
        data: Order-ingestion payload
    """
    try:
        event = parse_order_event(data)
    except AffiliateError as e:
        logger.warning(f"ORDER_RECEIVED rejected: {e.message}")
        return e.to_dict()

    logger.info(f"Processing order {event.invoice_code} for partner {event.partner_reference}")

    try:
        with get_db_session_ctx() as session:
            result = await CommissionService(session).processOrder(event)
    except AffiliateError as e:
        logger.warning(f"Order {event.invoice_code} not processed: {e.message}")
        return e.to_dict()
    except ConfigurationError as e:
        logger.error(f"Order {event.invoice_code} not processed: {e}")
        return _configuration_failure(e)

    if result.get("created"):
        logger.info(f"✓ Commission created for invoice {event.invoice_code}")
    return result


async def handle_invoice_cancelled(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle INVOICE_CANCELLED event.

    Args:
        data: {"invoice_code", "cancelled_at"}
    """
    try:
        event = parse_cancellation_event(data)
    except AffiliateError as e:
        logger.warning(f"INVOICE_CANCELLED rejected: {e.message}")
        return e.to_dict()

    logger.info(f"Processing cancellation of invoice {event.invoice_code}")

    try:
        with get_db_session_ctx() as session:
            result = await CancellationService(session).cancelInvoice(event)
    except AffiliateError as e:
        logger.warning(f"Cancellation of {event.invoice_code} not processed: {e.message}")
        return e.to_dict()
    except ConfigurationError as e:
        logger.error(f"Cancellation of {event.invoice_code} not processed: {e}")
        return _configuration_failure(e)

    logger.info(f"✓ Invoice {event.invoice_code} cancellation: {result.get('action')}")
    return result


async def log_tier_changed(data: Dict[str, Any]):
    logger.info(
        f"🏅 Partner {data.get('f0Code')} tier changed: "
        f"{data.get('oldTier')} -> {data.get('newTier')}"
    )


async def log_commission_locked(data: Dict[str, Any]):
    logger.info(
        f"🔒 {len(data.get('commissionIds', []))} commissions locked "
        f"for {data.get('commissionMonth')}"
    )


async def log_commission_paid(data: Dict[str, Any]):
    logger.info(
        f"💰 Payment batch {data.get('batchId')} paid "
        f"{len(data.get('partners', []))} partners for {data.get('paymentMonth')}"
    )
