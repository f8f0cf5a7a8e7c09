# affiliate_system/events/setup.py
"""
Setup affiliate event handlers.
Register all event handlers with the event bus.
"""
import logging

from affiliate_system.events.event_bus import eventBus, AffiliateEvents
from affiliate_system.events.handlers import (
    handle_order_received,
    handle_invoice_cancelled,
    log_tier_changed,
    log_commission_locked,
    log_commission_paid,
)

logger = logging.getLogger(__name__)

_SUBSCRIPTIONS = [
    (AffiliateEvents.ORDER_RECEIVED, handle_order_received),
    (AffiliateEvents.INVOICE_CANCELLED, handle_invoice_cancelled),
    (AffiliateEvents.TIER_CHANGED, log_tier_changed),
    (AffiliateEvents.COMMISSION_LOCKED, log_commission_locked),
    (AffiliateEvents.COMMISSION_PAID, log_commission_paid),
]


def setup_affiliate_event_handlers():
    """
    Register all affiliate event handlers with the event bus.

    This function should be called during application startup.
    """
    logger.info("Setting up affiliate event handlers...")

    for event, handler in _SUBSCRIPTIONS:
        eventBus.subscribe(event, handler)
        logger.debug(f"Registered {handler.__name__} for {event}")

    logger.info("Affiliate event handlers registered successfully")


def teardown_affiliate_event_handlers():
    """
    Unregister all affiliate event handlers.
    Useful for testing or shutdown.
    """
    logger.info("Tearing down affiliate event handlers...")

    for event, handler in _SUBSCRIPTIONS:
        eventBus.unsubscribe(event, handler)

    logger.info("Affiliate event handlers unregistered")
