# affiliate_system/events/event_bus.py
"""
In-process async event bus for the affiliate engine.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class AffiliateEvents:
    """Event names."""
    ORDER_RECEIVED = "affiliate.order_received"
    INVOICE_CANCELLED = "affiliate.invoice_cancelled"
    COMMISSION_LOCKED = "affiliate.commission_locked"
    COMMISSION_PAID = "affiliate.commission_paid"
    TIER_CHANGED = "affiliate.tier_changed"


class EventBus:
    """
    Subscribe async handlers to named events.

    Handlers run sequentially in subscription order. A failing handler is
    logged and does not stop the others.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler):
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event: str, handler: Handler):
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self):
        self._handlers.clear()

    def handlerCount(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, data: Dict[str, Any]) -> List[Any]:
        """
        Emit event to all subscribers.

        Returns:
            Handler results in subscription order (None for failed handlers)
        """
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            logger.debug(f"No handlers for event {event}")
            return []

        results = []
        for handler in handlers:
            try:
                results.append(await handler(data))
            except Exception as e:
                logger.error(
                    f"Handler {handler.__name__} failed for event {event}: {e}",
                    exc_info=True
                )
                results.append(None)
        return results


eventBus = EventBus()
