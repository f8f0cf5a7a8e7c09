# affiliate_system/utils/validators.py
"""
Inbound payload validation.

Order-ingestion and invoice-cancellation events are parsed into typed
records here; services never read raw dicts.
"""
import re
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from affiliate_system.errors import ValidationError
from affiliate_system.utils.money import to_decimal

logger = logging.getLogger(__name__)


# =============================================================================
# PHONE NUMBERS
# =============================================================================

_PHONE_SEPARATORS = re.compile(r"[\s\-.]")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a Vietnamese phone number to local form.

    "+84 912-345.678" -> "0912345678"
    "84912345678"     -> "0912345678"
    """
    if not phone:
        return phone

    normalized = _PHONE_SEPARATORS.sub("", str(phone))

    if normalized.startswith("+84"):
        normalized = "0" + normalized[3:]
    elif normalized.startswith("84") and len(normalized) > 9:
        normalized = "0" + normalized[2:]

    return normalized


# =============================================================================
# PRIMITIVES
# =============================================================================

def parse_datetime(value: Any, field: str) -> datetime:
    """Parse ISO-8601 string or datetime into naive UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"{field} is not an ISO-8601 datetime: {value!r}")
    else:
        raise ValidationError(f"{field} is required")

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _require_str(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def _optional_str(payload: Dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip()


def _require_bool(payload: Dict[str, Any], field: str) -> bool:
    value = payload.get(field)
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


# =============================================================================
# EVENTS
# =============================================================================

@dataclass
class OrderEvent:
    """Order-ingestion event for one invoice."""
    invoice_code: str
    invoice_amount: Decimal
    invoice_date: datetime
    invoice_status: str
    partner_reference: str
    referred_customer_reference: str
    is_first_order: bool
    voucher_code: Optional[str] = None
    invoice_id: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    total_payment: Optional[Decimal] = None

    @property
    def is_fully_paid(self) -> bool:
        """Missing total_payment means the source does not report partial payment."""
        return self.total_payment is None or self.total_payment == self.invoice_amount


@dataclass
class CancellationEvent:
    """Invoice-cancellation event."""
    invoice_code: str
    cancelled_at: datetime


def parse_order_event(payload: Dict[str, Any]) -> OrderEvent:
    """
    Validate an order-ingestion payload.

    Raises:
        ValidationError: On missing fields or malformed values
    """
    if not isinstance(payload, dict):
        raise ValidationError("Order event must be an object")

    invoice_amount = to_decimal(payload.get("invoice_amount"), "invoice_amount")
    if payload.get("invoice_amount") is None:
        raise ValidationError("invoice_amount is required")
    if invoice_amount < 0:
        raise ValidationError(f"invoice_amount must not be negative: {invoice_amount}")

    total_payment = None
    if payload.get("total_payment") is not None:
        total_payment = to_decimal(payload["total_payment"], "total_payment")

    customer_phone = normalize_phone(_optional_str(payload, "customer_phone"))

    return OrderEvent(
        invoice_code=_require_str(payload, "invoice_code"),
        invoice_amount=invoice_amount,
        invoice_date=parse_datetime(payload.get("invoice_date"), "invoice_date"),
        invoice_status=_require_str(payload, "invoice_status"),
        partner_reference=_require_str(payload, "partner_reference"),
        referred_customer_reference=_require_str(payload, "referred_customer_reference"),
        is_first_order=_require_bool(payload, "is_first_order"),
        voucher_code=_optional_str(payload, "voucher_code"),
        invoice_id=_optional_str(payload, "invoice_id"),
        customer_phone=customer_phone,
        customer_name=_optional_str(payload, "customer_name"),
        total_payment=total_payment,
    )


def parse_cancellation_event(payload: Dict[str, Any]) -> CancellationEvent:
    """
    Validate an invoice-cancellation payload.

    Raises:
        ValidationError: On missing fields or malformed values
    """
    if not isinstance(payload, dict):
        raise ValidationError("Cancellation event must be an object")

    return CancellationEvent(
        invoice_code=_require_str(payload, "invoice_code"),
        cancelled_at=parse_datetime(payload.get("cancelled_at"), "cancelled_at"),
    )


def parse_month(value: Any, field: str = "payment_month") -> str:
    """Validate a YYYY-MM month string."""
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-(0[1-9]|1[0-2])", value.strip()):
        raise ValidationError(f"{field} must be YYYY-MM, got {value!r}")
    return value.strip()


def parse_positive_int(value: Any, field: str, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer, got {value!r}")
    if number < 1:
        raise ValidationError(f"{field} must be >= 1, got {number}")
    return number
