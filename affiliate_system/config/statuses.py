# affiliate_system/config/statuses.py
"""
Commission status machine and related enumerations.

    pending ──> locked ──> paid
       │          │
       └──────────┴──> cancelled

A paid record never leaves paid. Invoice cancellation after payout is
recorded as an INVOICE_CANCELLED_AFTER_PAID adjustment instead.
"""
from enum import Enum
from typing import Dict, FrozenSet

from affiliate_system.errors import InvalidTransitionError


class CommissionStatus(Enum):
    """Commission record status."""
    PENDING = "pending"
    LOCKED = "locked"
    PAID = "paid"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[CommissionStatus, FrozenSet[CommissionStatus]] = {
    CommissionStatus.PENDING: frozenset({CommissionStatus.LOCKED, CommissionStatus.CANCELLED}),
    CommissionStatus.LOCKED: frozenset({CommissionStatus.PAID, CommissionStatus.CANCELLED}),
    CommissionStatus.PAID: frozenset(),
    CommissionStatus.CANCELLED: frozenset(),
}


def validate_transition(current: str, target: CommissionStatus) -> CommissionStatus:
    """
    Check that `current -> target` is a legal move.

    Returns:
        Parsed current status

    Raises:
        InvalidTransitionError: If the move is not allowed
    """
    try:
        source = CommissionStatus(current)
    except ValueError:
        raise InvalidTransitionError(f"Unknown commission status '{current}'")

    if target not in ALLOWED_TRANSITIONS[source]:
        raise InvalidTransitionError(
            f"Transition {source.value} -> {target.value} is not allowed"
        )
    return source


# Statuses counted in tier qualification. Pending is not yet locked and
# cancelled is out; stats adjustments are applied on top.
TIER_QUALIFYING_STATUSES = (
    CommissionStatus.LOCKED.value,
    CommissionStatus.PAID.value,
)

ACTIVE_STATUSES = (
    CommissionStatus.PENDING.value,
    CommissionStatus.LOCKED.value,
    CommissionStatus.PAID.value,
)


class AdjustmentType(Enum):
    INVOICE_CANCELLED_BEFORE_PAID = "INVOICE_CANCELLED_BEFORE_PAID"
    INVOICE_CANCELLED_AFTER_PAID = "INVOICE_CANCELLED_AFTER_PAID"


class InvalidReason(Enum):
    """Why a voucher's invoice did not produce a commission."""
    INVOICE_NOT_COMPLETED = "INVOICE_NOT_COMPLETED"
    INVOICE_NOT_FULLY_PAID = "INVOICE_NOT_FULLY_PAID"
    INVOICE_CANCELLED = "INVOICE_CANCELLED"
    CUSTOMER_NOT_NEW = "CUSTOMER_NOT_NEW"
    CUSTOMER_OWNED_BY_OTHER_PARTNER = "CUSTOMER_OWNED_BY_OTHER_PARTNER"
    PARTNER_INACTIVE = "PARTNER_INACTIVE"


class PaymentBatchStatus(Enum):
    OPEN = "open"
    COMPLETED = "completed"


class WithdrawalStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
