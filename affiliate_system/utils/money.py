# affiliate_system/utils/money.py
"""
Decimal helpers. Store values arrive as Decimal, str, int or float and are
parsed once here, at the boundary.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from config import Config
from affiliate_system.errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a numeric value into Decimal.

    None is treated as zero. Floats go through str() so 0.1 stays 0.1.

    Raises:
        ValidationError: If value is not numeric
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got bool")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric, got {value!r}")


def currency_quantum() -> Decimal:
    decimals = int(Config.get(Config.CURRENCY_DECIMALS, 0))
    return Decimal(1).scaleb(-decimals)


def quantize_money(amount: Decimal) -> Decimal:
    """Round to currency precision, half up."""
    return amount.quantize(currency_quantum(), rounding=ROUND_HALF_UP)


def percent_to_rate(percent: Any) -> Decimal:
    """10 -> Decimal('0.1')"""
    return to_decimal(percent, "percent") / HUNDRED
