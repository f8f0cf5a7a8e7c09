# affiliate_system/config/settings.py
"""
Lock period and base commission rates, read from the settings tables
with Config fallbacks.
"""
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session

from config import Config, ConfigurationError
from models.settings import LockPaymentSettings, CommissionSetting
from affiliate_system.utils.money import to_decimal, percent_to_rate

logger = logging.getLogger(__name__)

APPLIES_TO_ALL = "all"
APPLIES_TO_FIRST_ORDER = "first_order"


def load_lock_period(session: Session) -> timedelta:
    """
    Lock period from the active lock_payment_settings row.
    Falls back to DEFAULT_LOCK_PERIOD_* when no row is active.

    Raises:
        ConfigurationError: If the resulting period is negative
    """
    settings = session.query(LockPaymentSettings).filter(
        LockPaymentSettings.is_active == True  # noqa: E712
    ).order_by(LockPaymentSettings.id.desc()).first()

    if settings:
        days = settings.lock_period_days or 0
        hours = settings.lock_period_hours or 0
        minutes = settings.lock_period_minutes or 0
    else:
        days = int(Config.get(Config.DEFAULT_LOCK_PERIOD_DAYS, 0))
        hours = int(Config.get(Config.DEFAULT_LOCK_PERIOD_HOURS, 24))
        minutes = int(Config.get(Config.DEFAULT_LOCK_PERIOD_MINUTES, 0))
        logger.warning(
            f"No active lock_payment_settings row, using default "
            f"{days}d {hours}h {minutes}m"
        )

    period = timedelta(days=days, hours=hours, minutes=minutes)
    if period < timedelta(0):
        raise ConfigurationError(f"Lock period must not be negative: {period}")
    return period


@dataclass
class RateSetting:
    rate: Decimal
    min_order_value: Decimal
    max_commission: Optional[Decimal]


def load_rate_setting(session: Session, appliesTo: str) -> Optional[RateSetting]:
    """Highest-priority (lowest number) active setting for appliesTo."""
    row = session.query(CommissionSetting).filter(
        CommissionSetting.applies_to == appliesTo,
        CommissionSetting.is_active == True  # noqa: E712
    ).order_by(CommissionSetting.priority.asc(), CommissionSetting.id.asc()).first()

    if not row:
        return None

    maxCommission = None
    if row.max_commission is not None:
        maxCommission = to_decimal(row.max_commission, "max_commission")

    return RateSetting(
        rate=percent_to_rate(row.rate_percent),
        min_order_value=to_decimal(row.min_order_value, "min_order_value"),
        max_commission=maxCommission,
    )
