# affiliate_system/config/tiers.py
"""
Partner tier ladder.
Loaded from the f0_tiers table and validated before use.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from config import ConfigurationError
from affiliate_system.errors import ValidationError
from models.tier import TierDefinition
from affiliate_system.utils.money import ZERO, to_decimal, percent_to_rate

logger = logging.getLogger(__name__)


@dataclass
class TierRung:
    """One validated rung of the ladder."""
    code: str
    name: str
    level: int
    min_referrals: int
    min_revenue: Decimal
    bonus_rate: Decimal
    lifetime_rate: Optional[Decimal] = None
    first_order_rate: Optional[Decimal] = None
    display: Dict[str, Any] = field(default_factory=dict)

    def isSatisfiedBy(self, referrals: int, revenue: Decimal) -> bool:
        return referrals >= self.min_referrals and revenue >= self.min_revenue

    def toDict(self) -> Dict[str, Any]:
        return {
            "tier_code": self.code,
            "tier_name": self.name,
            "tier_level": self.level,
            "min_referrals": self.min_referrals,
            "min_revenue": self.min_revenue,
            "commission_bonus_percent": self.bonus_rate * 100,
            "display": self.display,
        }


def _rung_from_row(row: TierDefinition) -> TierRung:
    requirements = row.requirements or {}
    benefits = row.benefits or {}

    try:
        lifetime = benefits.get("lifetime_commission_percent")
        first_order = benefits.get("first_order_commission_percent")
        return TierRung(
            code=row.tier_code.upper(),
            name=row.tier_name or row.tier_code,
            level=int(row.tier_level),
            min_referrals=int(requirements.get("min_referrals", 0)),
            min_revenue=to_decimal(requirements.get("min_revenue", 0), "min_revenue"),
            bonus_rate=percent_to_rate(benefits.get("commission_bonus_percent", 0)),
            lifetime_rate=percent_to_rate(lifetime) if lifetime is not None else None,
            first_order_rate=percent_to_rate(first_order) if first_order is not None else None,
            display=row.display or {},
        )
    except (TypeError, ValueError, AttributeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid tier definition '{row.tier_code}': {e}")


def validate_ladder(ladder: List[TierRung]) -> None:
    """
    Enforce the ladder invariants the tier walk depends on.

    Raises:
        ConfigurationError: Empty ladder, duplicate level or code,
            negative threshold, or a threshold that decreases with level
    """
    if not ladder:
        raise ConfigurationError("No active tier definitions configured")

    seenLevels = set()
    seenCodes = set()
    previous = None

    for rung in ladder:
        if rung.level in seenLevels:
            raise ConfigurationError(f"Duplicate tier level {rung.level} ({rung.code})")
        if rung.code in seenCodes:
            raise ConfigurationError(f"Duplicate tier code {rung.code}")
        if rung.min_referrals < 0 or rung.min_revenue < ZERO:
            raise ConfigurationError(f"Tier {rung.code} has a negative requirement")

        if previous is not None and (
            rung.min_referrals < previous.min_referrals
            or rung.min_revenue < previous.min_revenue
        ):
            raise ConfigurationError(
                f"Tier {rung.code} (level {rung.level}) has lower requirements "
                f"than {previous.code} (level {previous.level})"
            )

        seenLevels.add(rung.level)
        seenCodes.add(rung.code)
        previous = rung


def load_tier_ladder(session: Session) -> List[TierRung]:
    """
    Load active tier definitions, ascending by level, validated.

    Raises:
        ConfigurationError: If the ladder is missing or malformed
    """
    rows = session.query(TierDefinition).filter(
        TierDefinition.is_active == True  # noqa: E712
    ).order_by(TierDefinition.tier_level.asc()).all()

    ladder = [_rung_from_row(row) for row in rows]
    validate_ladder(ladder)

    logger.debug(f"Loaded tier ladder: {[rung.code for rung in ladder]}")
    return ladder


def find_rung(ladder: List[TierRung], code: Optional[str]) -> Optional[TierRung]:
    if not code:
        return None
    code = code.upper()
    for rung in ladder:
        if rung.code == code:
            return rung
    return None


def base_rung(ladder: List[TierRung]) -> TierRung:
    """Lowest rung. Partners that satisfy nothing sit here."""
    return ladder[0]
