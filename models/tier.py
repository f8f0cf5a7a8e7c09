# models/tier.py
"""
Tier definition - one rung of the partner tier ladder.
Read-only for the engine.
"""
from sqlalchemy import Column, Integer, String, Boolean, JSON
from models.base import Base, TimestampMixin


class TierDefinition(Base, TimestampMixin):
    __tablename__ = 'f0_tiers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tier_code = Column(String, unique=True, nullable=False)
    tier_name = Column(String, nullable=True)
    tier_level = Column(Integer, nullable=False)

    requirements = Column(JSON, nullable=True)
    # Structure:
    # {"min_referrals": 11, "min_revenue": 50000000}

    benefits = Column(JSON, nullable=True)
    # Structure:
    # {
    #   "commission_bonus_percent": 2,
    #   "lifetime_commission_percent": 5,       (optional)
    #   "first_order_commission_percent": 10    (optional)
    # }

    display = Column(JSON, nullable=True)  # icon, color, description for the UI

    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<TierDefinition(code={self.tier_code}, level={self.tier_level})>"
