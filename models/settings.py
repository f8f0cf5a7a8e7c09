# models/settings.py
"""
Engine settings tables: lock/payment schedule and base commission rates.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean
from models.base import Base, TimestampMixin


class LockPaymentSettings(Base, TimestampMixin):
    """Singleton: exactly one row is expected to be active."""
    __tablename__ = 'lock_payment_settings'

    id = Column(Integer, primary_key=True, autoincrement=True)

    lock_period_days = Column(Integer, default=0)
    lock_period_hours = Column(Integer, default=24)
    lock_period_minutes = Column(Integer, default=0)

    payment_day = Column(Integer, default=5)  # day of month payouts are made

    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return (
            f"<LockPaymentSettings(days={self.lock_period_days}, "
            f"hours={self.lock_period_hours}, minutes={self.lock_period_minutes})>"
        )


class CommissionSetting(Base, TimestampMixin):
    __tablename__ = 'commission_settings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)

    applies_to = Column(String, nullable=False)  # 'all' (basic/lifetime) or 'first_order'
    rate_percent = Column(DECIMAL(7, 4), nullable=False)
    min_order_value = Column(DECIMAL(18, 2), nullable=True)
    max_commission = Column(DECIMAL(18, 2), nullable=True)

    priority = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<CommissionSetting(applies_to={self.applies_to}, rate={self.rate_percent}%)>"
