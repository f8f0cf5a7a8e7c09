# models/stats_adjustment.py
"""
Stats adjustment - compensating ledger entry written on invoice cancellation.
Exactly one per commission record, never mutated.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Boolean, DateTime, ForeignKey
from models.base import Base, _get_current_time


class StatsAdjustment(Base):
    __tablename__ = 'f0_stats_adjustments'

    id = Column(Integer, primary_key=True, autoincrement=True)

    f0_id = Column(Integer, ForeignKey('f0_partners.id'), nullable=False, index=True)
    f0_code = Column(String, nullable=False)

    commission_record_id = Column(
        Integer,
        ForeignKey('commission_records.id'),
        unique=True,
        nullable=False
    )
    invoice_code = Column(String, nullable=True)
    voucher_code = Column(String, nullable=True)
    f1_customer_id = Column(String, nullable=True)

    adjustment_type = Column(String, nullable=False)  # INVOICE_CANCELLED_BEFORE_PAID / _AFTER_PAID
    adjustment_reason = Column(String, nullable=True)

    # Deltas (zero or negative)
    f1_adjustment = Column(Integer, default=0)
    f1_was_unique = Column(Boolean, default=False)
    revenue_adjustment = Column(DECIMAL(18, 2), default=0)
    commission_adjustment = Column(DECIMAL(18, 2), default=0)
    commission_was_paid = Column(Boolean, default=False)

    created_at = Column(DateTime, default=_get_current_time)

    def __repr__(self):
        return (
            f"<StatsAdjustment(id={self.id}, f0={self.f0_code}, type={self.adjustment_type}, "
            f"f1={self.f1_adjustment}, revenue={self.revenue_adjustment})>"
        )
