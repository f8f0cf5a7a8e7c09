# models/payment_batch.py
"""
Payment batch - administrative payout of locked commissions for one month.
Immutable once completed.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime
from models.base import Base, _get_current_time


class PaymentBatch(Base):
    __tablename__ = 'payment_batches'

    id = Column(Integer, primary_key=True, autoincrement=True)

    payment_month = Column(String, nullable=False, index=True)  # YYYY-MM
    payment_date = Column(DateTime, nullable=True)

    total_f0_count = Column(Integer, default=0)
    total_commission = Column(DECIMAL(18, 2), default=0)

    status = Column(String, default="open")  # open, completed

    created_by = Column(String, nullable=True)
    created_by_name = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    created_at = Column(DateTime, default=_get_current_time)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<PaymentBatch(id={self.id}, month={self.payment_month}, "
            f"status={self.status}, total={self.total_commission})>"
        )
