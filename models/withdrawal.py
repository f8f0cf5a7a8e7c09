# models/withdrawal.py
"""
Withdrawal request - read-only for the reporting layer.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from models.base import Base, TimestampMixin


class WithdrawalRequest(Base, TimestampMixin):
    __tablename__ = 'withdrawal_requests'

    id = Column(Integer, primary_key=True, autoincrement=True)
    f0_id = Column(Integer, ForeignKey('f0_partners.id'), nullable=False, index=True)

    amount = Column(DECIMAL(18, 2), nullable=False)
    status = Column(String, default="pending")  # pending, processing, completed, rejected

    def __repr__(self):
        return f"<WithdrawalRequest(id={self.id}, f0_id={self.f0_id}, amount={self.amount}, status={self.status})>"
