# models/commission_record.py
"""
Commission record - one per qualifying invoice.

Amounts are stored with currency precision, rates as fractions (0.10 = 10%).
Records are never physically deleted; status moves through
pending -> locked -> paid, or into cancelled.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, ForeignKey
from models.base import Base, TimestampMixin


class CommissionRecord(Base, TimestampMixin):
    __tablename__ = 'commission_records'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Partner
    f0_id = Column(Integer, ForeignKey('f0_partners.id'), nullable=False, index=True)
    f0_code = Column(String, nullable=False, index=True)
    voucher_code = Column(String, nullable=True, index=True)

    # Referred customer
    f1_customer_id = Column(String, nullable=True, index=True)
    f1_phone = Column(String, nullable=True, index=True)
    f1_name = Column(String, nullable=True)

    # Invoice
    invoice_id = Column(String, nullable=True)
    invoice_code = Column(String, unique=True, nullable=False)
    invoice_amount = Column(DECIMAL(18, 2), nullable=False)
    invoice_date = Column(DateTime, nullable=True)
    invoice_status = Column(String, nullable=True)

    # Classification
    is_new_customer = Column(Boolean, default=False)
    is_lifetime_commission = Column(Boolean, default=False)

    # Components
    basic_rate = Column(DECIMAL(7, 4), default=0)
    basic_amount = Column(DECIMAL(18, 2), default=0)
    first_order_rate = Column(DECIMAL(7, 4), default=0)
    first_order_amount = Column(DECIMAL(18, 2), default=0)
    first_order_applied = Column(Boolean, default=False)
    tier_code = Column(String, nullable=True)
    tier_bonus_rate = Column(DECIMAL(7, 4), default=0)
    tier_bonus_amount = Column(DECIMAL(18, 2), default=0)
    subtotal_commission = Column(DECIMAL(18, 2), default=0)  # basic + first_order
    total_commission = Column(DECIMAL(18, 2), default=0)

    # Lifecycle
    status = Column(String, default="pending", index=True)  # pending, locked, paid, cancelled
    qualified_at = Column(DateTime, nullable=True)
    lock_date = Column(DateTime, nullable=True, index=True)
    locked_at = Column(DateTime, nullable=True)
    commission_month = Column(String, nullable=True, index=True)  # YYYY-MM, business time

    # Payment
    paid_at = Column(DateTime, nullable=True)
    payment_batch_id = Column(Integer, ForeignKey('payment_batches.id'), nullable=True, index=True)
    paid_by = Column(String, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_reason = Column(String, nullable=True)
    invoice_cancelled_at = Column(DateTime, nullable=True)
    invoice_cancelled_after_paid = Column(Boolean, default=False)

    notes = Column(String, nullable=True)

    def __repr__(self):
        return (
            f"<CommissionRecord(id={self.id}, invoice={self.invoice_code}, "
            f"status={self.status}, total={self.total_commission})>"
        )
