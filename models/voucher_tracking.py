# models/voucher_tracking.py
"""
Voucher / referral tracking record.
One row per voucher issued by a partner to a prospective customer.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from models.base import Base, TimestampMixin


class VoucherTracking(Base, TimestampMixin):
    __tablename__ = 'voucher_affiliate_tracking'

    code = Column(String, primary_key=True)

    # Owner
    f0_id = Column(Integer, ForeignKey('f0_partners.id'), nullable=False, index=True)
    f0_code = Column(String, nullable=False, index=True)

    # Recipient
    recipient_name = Column(String, nullable=True)
    recipient_phone = Column(String, nullable=True, index=True)

    activation_status = Column(String, default="issued")  # issued, activated, used
    campaign_code = Column(String, nullable=True)

    # Invoice the voucher was redeemed on
    invoice_id = Column(String, nullable=True)
    invoice_code = Column(String, nullable=True, index=True)
    invoice_amount = Column(DECIMAL(18, 2), nullable=True)
    invoice_status = Column(String, nullable=True)

    # Mirror of the commission record status: none, pending, available, invalid, locked, paid, cancelled
    commission_status = Column(String, default="none")
    invalid_reason_code = Column(String, nullable=True)
    invalid_reason_text = Column(String, nullable=True)
    commission_record_id = Column(Integer, nullable=True)

    note = Column(String, nullable=True)

    def __repr__(self):
        return f"<VoucherTracking(code={self.code}, f0={self.f0_code}, status={self.commission_status})>"
