# models/f1_assignment.py
"""
F1 customer assignment - binds a referred customer to one partner
on their first qualifying order. Repeat orders earn lifetime commission
at the tier recorded here.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from models.base import Base, _get_current_time


class F1CustomerAssignment(Base):
    __tablename__ = 'f1_customer_assignments'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Customer (phone normalized to local 0xxxxxxxxx form)
    f1_customer_id = Column(String, unique=True, nullable=False)
    f1_phone = Column(String, unique=True, nullable=True)
    f1_name = Column(String, nullable=True)

    # Owner
    f0_id = Column(Integer, ForeignKey('f0_partners.id'), nullable=False, index=True)
    f0_code = Column(String, nullable=False)

    # Partner tier when the relationship started
    tier_code = Column(String, nullable=True)

    first_voucher_code = Column(String, nullable=True)
    first_invoice_code = Column(String, nullable=True)
    first_invoice_date = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True)
    assigned_at = Column(DateTime, default=_get_current_time)

    def __repr__(self):
        return f"<F1CustomerAssignment(phone={self.f1_phone}, f0={self.f0_code})>"
