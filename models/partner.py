# models/partner.py
"""
Partner (F0) model - the referring affiliate account.
Never deleted; deactivated via is_active.
"""
from sqlalchemy import Column, Integer, String, Boolean
from models.base import Base, TimestampMixin


class Partner(Base, TimestampMixin):
    __tablename__ = 'f0_partners'

    id = Column(Integer, primary_key=True, autoincrement=True)
    f0_code = Column(String, unique=True, nullable=False, index=True)

    # Profile
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
    phone = Column(String, nullable=True, index=True)

    # Flags
    is_active = Column(Boolean, default=True)
    is_approved = Column(Boolean, default=False)

    # Cached tier code, display only. Source of truth is TierService.
    current_tier = Column(String, nullable=True)

    def __repr__(self):
        return f"<Partner(id={self.id}, f0_code={self.f0_code}, tier={self.current_tier})>"
