# models/base.py
"""
Base model and mixins for all database tables.
"""
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy import Column, DateTime

Base = declarative_base()

def _get_current_time():
    """Lazy import to avoid circular dependency."""
    from affiliate_system.utils.time_machine import timeMachine
    return timeMachine.now

class TimestampMixin:
    created_at = Column(DateTime, default=_get_current_time)
    updated_at = Column(DateTime, default=_get_current_time, onupdate=_get_current_time)
