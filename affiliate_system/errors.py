# affiliate_system/errors.py
"""
Error taxonomy for the affiliate engine.

Every error carries a machine-readable code that query endpoints
return alongside the message.
"""
from config import ConfigurationError


class AffiliateError(Exception):
    """Base error for the affiliate engine."""
    code = "AFFILIATE_ERROR"

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class NotFoundError(AffiliateError):
    """Partner, commission record or batch absent."""
    code = "NOT_FOUND"


class InvalidTransitionError(AffiliateError):
    """Commission status rule violated. Logged and rejected, never retried."""
    code = "INVALID_TRANSITION"


class ValidationError(AffiliateError):
    """Malformed input payload."""
    code = "VALIDATION_ERROR"


class StoreUnavailableError(AffiliateError):
    """Relational store unreachable."""
    code = "SYSTEM_ERROR"


__all__ = [
    'AffiliateError',
    'NotFoundError',
    'InvalidTransitionError',
    'ValidationError',
    'ConfigurationError',
    'StoreUnavailableError',
]
