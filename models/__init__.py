"""
Database models for the affiliate engine.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, TimestampMixin

# Partners and referrals
from models.partner import Partner
from models.voucher_tracking import VoucherTracking
from models.f1_assignment import F1CustomerAssignment

# Commission lifecycle
from models.commission_record import CommissionRecord
from models.stats_adjustment import StatsAdjustment
from models.payment_batch import PaymentBatch
from models.withdrawal import WithdrawalRequest

# Configuration tables
from models.tier import TierDefinition
from models.settings import LockPaymentSettings, CommissionSetting

__all__ = [
    # Base
    'Base',
    'TimestampMixin',

    # Partners
    'Partner',
    'VoucherTracking',
    'F1CustomerAssignment',

    # Commissions
    'CommissionRecord',
    'StatsAdjustment',
    'PaymentBatch',
    'WithdrawalRequest',

    # Configuration
    'TierDefinition',
    'LockPaymentSettings',
    'CommissionSetting',
]
