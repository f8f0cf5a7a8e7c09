"""
Affiliate System - commission lifecycle and tier qualification engine.
"""

# Services
from affiliate_system.services.commission_service import CommissionService
from affiliate_system.services.transition_service import TransitionService
from affiliate_system.services.cancellation_service import CancellationService
from affiliate_system.services.tier_service import TierService
from affiliate_system.services.lock_service import LockService
from affiliate_system.services.payment_batch_service import PaymentBatchService
from affiliate_system.services.stats_service import StatsService
from affiliate_system.services.sync_service import CommissionSyncService

# Configuration
from affiliate_system.config.statuses import CommissionStatus, AdjustmentType

# Utilities
from affiliate_system.utils.time_machine import timeMachine

# Events
from affiliate_system.events.event_bus import eventBus, AffiliateEvents

__all__ = [
    # Services
    'CommissionService',
    'TransitionService',
    'CancellationService',
    'TierService',
    'LockService',
    'PaymentBatchService',
    'StatsService',
    'CommissionSyncService',

    # Config
    'CommissionStatus',
    'AdjustmentType',

    # Utils
    'timeMachine',

    # Events
    'eventBus',
    'AffiliateEvents',
]
