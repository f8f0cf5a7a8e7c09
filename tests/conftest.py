# tests/conftest.py
"""
Pytest configuration and shared fixtures for the affiliate engine tests.

Every test gets a fresh in-memory SQLite store, the tier ladder below,
and a frozen clock at 2025-01-15 03:00 UTC (10:00 business time).

Run:
    pytest tests/ -v
"""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from config import Config
from core.db import configure_engine, get_session
from models import (
    Base,
    Partner,
    CommissionRecord,
    TierDefinition,
    LockPaymentSettings,
    CommissionSetting,
    VoucherTracking,
)
from affiliate_system.events.event_bus import eventBus
from affiliate_system.utils.time_machine import timeMachine

# =============================================================================
# INITIALIZE CONFIG
# =============================================================================

Config.initialize_from_env()
Config.set(Config.CURRENCY_DECIMALS, 0, source="tests")
Config.set(Config.BUSINESS_UTC_OFFSET_HOURS, 7, source="tests")
Config.set(Config.INVOICE_COMPLETED_STATUS, "completed", source="tests")
Config.set(Config.INVOICE_CANCELLED_STATUS, "cancelled", source="tests")
Config.set(Config.DEFAULT_LOCK_PERIOD_DAYS, 0, source="tests")
Config.set(Config.DEFAULT_LOCK_PERIOD_HOURS, 24, source="tests")
Config.set(Config.DEFAULT_LOCK_PERIOD_MINUTES, 0, source="tests")
Config.set(Config.WEBHOOK_SECRET_KEY, "test-secret", source="tests")

# =============================================================================
# CONSTANTS
# =============================================================================

FROZEN_NOW = datetime(2025, 1, 15, 3, 0, 0)

TIER_LADDER = [
    {
        "tier_code": "SILVER",
        "tier_name": "Silver",
        "tier_level": 1,
        "requirements": {"min_referrals": 0, "min_revenue": 0},
        "benefits": {"commission_bonus_percent": 0},
    },
    {
        "tier_code": "GOLD",
        "tier_name": "Gold",
        "tier_level": 2,
        "requirements": {"min_referrals": 11, "min_revenue": 0},
        "benefits": {"commission_bonus_percent": 2, "lifetime_commission_percent": 7},
    },
    {
        "tier_code": "DIAMOND",
        "tier_name": "Diamond",
        "tier_level": 3,
        "requirements": {"min_referrals": 31, "min_revenue": 0},
        "benefits": {"commission_bonus_percent": 5, "first_order_commission_percent": 15},
    },
]


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory store per test, shared by every session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    configure_engine(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    """Database session for each test."""
    session = get_session()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def frozen_time():
    """Virtual clock, reset after each test."""
    timeMachine.setTime(FROZEN_NOW)
    yield timeMachine
    timeMachine.resetToRealTime()


@pytest.fixture(autouse=True)
def clean_event_bus():
    """No handler leaks between tests."""
    eventBus.clear()
    yield eventBus
    eventBus.clear()


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def tier_ladder(session):
    """SILVER (0) / GOLD (11 referrals) / DIAMOND (31 referrals)."""
    rows = [TierDefinition(**definition) for definition in TIER_LADDER]
    session.add_all(rows)
    session.commit()
    return rows


@pytest.fixture
def commission_settings(session):
    """first_order 10%, lifetime 5%."""
    rows = [
        CommissionSetting(name="First order", applies_to="first_order",
                          rate_percent=Decimal("10"), min_order_value=Decimal("0")),
        CommissionSetting(name="Lifetime", applies_to="all",
                          rate_percent=Decimal("5"), min_order_value=Decimal("0")),
    ]
    session.add_all(rows)
    session.commit()
    return rows


@pytest.fixture
def lock_settings(session):
    """24-hour lock period."""
    settings = LockPaymentSettings(lock_period_days=0, lock_period_hours=24, lock_period_minutes=0)
    session.add(settings)
    session.commit()
    return settings


@pytest.fixture
def engine_config(tier_ladder, commission_settings, lock_settings):
    """Complete engine configuration."""
    return {"ladder": tier_ladder, "settings": commission_settings, "lock": lock_settings}


# =============================================================================
# PARTNER FIXTURES
# =============================================================================

@pytest.fixture
def partner(session):
    """Active partner F0TEST at base tier."""
    partner = Partner(f0_code="F0TEST", full_name="Test Partner", is_active=True,
                      is_approved=True, current_tier="SILVER")
    session.add(partner)
    session.commit()
    return partner


@pytest.fixture
def other_partner(session):
    """Second active partner F0OTHER."""
    partner = Partner(f0_code="F0OTHER", full_name="Other Partner", is_active=True,
                      is_approved=True, current_tier="SILVER")
    session.add(partner)
    session.commit()
    return partner


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def unique_code():
    """Generate unique invoice/voucher codes."""

    def _generate(prefix="INV"):
        return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

    return _generate


@pytest.fixture
def make_order(partner, unique_code):
    """Order-ingestion payload builder for the default partner."""

    def _make(amount="2000000", customer="F1-001", first=True, **overrides):
        payload = {
            "invoice_code": unique_code(),
            "invoice_amount": amount,
            "invoice_date": "2025-01-14T10:00:00Z",
            "invoice_status": "completed",
            "partner_reference": partner.f0_code,
            "referred_customer_reference": customer,
            "is_first_order": first,
            "customer_phone": None,
            "customer_name": f"Customer {customer}",
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def make_record(session, unique_code):
    """Insert a commission record directly, bypassing calculation."""

    def _make(partner, status="locked", amount="1000000", commission="100000",
              customer=None, **fields):
        values = dict(
            f0_id=partner.id,
            f0_code=partner.f0_code,
            f1_customer_id=customer or unique_code("F1"),
            invoice_code=unique_code(),
            invoice_amount=Decimal(amount),
            invoice_date=FROZEN_NOW - timedelta(days=2),
            invoice_status="completed",
            first_order_amount=Decimal(commission),
            subtotal_commission=Decimal(commission),
            total_commission=Decimal(commission),
            tier_code="SILVER",
            status=status,
            qualified_at=FROZEN_NOW - timedelta(days=2),
            lock_date=FROZEN_NOW - timedelta(days=1),
        )
        values.update(fields)
        record = CommissionRecord(**values)
        session.add(record)
        session.commit()
        return record

    return _make


@pytest.fixture
def make_voucher(session, unique_code):
    """Insert a tracked voucher for a partner."""

    def _make(partner, **fields):
        voucher = VoucherTracking(
            code=fields.pop("code", None) or unique_code("VC"),
            f0_id=partner.id,
            f0_code=partner.f0_code,
            **fields
        )
        session.add(voucher)
        session.commit()
        return voucher

    return _make
