#!/usr/bin/env python3
"""
Check commissions of an invoice or a partner.

Displays the component breakdown and any stats adjustments.

Usage:
    python scripts/check_commissions.py --invoice INV-001
    python scripts/check_commissions.py --partner-code F0ABC
    python scripts/check_commissions.py --last
"""

import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from models.commission_record import CommissionRecord
from models.partner import Partner
from models.stats_adjustment import StatsAdjustment

import logging

logging.basicConfig(level=logging.WARNING)


def print_record(session, record: CommissionRecord):
    print(f"\n📄 Invoice {record.invoice_code} (record #{record.id})")
    print(f"   Partner:  {record.f0_code} (#{record.f0_id})")
    print(f"   Customer: {record.f1_name or '-'} {record.f1_phone or ''}")
    print(f"   Amount:   {record.invoice_amount}")
    print(f"   Type:     {'first order' if record.is_new_customer else 'lifetime'}")
    print(f"   Status:   {record.status}")
    print(f"   Tier:     {record.tier_code}")
    print("   " + "-" * 40)
    print(f"   Basic:       {record.basic_amount} ({record.basic_rate})")
    print(f"   First order: {record.first_order_amount} ({record.first_order_rate})")
    print(f"   Tier bonus:  {record.tier_bonus_amount} ({record.tier_bonus_rate})")
    print(f"   Total:       {record.total_commission}")

    if record.lock_date:
        print(f"   Lock date:   {record.lock_date}")
    if record.commission_month:
        print(f"   Month:       {record.commission_month}")
    if record.payment_batch_id:
        print(f"   Batch:       #{record.payment_batch_id} paid {record.paid_at}")

    adjustment = session.query(StatsAdjustment).filter_by(commission_record_id=record.id).first()
    if adjustment:
        print(f"   ⚠️ {adjustment.adjustment_type}: f1 {adjustment.f1_adjustment}, "
              f"revenue {adjustment.revenue_adjustment}, commission {adjustment.commission_adjustment}")


def main():
    """Check commissions."""
    parser = argparse.ArgumentParser(description='Check commission records')
    parser.add_argument('--invoice', help='Invoice code to check')
    parser.add_argument('--partner-code', help='Partner code to list')
    parser.add_argument('--last', action='store_true', help='Check last commission')
    args = parser.parse_args()

    Config.initialize_from_env()
    session = get_session()

    try:
        if args.last:
            records = session.query(CommissionRecord).order_by(CommissionRecord.id.desc()).limit(1).all()
        elif args.invoice:
            records = session.query(CommissionRecord).filter_by(invoice_code=args.invoice).all()
        elif args.partner_code:
            partner = session.query(Partner).filter_by(f0_code=args.partner_code).first()
            if not partner:
                print("❌ Partner not found")
                return
            print(f"👤 {partner.f0_code} {partner.full_name or ''} tier={partner.current_tier}")
            records = session.query(CommissionRecord).filter_by(
                f0_id=partner.id
            ).order_by(CommissionRecord.id).all()
        else:
            print("❌ Specify --invoice, --partner-code or --last")
            return

        if not records:
            print("❌ No commission records found")
            return

        for record in records:
            print_record(session, record)

    finally:
        session.close()


if __name__ == '__main__':
    main()
