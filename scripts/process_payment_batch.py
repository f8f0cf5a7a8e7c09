#!/usr/bin/env python3
"""
Pay all locked commissions of a month.

Usage:
    python scripts/process_payment_batch.py --month 2025-01 --admin-id 42
    python scripts/process_payment_batch.py --month 2025-01 --admin-id 42 --dry-run
"""

import sys
import os
import argparse
import asyncio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_db_session_ctx
from models.commission_record import CommissionRecord
from affiliate_system.config.statuses import CommissionStatus
from affiliate_system.errors import AffiliateError
from affiliate_system.services.payment_batch_service import PaymentBatchService
from affiliate_system.utils.validators import parse_month

import logging

logging.basicConfig(level=logging.INFO)


async def run(args) -> int:
    with get_db_session_ctx() as session:
        if args.dry_run:
            records = session.query(CommissionRecord).filter(
                CommissionRecord.status == CommissionStatus.LOCKED.value,
                CommissionRecord.commission_month == parse_month(args.month),
                CommissionRecord.payment_batch_id.is_(None)
            ).all()
            total = sum(r.total_commission for r in records)
            partners = {r.f0_code for r in records}
            print(f"🔍 {len(records)} locked commissions, {len(partners)} partners, total {total}")
            return 0

        result = await PaymentBatchService(session).processPaymentBatch(
            args.month,
            args.admin_id,
            adminUserName=args.admin_name,
            notes=args.notes
        )

    print(f"✅ Batch #{result['batchId']}: {result['totalRecords']} commissions, "
          f"{result['totalF0Count']} partners, total {result['totalCommission']}")
    if result['skipped']:
        print(f"⚠️ {result['skipped']} records skipped")
    return 0


def main():
    parser = argparse.ArgumentParser(description='Process monthly payment batch')
    parser.add_argument('--month', required=True, help='Commission month, YYYY-MM')
    parser.add_argument('--admin-id', required=True, help='Admin user id')
    parser.add_argument('--admin-name', help='Admin display name')
    parser.add_argument('--notes', help='Batch notes')
    parser.add_argument('--dry-run', action='store_true', help='Only show what would be paid')
    args = parser.parse_args()

    Config.initialize_from_env()

    try:
        sys.exit(asyncio.run(run(args)))
    except AffiliateError as e:
        print(f"❌ {e.code}: {e.message}")
        sys.exit(1)


if __name__ == '__main__':
    main()
