# background/affiliate_scheduler.py
"""
Affiliate Scheduler - runs the periodic maintenance jobs.
Uses APScheduler for task scheduling.

Both jobs are idempotent and safe to re-run on overlapping schedules.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from core.db import get_db_session_ctx
from affiliate_system.services.lock_service import LockService
from affiliate_system.services.sync_service import CommissionSyncService
from affiliate_system.sources.order_source import OrderSource

logger = logging.getLogger(__name__)


class AffiliateScheduler:
    """
    Background scheduler for affiliate maintenance.

    Jobs:
    - Lock sweep: pending -> locked once lock_date passes
    - Commission sync: reconcile vouchers and invoices with the order source
    """

    def __init__(self, orderSource: Optional[OrderSource] = None):
        """
        Initialize scheduler.

        Args:
            orderSource: Source for the commission sync. Sync job is not
                registered when None.
        """
        self.orderSource = orderSource
        self.isRunning = False

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job at a time
                'misfire_grace_time': 300
            }
        )

        # Statistics
        self.stats: Dict[str, Any] = {
            "tasksExecuted": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastExecutedAt": None,
            "commissionsLocked": 0,
            "commissionsCreated": 0,
            "invoicesCancelled": 0,
        }

    async def start(self):
        """Register jobs and start the scheduler."""
        if self.isRunning:
            logger.warning("Affiliate Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting Affiliate Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Lock sweep
        # ═══════════════════════════════════════════════════════════════
        lockInterval = int(Config.get(Config.LOCK_SWEEP_INTERVAL_MINUTES, 15))
        self.scheduler.add_job(
            func=self._safe_lock_sweep_wrapper,
            trigger=IntervalTrigger(minutes=lockInterval),
            id='lock_sweep',
            name='Commission Lock Sweep',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Lock Sweep (every {lockInterval} minutes)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Commission sync
        # ═══════════════════════════════════════════════════════════════
        if self.orderSource:
            syncInterval = int(Config.get(Config.COMMISSION_SYNC_INTERVAL_MINUTES, 30))
            self.scheduler.add_job(
                func=self._safe_commission_sync_wrapper,
                trigger=IntervalTrigger(minutes=syncInterval),
                id='commission_sync',
                name='Commission Sync',
                replace_existing=True
            )
            logger.info(f"✓ Job registered: Commission Sync (every {syncInterval} minutes)")
        else:
            logger.warning("No order source configured, Commission Sync disabled")

        self.scheduler.start()

        logger.info("=" * 60)
        logger.info("✅ Affiliate Scheduler started successfully")
        logger.info(f"Active jobs: {len(self.scheduler.get_jobs())}")
        logger.info("=" * 60)

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping Affiliate Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ Affiliate Scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_lock_sweep_wrapper(self):
        """Safe wrapper for the lock sweep."""
        try:
            await self.runLockSweep()
        except Exception as e:
            logger.error(f"Error in lock sweep job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    async def _safe_commission_sync_wrapper(self):
        """Safe wrapper for the commission sync."""
        try:
            await self.runCommissionSync()
        except Exception as e:
            logger.error(f"Error in commission sync job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    async def runLockSweep(self) -> Dict[str, Any]:
        """Lock due commissions in one unit of work."""
        with get_db_session_ctx() as session:
            result = await LockService(session).lockDueCommissions()

        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = datetime.now(timezone.utc)
        self.stats["commissionsLocked"] += result["locked"]
        return result

    async def runCommissionSync(self) -> Dict[str, Any]:
        """Reconcile with the order source in one unit of work."""
        if not self.orderSource:
            logger.warning("Commission sync requested without an order source")
            return {}

        with get_db_session_ctx() as session:
            result = await CommissionSyncService(session, self.orderSource).runSync()

        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = datetime.now(timezone.utc)
        self.stats["commissionsCreated"] += result["vouchers"]["created"]
        self.stats["invoicesCancelled"] += (
            result["vouchers"]["cancelled"] + result["cancellations"]["cancelled"]
        )
        return result

    def getStats(self) -> Dict[str, Any]:
        jobs = []
        if self.scheduler.running:
            for job in self.scheduler.get_jobs():
                jobs.append({
                    "id": job.id,
                    "name": job.name,
                    "nextRun": job.next_run_time.isoformat() if job.next_run_time else None,
                })
        return {**self.stats, "isRunning": self.isRunning, "jobs": jobs}
