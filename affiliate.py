# affiliate-engine/affiliate.py
"""
Affiliate Engine - Main entry point.
Webhook server plus background scheduler on one event loop.
"""
import asyncio
import logging
import signal
import sys

from config import Config
from core.db import setup_database, get_db_session_ctx
from affiliate_system.config.tiers import load_tier_ladder
from affiliate_system.events.setup import setup_affiliate_event_handlers
from affiliate_system.sources.order_source import HttpOrderSource
from background.affiliate_scheduler import AffiliateScheduler
from webhook.webhook_handler import start_webhook_server

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('affiliate.log')
    ]
)

logger = logging.getLogger(__name__)


async def initialize():
    """
    Initialize configuration, storage, handlers and background jobs.

    Returns:
        Tuple[AffiliateScheduler, web.AppRunner]
    """
    try:
        logger.info("=" * 60)
        logger.info("AFFILIATE ENGINE INITIALIZATION")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 1: Load configuration from .env
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("📋 Loading configuration from .env...")
        Config.initialize_from_env()
        Config.validate_critical_keys()
        logger.info("✓ Configuration loaded")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 2: Setup database and check the tier ladder
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("💾 Setting up database...")
        setup_database()
        with get_db_session_ctx() as session:
            ladder = load_tier_ladder(session)
        logger.info(f"✓ Database ready, tier ladder: {[rung.code for rung in ladder]}")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 3: Event handlers
        # ═══════════════════════════════════════════════════════════════════════
        setup_affiliate_event_handlers()

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 4: Background scheduler
        # ═══════════════════════════════════════════════════════════════════════
        orderSource = HttpOrderSource.fromConfig() if Config.get(Config.ORDER_SOURCE_URL) else None
        scheduler = AffiliateScheduler(orderSource=orderSource)
        await scheduler.start()

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 5: Webhook server
        # ═══════════════════════════════════════════════════════════════════════
        runner = await start_webhook_server()

        logger.info("=" * 60)
        logger.info("✅ INITIALIZATION COMPLETE")
        logger.info("=" * 60)

        return scheduler, runner

    except Exception as e:
        logger.critical(f"❌ Initialization failed: {e}", exc_info=True)
        raise


async def main():
    """Main entry point."""
    scheduler = None
    runner = None
    try:
        scheduler, runner = await initialize()

        stopEvent = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stopEvent.set)
            except NotImplementedError:
                logger.warning(f"Signal handler for {sig} not available on this platform")

        await stopEvent.wait()
        logger.info("⚠️ Shutdown signal received")

    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if scheduler:
            await scheduler.stop()
        if runner:
            await runner.cleanup()
        logger.info("👋 Affiliate engine shutdown complete")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Affiliate engine stopped")
