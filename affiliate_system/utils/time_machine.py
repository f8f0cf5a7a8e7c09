# affiliate_system/utils/time_machine.py
"""
Time source for the affiliate engine.

All stored timestamps are naive UTC. Commission months and quarters are
derived in business time (UTC + BUSINESS_UTC_OFFSET_HOURS).
Virtual time can be set for tests and admin simulation.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import Config

logger = logging.getLogger(__name__)


class TimeMachine:
    """Switchable clock: real UTC time or a fixed/advanced virtual time."""

    def __init__(self):
        self._virtualTime: Optional[datetime] = None
        self.isTestMode = False

    @property
    def now(self) -> datetime:
        """Current time as naive UTC."""
        if self.isTestMode and self._virtualTime is not None:
            return self._virtualTime
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def setTime(self, newTime: datetime):
        """Switch to virtual time. Aware datetimes are converted to UTC."""
        if newTime.tzinfo is not None:
            newTime = newTime.astimezone(timezone.utc).replace(tzinfo=None)
        self._virtualTime = newTime
        self.isTestMode = True
        logger.info(f"Time machine set to {newTime.isoformat()} UTC")

    def advanceTime(self, **delta):
        """Move virtual time forward, e.g. advanceTime(hours=25)."""
        self.setTime(self.now + timedelta(**delta))

    def resetToRealTime(self):
        self._virtualTime = None
        self.isTestMode = False
        logger.info("Time machine reset to real time")

    # ═══════════════════════════════════════════════════════════════════
    # BUSINESS CALENDAR
    # ═══════════════════════════════════════════════════════════════════

    @staticmethod
    def businessOffset() -> timedelta:
        return timedelta(hours=int(Config.get(Config.BUSINESS_UTC_OFFSET_HOURS, 7)))

    def toBusinessTime(self, moment: datetime) -> datetime:
        return moment + self.businessOffset()

    def toBusinessMonth(self, moment: datetime) -> str:
        """YYYY-MM of a naive-UTC moment, in business time."""
        return self.toBusinessTime(moment).strftime('%Y-%m')

    @property
    def currentMonth(self) -> str:
        return self.toBusinessMonth(self.now)

    @property
    def quarterStart(self) -> datetime:
        """Start of the current business quarter, as naive UTC."""
        local = self.toBusinessTime(self.now)
        firstMonth = ((local.month - 1) // 3) * 3 + 1
        localStart = datetime(local.year, firstMonth, 1)
        return localStart - self.businessOffset()


timeMachine = TimeMachine()
