"""
Scheduler
Daily regime computation after the US close, weekdays only
"""

import logging

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from regime_engine.core.errors import RegimeNotReadyError
from regime_engine.services.regime_service import RegimeService

logger = logging.getLogger(__name__)


def parse_run_time(value: str):
    """'HH:MM' -> (hour, minute)"""
    try:
        hour_text, minute_text = value.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        raise ValueError(f"DAILY_RUN_TIME must be HH:MM, got {value!r}")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"DAILY_RUN_TIME out of range: {value!r}")
    return hour, minute


class RegimeScheduler:
    def __init__(self, service: RegimeService, run_time: str = "17:15", timezone: str = "America/New_York"):
        self.service = service
        self.hour, self.minute = parse_run_time(run_time)
        self.scheduler = AsyncIOScheduler(timezone=pytz.timezone(timezone))

    async def daily_regime_job(self):
        """Compute (or confirm) today's snapshot"""
        logger.info("Starting daily regime job...")
        try:
            snapshot = await self.service.get_today()
        except RegimeNotReadyError as e:
            logger.error(f"Daily regime job: not ready ({e.reason})")
            return
        except Exception as e:
            logger.error(f"Daily regime job failed: {e}", exc_info=True)
            return

        if snapshot.stale:
            logger.warning(f"Daily regime job served stale snapshot {snapshot.date}: {snapshot.stale_reason}")
        else:
            logger.info(f"Daily regime job done: {snapshot.date} {snapshot.regime.value} ({snapshot.source.value})")

    def start(self):
        self.scheduler.add_job(
            self.daily_regime_job,
            CronTrigger(hour=self.hour, minute=self.minute, day_of_week="mon-fri"),
            id="daily_regime",
            name="Daily Regime Snapshot",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started (daily at {self.hour:02d}:{self.minute:02d})")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Scheduler stopped")
