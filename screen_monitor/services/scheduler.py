# screen_monitor/services/scheduler.py
"""
Background jobs — APScheduler wrapper for the availability monitor.

    ping_screens     PING_CRON   (default every 5 minutes)
    monthly_uptime   UPTIME_CRON (default 00:00 on the 1st)

Each run opens its own DB session, like any request would, and closes it
when done. max_instances=1 keeps a slow cycle from overlapping the next one.
"""

from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from screen_monitor.config import settings
from screen_monitor.database import SessionLocal
from screen_monitor.services.availability_service import ping_all_screens, calculate_monthly_uptime
from screen_monitor.services.notification_service import NotificationDispatcher
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)


async def run_ping_cycle(dispatcher: NotificationDispatcher, session_factory=SessionLocal):
    db = session_factory()
    try:
        await ping_all_screens(db, dispatcher)
    finally:
        db.close()


async def run_monthly_uptime(session_factory=SessionLocal):
    db = session_factory()
    try:
        ok = calculate_monthly_uptime(db)
        if not ok:
            logger.warning("[UPTIME] Some screens failed, see errors above")
    finally:
        db.close()


class MonitorScheduler:
    def __init__(self, dispatcher: NotificationDispatcher,
                 ping_cron: Optional[str] = None, uptime_cron: Optional[str] = None,
                 timezone: Optional[str] = None):
        self.dispatcher = dispatcher
        self.ping_cron = ping_cron or settings.PING_CRON
        self.uptime_cron = uptime_cron or settings.UPTIME_CRON
        self.timezone = timezone or settings.SCHEDULER_TIMEZONE
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self):
        """Must be called from inside a running event loop (app startup)."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._scheduler.add_job(
            run_ping_cycle,
            CronTrigger.from_crontab(self.ping_cron, timezone=self.timezone),
            args=[self.dispatcher],
            id="ping_screens",
            name="Ping all screens",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            replace_existing=True,
        )
        self._scheduler.add_job(
            run_monthly_uptime,
            CronTrigger.from_crontab(self.uptime_cron, timezone=self.timezone),
            id="monthly_uptime",
            name="Calculate monthly uptime",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"⏱  Scheduler started: ping '{self.ping_cron}', uptime '{self.uptime_cron}' ({self.timezone})")

    def stop(self):
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")
