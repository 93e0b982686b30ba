"""APScheduler job definitions."""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pricesync.config import settings
from pricesync.db.models import AutomationSettings
from pricesync.worker.tasks import SyncTaskRunner, task_runner

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync"


def is_within_sync_period(period: Optional[str], now: Optional[datetime] = None) -> bool:
    """
    Check whether scheduled syncs may run at ``now``.

    "business_hours" means Monday to Friday between the configured hours.
    "always" and "custom" (no window stored) never block.
    """
    if period != "business_hours":
        return True
    now = now or datetime.now()
    if now.weekday() >= 5:  # Saturday = 5, Sunday = 6
        return False
    return settings.business_hours_start <= now.hour < settings.business_hours_end


async def run_auto_sync(runner: SyncTaskRunner = task_runner) -> None:
    """Scheduled entry point: honour the sync period, then sync."""
    automation = await runner.store.first(AutomationSettings)
    period = automation.sync_period if automation is not None else "business_hours"
    if not is_within_sync_period(period):
        logger.info(f"Auto sync skipped outside sync period ({period})")
        return
    await runner.auto_sync()


def setup_scheduler(interval_minutes: Optional[int] = None) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Args:
        interval_minutes: Sync interval; defaults to settings.default_sync_interval_minutes

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(interval_minutes or settings.default_sync_interval_minutes))

    scheduler.add_job(
        run_auto_sync,
        IntervalTrigger(minutes=interval),
        id=AUTO_SYNC_JOB_ID,
        name="Download supplier prices and upload repriced products",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info(f"Scheduler configured: auto sync every {interval} minutes")
    return scheduler


def reschedule_auto_sync(scheduler: Optional[AsyncIOScheduler], interval_minutes: int) -> None:
    """Apply a changed sync interval to the running scheduler."""
    if scheduler is None or scheduler.get_job(AUTO_SYNC_JOB_ID) is None:
        return
    interval = max(1, int(interval_minutes))
    scheduler.reschedule_job(AUTO_SYNC_JOB_ID, trigger=IntervalTrigger(minutes=interval))
    logger.info(f"Auto sync rescheduled: every {interval} minutes")
