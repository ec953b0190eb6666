import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from watchrouter.services.settings import Settings

logger = logging.getLogger(__name__)


def start_scheduler(status_service, settings: Settings, scheduler: AsyncIOScheduler = None) -> AsyncIOScheduler:
    """Registers the sync jobs and starts APScheduler"""
    scheduler = scheduler or AsyncIOScheduler()

    # Status + junction sync
    scheduler.add_job(
        status_service.sync_all_statuses,
        trigger=IntervalTrigger(minutes=settings.status_sync_interval_minutes),
        id="status_sync",
        name="Watchlist Status Sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    # Full sync of non-default instances (daily)
    scheduler.add_job(
        status_service.sync_all_configured_instances,
        trigger=CronTrigger(hour=settings.instance_sync_hour, minute=0),
        id="instance_sync",
        name="Instance Sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info(
            f"✓ Scheduler started (status every {settings.status_sync_interval_minutes}min, "
            f"instances daily at {settings.instance_sync_hour}:00)"
        )
    return scheduler
