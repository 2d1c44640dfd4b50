"""Background job scheduler for calendar syncing."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from fam_calendar.calendar.provider import get_provider
from fam_calendar.calendar.sync import cleanup_old_external_events, sync_all
from fam_calendar.core.config import settings
from fam_calendar.core.database import engine, session_factory

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def sync_job():
    """Background sync of every connected member."""
    try:
        stats = sync_all(session_factory(engine), get_provider())
        logger.info(f"Background sync completed: {stats}")
    except Exception as e:
        logger.error(f"Background sync failed: {e}")


def cleanup_job():
    """Drop cached Google events past the retention period."""
    try:
        with Session(engine) as session:
            deleted = cleanup_old_external_events(session, settings.external_event_retention_days)
            logger.info(f"External event cleanup removed {deleted} rows")
    except Exception as e:
        logger.error(f"External event cleanup failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        sync_job,
        trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
        id="calendar_sync",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(days=1),
        id="external_event_cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, syncing every {settings.sync_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
