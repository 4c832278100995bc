"""
Background job scheduler.

APScheduler runs the stale import-batch cleanup on an interval.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backoffice.core.config import settings
from backoffice.db.session import SessionLocal
from backoffice.services.import_batches import cleanup_stale_import_batches

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None


async def cleanup_stale_imports_job():
    """Mark every user's stuck import batches as failed."""
    try:
        async with SessionLocal() as db:
            count = await cleanup_stale_import_batches(db)
        if count:
            logger.info(f"Stale import cleanup: {count} batches marked failed")
    except Exception as e:
        logger.error(f"Stale import cleanup failed: {e}")


def init_scheduler():
    global scheduler

    if not settings.IMPORT_CLEANUP_ENABLED:
        logger.info("Stale import cleanup disabled")
        return

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        cleanup_stale_imports_job,
        trigger=IntervalTrigger(minutes=settings.IMPORT_CLEANUP_INTERVAL_MINUTES),
        id="cleanup_stale_imports",
        name="Stale import batch cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, stale import cleanup every {settings.IMPORT_CLEANUP_INTERVAL_MINUTES} min")


def shutdown_scheduler():
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    if not scheduler:
        return {"enabled": settings.IMPORT_CLEANUP_ENABLED, "running": False, "jobs": []}

    jobs = [
        {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        }
        for job in scheduler.get_jobs()
    ]
    return {"enabled": settings.IMPORT_CLEANUP_ENABLED, "running": scheduler.running, "jobs": jobs}
