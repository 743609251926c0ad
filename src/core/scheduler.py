"""Scheduler for the automated jobs declared by feature modules."""

import logging
from datetime import UTC, datetime
from functools import partial

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter

from src.core.module_registry import get_all_scheduled_jobs
from src.core.scheduler_tracker import retry_job_with_backoff


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone=UTC)


def get_next_run_time(cron: str, *, now: datetime | None = None) -> datetime:
    """Return the next UTC fire time of a cron expression."""
    base = now or datetime.now(UTC)
    return croniter(cron, base).get_next(datetime)


def start_scheduler() -> None:
    """Register every module job and start the scheduler.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    for job in get_all_scheduled_jobs():
        scheduler.add_job(
            partial(retry_job_with_backoff, job.func, job.id),
            trigger=CronTrigger.from_crontab(job.cron, timezone=UTC),
            id=job.id,
            name=job.name,
            replace_existing=True,
        )
        logger.info(
            "Scheduled %s job: '%s' (next run %s)",
            job.id,
            job.cron,
            get_next_run_time(job.cron).isoformat(),
        )

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    if not scheduler.running:
        return
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
