"""Scheduled jobs for the routines module."""

from src.core.config import settings
from src.core.module import ScheduledJob
from src.modules.routines.orchestrator import GENERATION_JOB_ID, run_generation_job


def get_scheduled_jobs() -> list[ScheduledJob]:
    """Return the routine generation job on the configured cron."""
    return [
        ScheduledJob(
            id=GENERATION_JOB_ID,
            name="Daily routine generation",
            cron=settings.routine_generation_cron,
            func=run_generation_job,
        ),
    ]
