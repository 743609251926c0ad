"""Completion rate calculation and routine statistics."""

import logging
from collections import Counter

from pydantic import BaseModel, Field

from src.core import db_client
from src.core.config import constants
from src.core.logging import span
from src.domain.routine import Routine, RoutineTask, RoutineTaskStatus
from src.modules.routines import dates
from src.modules.routines.records import ROUTINES, get_routine, list_routine_tasks


logger = logging.getLogger(__name__)


class CompletionStats(BaseModel):
    """Completion rates persisted on a routine plus the counts behind them."""

    routine_id: str
    completion_rate_overall: int = Field(..., ge=0, le=100)
    completion_rate_month: int = Field(..., ge=0, le=100)
    total_tasks: int
    completed_count: int
    missed_count: int
    skipped_count: int


class RoutineStats(BaseModel):
    """Read model for a routine's detail view."""

    routine: Routine
    completion_rate_overall: int
    completion_rate_month: int
    recent_tasks: list[RoutineTask]
    next_task_date: int | None
    total_tasks: int
    pending_count: int
    completed_count: int
    missed_count: int
    skipped_count: int
    deferred_count: int


def completion_rate(tasks: list[RoutineTask]) -> int:
    """Percentage of rate-counting tasks that were completed, rounded half up.

    Deferred and pending tasks are ignored. With nothing to count the rate is 100.
    """
    counts = Counter(task.status for task in tasks if task.status.counts_toward_completion)
    total = sum(counts.values())
    if total == 0:
        return 100
    completed = counts[RoutineTaskStatus.COMPLETED]
    return (200 * completed + total) // (2 * total)


async def recalculate_completion_rate(routine_id: str, *, now: int | None = None) -> CompletionStats:
    """Recompute and persist both completion rates for a routine.

    Raises:
        RecordNotFoundError: If the routine does not exist
    """
    current = now if now is not None else dates.now_ms()

    with span("routine_completion.recalculate_completion_rate"):
        await get_routine(routine_id)
        tasks = await list_routine_tasks(routine_id=routine_id)

        month_start = dates.add_days(current, -constants.STATS_WINDOW_DAYS)
        monthly_tasks = [task for task in tasks if task.ready_date >= month_start]

        overall = completion_rate(tasks)
        month = completion_rate(monthly_tasks)

        await db_client.update_record(
            collection=ROUTINES,
            record_id=routine_id,
            data={"completion_rate_overall": overall, "completion_rate_month": month},
        )

        counts = Counter(task.status for task in tasks)
        logger.info("Recalculated completion rates for routine %s: overall=%d month=%d", routine_id, overall, month)

        return CompletionStats(
            routine_id=routine_id,
            completion_rate_overall=overall,
            completion_rate_month=month,
            total_tasks=len(tasks),
            completed_count=counts[RoutineTaskStatus.COMPLETED],
            missed_count=counts[RoutineTaskStatus.MISSED],
            skipped_count=counts[RoutineTaskStatus.SKIPPED],
        )


async def get_routine_stats(routine_id: str, *, now: int | None = None) -> RoutineStats:
    """Build the statistics view for one routine from its persisted rates and task history."""
    current = now if now is not None else dates.now_ms()

    with span("routine_completion.get_routine_stats"):
        routine = await get_routine(routine_id)
        tasks = await list_routine_tasks(routine_id=routine_id)

        window_start = dates.add_days(current, -constants.STATS_WINDOW_DAYS)
        recent = sorted(
            (task for task in tasks if task.ready_date >= window_start),
            key=lambda task: task.ready_date,
            reverse=True,
        )
        pending = [task for task in tasks if task.status == RoutineTaskStatus.PENDING]
        counts = Counter(task.status for task in tasks)

        return RoutineStats(
            routine=routine,
            completion_rate_overall=routine.completion_rate_overall,
            completion_rate_month=routine.completion_rate_month,
            recent_tasks=recent,
            next_task_date=min((task.ready_date for task in pending), default=None),
            total_tasks=len(tasks),
            pending_count=counts[RoutineTaskStatus.PENDING],
            completed_count=counts[RoutineTaskStatus.COMPLETED],
            missed_count=counts[RoutineTaskStatus.MISSED],
            skipped_count=counts[RoutineTaskStatus.SKIPPED],
            deferred_count=counts[RoutineTaskStatus.DEFERRED],
        )
