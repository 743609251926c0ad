"""Lifecycle transitions for routine tasks.

A routine task is created pending and moves exactly once to a terminal
status. Every transition re-reads the task and refuses to leave a terminal
status.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from src.core import db_client
from src.core.config import constants, settings
from src.core.logging import span
from src.domain.routine import RoutineTask, RoutineTaskStatus
from src.modules.routines import dates
from src.modules.routines.records import ROUTINE_TASKS, get_routine_task, list_routine_tasks, list_routines


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[RoutineTaskStatus, set[RoutineTaskStatus]] = {
    RoutineTaskStatus.PENDING: {
        RoutineTaskStatus.COMPLETED,
        RoutineTaskStatus.MISSED,
        RoutineTaskStatus.SKIPPED,
        RoutineTaskStatus.DEFERRED,
    },
    RoutineTaskStatus.COMPLETED: set(),
    RoutineTaskStatus.MISSED: set(),
    RoutineTaskStatus.SKIPPED: set(),
    RoutineTaskStatus.DEFERRED: set(),
}


class OverdueSweepResult(BaseModel):
    """Outcome of marking overdue pending tasks missed."""

    missed_count: int = 0
    external_task_ids: list[str] = Field(default_factory=list)
    routine_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class DeferredSweepResult(BaseModel):
    """Outcome of marking pending tasks of paused routines deferred."""

    deferred_task_count: int = 0
    deferred_routines_count: int = 0
    errors: list[str] = Field(default_factory=list)


def can_transition(current: RoutineTaskStatus, target: RoutineTaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


async def _transition(*, task_id: str, target: RoutineTaskStatus, extra: dict[str, Any] | None = None) -> RoutineTask:
    task = await get_routine_task(task_id)

    if not can_transition(task.status, target):
        msg = f"Cannot mark routine task {task_id} {target}: it is already {task.status}"
        raise ValueError(msg)

    record = await db_client.update_record(
        collection=ROUTINE_TASKS,
        record_id=task_id,
        data={"status": target, **(extra or {})},
    )
    logger.info("Transitioned routine task %s to %s", task_id, target)
    return RoutineTask(**record)


async def transition_to_completed(*, task_id: str, completed_date: int) -> RoutineTask:
    with span("routine_state_machine.transition_to_completed"):
        return await _transition(
            task_id=task_id,
            target=RoutineTaskStatus.COMPLETED,
            extra={"completed_date": completed_date},
        )


async def transition_to_missed(*, task_id: str) -> RoutineTask:
    with span("routine_state_machine.transition_to_missed"):
        return await _transition(task_id=task_id, target=RoutineTaskStatus.MISSED)


async def transition_to_skipped(*, task_id: str) -> RoutineTask:
    with span("routine_state_machine.transition_to_skipped"):
        return await _transition(task_id=task_id, target=RoutineTaskStatus.SKIPPED)


async def transition_to_deferred(*, task_id: str) -> RoutineTask:
    with span("routine_state_machine.transition_to_deferred"):
        return await _transition(task_id=task_id, target=RoutineTaskStatus.DEFERRED)


def is_overdue(task: RoutineTask, *, now: int) -> bool:
    """A pending task is overdue once it is more than the grace period past due."""
    grace_ms = settings.overdue_grace_days * dates.MS_PER_DAY
    return task.status == RoutineTaskStatus.PENDING and task.due_date < now and now - task.due_date > grace_ms


async def mark_overdue_tasks_missed(*, now: int | None = None) -> OverdueSweepResult:
    """Mark every pending task past its grace period as missed.

    Returns:
        Count of missed tasks, their linked external ids, the routines they belong to
        and a message per task that could not be transitioned
    """
    current = now if now is not None else dates.now_ms()

    with span("routine_state_machine.mark_overdue_tasks_missed"):
        result = OverdueSweepResult()
        routine_ids: set[str] = set()

        for task in await list_routine_tasks(status=RoutineTaskStatus.PENDING):
            if not is_overdue(task, now=current):
                continue

            try:
                await transition_to_missed(task_id=task.id)
            except Exception as e:
                result.errors.append(f"task {task.id}: {e}")
                logger.error("Failed to mark routine task %s missed: %s", task.id, e)
                continue
            result.missed_count += 1
            routine_ids.add(task.routine_id)
            if task.external_task_id != constants.PENDING_EXTERNAL_ID:
                result.external_task_ids.append(task.external_task_id)

        result.routine_ids = sorted(routine_ids)
        logger.info(
            "Marked %d overdue routine tasks missed across %d routines",
            result.missed_count,
            len(result.routine_ids),
        )
        return result


async def mark_deferred_routine_tasks() -> DeferredSweepResult:
    """Move every pending task of a paused routine to deferred."""
    with span("routine_state_machine.mark_deferred_routine_tasks"):
        result = DeferredSweepResult()

        for routine in await list_routines(deferred=True):
            result.deferred_routines_count += 1
            for task in await list_routine_tasks(routine_id=routine.id, status=RoutineTaskStatus.PENDING):
                try:
                    await transition_to_deferred(task_id=task.id)
                except Exception as e:
                    result.errors.append(f"task {task.id}: {e}")
                    logger.error("Failed to mark routine task %s deferred: %s", task.id, e)
                    continue
                result.deferred_task_count += 1

        logger.info(
            "Deferred %d pending routine tasks across %d paused routines",
            result.deferred_task_count,
            result.deferred_routines_count,
        )
        return result
