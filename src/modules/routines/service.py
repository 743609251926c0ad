"""Routine service for CRUD operations and task lifecycle actions."""

import logging
from typing import Any

from pydantic import BaseModel

from src.core import db_client
from src.core.config import constants
from src.core.db_client import sanitize_param
from src.core.logging import span
from src.domain.create_models import RoutineCreate
from src.domain.routine import Routine, RoutineTask, RoutineTaskStatus
from src.domain.update_models import RoutineUpdate
from src.modules.routines import completion, dates, external, records, state_machine
from src.modules.routines.completion import RoutineStats
from src.modules.routines.generation import get_routines_needing_generation
from src.modules.routines.records import ROUTINE_TASKS, ROUTINES


logger = logging.getLogger(__name__)


class GenerationStatus(BaseModel):
    """Counts shown before a manual generation run."""

    routines_needing_generation: int
    pending_tasks_count: int


class ClearPendingResult(BaseModel):
    """Outcome of clearing every pending routine task."""

    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    routines_recalculated: int = 0


async def create_routine(data: RoutineCreate) -> Routine:
    """Create a new active routine.

    Args:
        data: Validated routine fields

    Returns:
        Created routine with both completion rates at 100

    Raises:
        db_client.DatabaseError: If database operation fails
    """
    with span("routine_service.create_routine"):
        routine_data: dict[str, Any] = {
            **data.model_dump(mode="json"),
            "defer": False,
            "completion_rate_overall": 100,
            "completion_rate_month": 100,
        }

        record = await db_client.create_record(collection=ROUTINES, data=routine_data)
        logger.info("Created routine: %s (%s)", data.name, data.frequency)
        return Routine(**record)


async def update_routine(routine_id: str, data: RoutineUpdate) -> Routine:
    """Apply a partial update; only fields explicitly set on ``data`` are written.

    Raises:
        RecordNotFoundError: If the routine does not exist
    """
    with span("routine_service.update_routine"):
        changes = data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return await records.get_routine(routine_id)

        record = await db_client.update_record(collection=ROUTINES, record_id=routine_id, data=changes)
        logger.info("Updated routine %s: %s", routine_id, ", ".join(sorted(changes)))
        return Routine(**record)


async def delete_routine(routine_id: str, *, now: int | None = None) -> Routine:
    """Soft-delete a routine.

    The routine is paused rather than removed so its history keeps counting
    toward statistics. Its pending tasks are marked skipped.

    Raises:
        RecordNotFoundError: If the routine does not exist
    """
    current = now if now is not None else dates.now_ms()

    with span("routine_service.delete_routine"):
        await records.get_routine(routine_id)
        await db_client.update_record(
            collection=ROUTINES,
            record_id=routine_id,
            data={"defer": True, "deferral_date": current},
        )

        pending = await records.list_routine_tasks(routine_id=routine_id, status=RoutineTaskStatus.PENDING)
        for task in pending:
            await state_machine.transition_to_skipped(task_id=task.id)

        await completion.recalculate_completion_rate(routine_id, now=current)
        logger.info("Deleted routine %s and skipped %d pending tasks", routine_id, len(pending))
        return await records.get_routine(routine_id)


async def defer_routine(routine_id: str, *, now: int | None = None) -> Routine:
    """Pause a routine. Its pending tasks are moved to deferred by the next generation run."""
    current = now if now is not None else dates.now_ms()

    with span("routine_service.defer_routine"):
        record = await db_client.update_record(
            collection=ROUTINES,
            record_id=routine_id,
            data={"defer": True, "deferral_date": current},
        )
        logger.info("Deferred routine %s", routine_id)
        return Routine(**record)


async def undefer_routine(routine_id: str, *, now: int | None = None) -> Routine:
    """Resume a paused routine; tasks already deferred stay deferred."""
    current = now if now is not None else dates.now_ms()

    with span("routine_service.undefer_routine"):
        record = await db_client.update_record(
            collection=ROUTINES,
            record_id=routine_id,
            data={"defer": False, "deferral_date": None, "undeferred_date": current},
        )
        logger.info("Undeferred routine %s", routine_id)
        return Routine(**record)


async def get_routine(routine_id: str) -> Routine:
    return await records.get_routine(routine_id)


async def list_routines(*, deferred: bool | None = None, project_id: str | None = None) -> list[Routine]:
    return await records.list_routines(deferred=deferred, project_id=project_id)


async def get_routine_tasks(
    routine_id: str,
    *,
    status: RoutineTaskStatus | None = None,
) -> list[RoutineTask]:
    """List the tasks of one routine, oldest ready date first."""
    await records.get_routine(routine_id)
    return await records.list_routine_tasks(routine_id=routine_id, status=status)


async def get_routine_stats(routine_id: str, *, now: int | None = None) -> RoutineStats:
    return await completion.get_routine_stats(routine_id, now=now)


async def get_routine_generation_status(*, now: int | None = None) -> GenerationStatus:
    with span("routine_service.get_routine_generation_status"):
        needing = await get_routines_needing_generation(now=now)
        pending = await records.list_routine_tasks(status=RoutineTaskStatus.PENDING)
        return GenerationStatus(
            routines_needing_generation=len(needing),
            pending_tasks_count=len(pending),
        )


async def link_routine_task(task_id: str, external_task_id: str) -> RoutineTask:
    return await external.link_routine_task(task_id, external_task_id)


async def get_routine_task_by_external_id(external_task_id: str) -> RoutineTask | None:
    """Look up a routine task by its linked external id; None when nothing is linked to it."""
    if external_task_id == constants.PENDING_EXTERNAL_ID:
        return None

    record = await db_client.get_first_record(
        collection=ROUTINE_TASKS,
        filter_query=f'external_task_id = "{sanitize_param(external_task_id)}"',
    )
    return RoutineTask(**record) if record else None


async def skip_routine_task(task_id: str, *, now: int | None = None) -> RoutineTask:
    """Skip a pending task, close its external twin and refresh completion rates.

    A failed external close is logged; the local skip stands.

    Raises:
        RecordNotFoundError: If the task does not exist
        ValueError: If the task is not pending
    """
    with span("routine_service.skip_routine_task"):
        task = await state_machine.transition_to_skipped(task_id=task_id)

        if task.external_task_id != constants.PENDING_EXTERNAL_ID:
            closed = await external.close_external_task(task.external_task_id)
            if not closed:
                logger.warning(
                    "Skipped routine task %s but could not close external task %s",
                    task_id,
                    task.external_task_id,
                )

        await completion.recalculate_completion_rate(task.routine_id, now=now)
        return task


async def mark_routine_task_completed(
    task_id: str,
    *,
    completed_date: int | None = None,
    now: int | None = None,
    close_external: bool = True,
) -> RoutineTask:
    """Complete a pending task and advance its routine's last completion.

    A linked external task is closed best-effort unless ``close_external`` is
    False, which is how completions reported by Todoist itself arrive.

    Raises:
        RecordNotFoundError: If the task does not exist
        ValueError: If the task is not pending
    """
    current = now if now is not None else dates.now_ms()
    done_at = completed_date if completed_date is not None else current

    with span("routine_service.mark_routine_task_completed"):
        task = await state_machine.transition_to_completed(task_id=task_id, completed_date=done_at)

        if close_external and task.external_task_id != constants.PENDING_EXTERNAL_ID:
            closed = await external.close_external_task(task.external_task_id)
            if not closed:
                logger.warning(
                    "Completed routine task %s but could not close external task %s",
                    task_id,
                    task.external_task_id,
                )

        routine = await records.get_routine(task.routine_id)
        if routine.last_completed_date is None or done_at > routine.last_completed_date:
            await db_client.update_record(
                collection=ROUTINES,
                record_id=routine.id,
                data={"last_completed_date": done_at},
            )

        await completion.recalculate_completion_rate(task.routine_id, now=current)
        return task


async def handle_external_task_event(
    external_task_id: str,
    event_name: str,
    *,
    completed_date: int | None = None,
    now: int | None = None,
) -> RoutineTask | None:
    """Apply a webhook event from the external service to the linked routine task.

    Args:
        external_task_id: Id of the external task the event is about
        event_name: Webhook event name, e.g. "item:completed"
        completed_date: When the event happened (epoch ms); defaults to now
        now: Current time in epoch ms

    Returns:
        The updated task, or None when the event was ignored
    """
    with span("routine_service.handle_external_task_event"):
        task = await get_routine_task_by_external_id(external_task_id)
        if task is None:
            logger.debug("Ignoring %s for unlinked external task %s", event_name, external_task_id)
            return None

        if task.status != RoutineTaskStatus.PENDING:
            logger.info("Ignoring %s for routine task %s: already %s", event_name, task.id, task.status)
            return None

        match event_name:
            case "item:completed":
                return await mark_routine_task_completed(
                    task.id, completed_date=completed_date, now=now, close_external=False
                )
            case "item:deleted":
                updated = await state_machine.transition_to_skipped(task_id=task.id)
                await completion.recalculate_completion_rate(task.routine_id, now=now)
                return updated
            case _:
                logger.info("Ignoring %s for routine task %s", event_name, task.id)
                return None


async def clear_all_pending_routine_tasks(*, now: int | None = None) -> ClearPendingResult:
    """Remove every pending routine task locally and externally.

    Completed, missed, skipped and deferred tasks are kept as history. A task
    whose external delete fails is left in place and counted as failed.
    """
    with span("routine_service.clear_all_pending_routine_tasks"):
        result = ClearPendingResult()
        routine_ids: set[str] = set()

        for task in await records.list_routine_tasks(status=RoutineTaskStatus.PENDING):
            routine_ids.add(task.routine_id)

            if task.external_task_id == constants.PENDING_EXTERNAL_ID:
                await db_client.delete_record(collection=ROUTINE_TASKS, record_id=task.id)
                result.skipped += 1
                continue

            if await external.delete_external_task(task.external_task_id):
                await db_client.delete_record(collection=ROUTINE_TASKS, record_id=task.id)
                result.deleted += 1
            else:
                result.failed += 1

        for routine_id in sorted(routine_ids):
            try:
                await completion.recalculate_completion_rate(routine_id, now=now)
                result.routines_recalculated += 1
            except (KeyError, db_client.DatabaseError) as e:
                logger.error("Failed to recalculate routine %s: %s", routine_id, e)

        logger.info(
            "Cleared pending routine tasks: %d deleted, %d failed, %d never linked",
            result.deleted,
            result.failed,
            result.skipped,
        )
        return result
