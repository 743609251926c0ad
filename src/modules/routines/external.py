"""Mirroring routine tasks into the external task service.

Local records are the source of truth. External calls are bounded by a
timeout and their failures are reported to the caller rather than rolled
back, so a routine task keeps its placeholder id until a later sync links it.
"""

import asyncio
import logging

from src.core import db_client
from src.core.config import constants, settings
from src.core.errors import ExternalTaskCreateError
from src.core.logging import span
from src.domain.routine import Routine, RoutineTask
from src.interface import todoist_client
from src.interface.todoist_client import ExternalTaskSpec
from src.modules.routines import dates
from src.modules.routines.records import ROUTINE_TASKS, get_routine, get_routine_task


logger = logging.getLogger(__name__)


def build_external_task_spec(routine: Routine, *, ready_date: int, due_date: int) -> ExternalTaskSpec:
    """Translate a routine task into the external create payload."""
    labels = [*routine.labels, constants.ROUTINE_LABEL]
    if routine.time_of_day is not None:
        labels.append(routine.time_of_day.label)

    scheduled_day = dates.normalize_to_day(ready_date)
    deadline_day = dates.normalize_to_day(due_date)

    due_datetime = None
    if routine.time_of_day is not None:
        anchored = dates.apply_time_of_day(ready_date, routine.time_of_day, routine.timezone or settings.default_timezone)
        due_datetime = dates.to_datetime(anchored).strftime("%Y-%m-%dT%H:%M:%SZ")

    return ExternalTaskSpec(
        content=routine.name,
        description=routine.description,
        due_date=scheduled_day,
        due_datetime=due_datetime,
        deadline_date=deadline_day if deadline_day != scheduled_day else None,
        priority=routine.priority,
        labels=labels,
        project_id=routine.project_id or settings.todoist_default_project_id,
        duration=routine.duration.minutes,
    )


async def create_external_task(spec: ExternalTaskSpec) -> str:
    """Create the external task within the call timeout.

    Raises:
        ExternalTaskCreateError: If creation failed or timed out
    """
    try:
        return await asyncio.wait_for(
            todoist_client.create_task(spec),
            timeout=constants.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
    except TimeoutError as e:
        msg = f"Timed out creating external task '{spec.content}'"
        raise ExternalTaskCreateError(msg) from e


async def close_external_task(external_task_id: str) -> bool:
    """Close the external task; False on failure or timeout, never raises."""
    try:
        return await asyncio.wait_for(
            todoist_client.close_task(external_task_id),
            timeout=constants.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
    except TimeoutError:
        logger.warning("Timed out closing external task %s", external_task_id)
        return False


async def delete_external_task(external_task_id: str) -> bool:
    """Delete the external task; False on failure or timeout, never raises."""
    try:
        return await asyncio.wait_for(
            todoist_client.delete_task(external_task_id),
            timeout=constants.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )
    except TimeoutError:
        logger.warning("Timed out deleting external task %s", external_task_id)
        return False


async def link_routine_task(task_id: str, external_task_id: str) -> RoutineTask:
    """Record the external id of a routine task.

    Raises:
        RecordNotFoundError: If the routine task does not exist
    """
    with span("routine_external.link_routine_task"):
        record = await db_client.update_record(
            collection=ROUTINE_TASKS,
            record_id=task_id,
            data={"external_task_id": external_task_id},
        )
        logger.info("Linked routine task %s to external task %s", task_id, external_task_id)
        return RoutineTask(**record)


async def sync_routine_task(task_id: str, *, routine: Routine | None = None) -> str:
    """Create the external twin of a routine task and link it.

    Returns:
        The external task id

    Raises:
        RecordNotFoundError: If the task or its routine does not exist
        ExternalTaskCreateError: If the external service could not create the task
    """
    task = await get_routine_task(task_id)
    owner = routine or await get_routine(task.routine_id)

    spec = build_external_task_spec(owner, ready_date=task.ready_date, due_date=task.due_date)
    external_task_id = await create_external_task(spec)
    await link_routine_task(task_id, external_task_id)
    return external_task_id
