"""Record access shared by the routine services."""

from src.core import db_client
from src.core.db_client import sanitize_param
from src.domain.routine import Routine, RoutineTask, RoutineTaskStatus


ROUTINES = "routines"
ROUTINE_TASKS = "routine_tasks"


async def get_routine(routine_id: str) -> Routine:
    """Raises RecordNotFoundError if the routine does not exist."""
    record = await db_client.get_record(collection=ROUTINES, record_id=routine_id)
    return Routine(**record)


async def get_routine_task(task_id: str) -> RoutineTask:
    """Raises RecordNotFoundError if the routine task does not exist."""
    record = await db_client.get_record(collection=ROUTINE_TASKS, record_id=task_id)
    return RoutineTask(**record)


async def list_routines(*, deferred: bool | None = None, project_id: str | None = None) -> list[Routine]:
    """List routines by name, optionally narrowed to paused or active ones and to one project."""
    filters = []
    if deferred is not None:
        filters.append(f'defer = "{str(deferred).lower()}"')
    if project_id is not None:
        filters.append(f'project_id = "{sanitize_param(project_id)}"')

    records = await db_client.list_all_records(
        collection=ROUTINES,
        filter_query=" && ".join(filters),
        sort="+name",
    )
    return [Routine(**r) for r in records]


async def list_routine_tasks(
    *,
    routine_id: str | None = None,
    status: RoutineTaskStatus | None = None,
) -> list[RoutineTask]:
    """List routine tasks by routine and/or status, ordered by ready date."""
    filters = []
    if routine_id is not None:
        filters.append(f'routine_id = "{sanitize_param(routine_id)}"')
    if status is not None:
        filters.append(f'status = "{status}"')

    records = await db_client.list_all_records(
        collection=ROUTINE_TASKS,
        filter_query=" && ".join(filters),
        sort="+ready_date",
    )
    return [RoutineTask(**r) for r in records]
