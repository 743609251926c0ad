"""Per-routine task generation.

Generation is idempotent: every candidate date passes ``should_generate_task``,
which rejects calendar days that already hold a pending task, so running it
repeatedly for the same routine and clock creates nothing new.
"""

import logging

from pydantic import BaseModel

from src.core import db_client
from src.core.config import constants
from src.core.logging import span
from src.domain.create_models import RoutineTaskCreate
from src.domain.routine import Frequency, Routine, RoutineTaskStatus
from src.modules.routines import dates
from src.modules.routines.records import ROUTINE_TASKS, get_routine, list_routine_tasks, list_routines


logger = logging.getLogger(__name__)


class GeneratedTask(BaseModel):
    """A routine task persisted by generation, awaiting its external twin."""

    routine_task_id: str
    routine_id: str
    ready_date: int
    due_date: int


def was_recently_undeferred(routine: Routine, *, now: int) -> bool:
    return routine.undeferred_date is not None and now - routine.undeferred_date < constants.UNDEFER_WINDOW_MS


def candidate_ready_dates(routine: Routine, *, now: int) -> list[int]:
    """Ready dates a routine would like to have, before deduplication and window checks."""
    match routine.frequency:
        case Frequency.DAILY:
            return dates.get_business_days_ahead(now, constants.BUSINESS_DAYS_AHEAD)
        case Frequency.TWICE_A_WEEK:
            return dates.get_twice_a_week_dates(now, constants.TWICE_A_WEEK_PAIRS)

    first = dates.calculate_next_ready_date(
        routine,
        last_completed_date=routine.last_completed_date,
        was_recently_undeferred=was_recently_undeferred(routine, now=now),
        now=now,
    )
    first = dates.adjust_to_ideal_day(first, routine.ideal_day, routine.frequency)
    candidates = [first]

    # Pre-stage the following occurrence when the first one is imminent
    if first < dates.add_days(now, constants.SECOND_INSTANCE_LOOKAHEAD_DAYS):
        second = dates.calculate_next_ready_date(routine, last_completed_date=first, now=now)
        candidates.append(dates.adjust_to_ideal_day(second, routine.ideal_day, routine.frequency))

    return candidates


async def _create_routine_task(routine: Routine, *, ready_date: int) -> GeneratedTask:
    due_date = dates.calculate_due_date(ready_date, routine.time_of_day, routine.frequency)
    payload = RoutineTaskCreate(routine_id=routine.id, ready_date=ready_date, due_date=due_date)
    record = await db_client.create_record(collection=ROUTINE_TASKS, data=payload.model_dump(mode="json"))
    return GeneratedTask(
        routine_task_id=record["id"],
        routine_id=routine.id,
        ready_date=ready_date,
        due_date=due_date,
    )


async def generate_tasks_for_routine(routine_id: str, *, now: int | None = None) -> list[GeneratedTask]:
    """Create the pending tasks a routine is missing.

    Args:
        routine_id: Routine to generate for
        now: Current time in epoch ms

    Returns:
        Newly created tasks in ready-date order; empty for paused routines

    Raises:
        RecordNotFoundError: If the routine does not exist
    """
    current = now if now is not None else dates.now_ms()

    with span("routine_generation.generate_tasks_for_routine"):
        routine = await get_routine(routine_id)
        if routine.defer:
            return []

        pending = await list_routine_tasks(routine_id=routine_id, status=RoutineTaskStatus.PENDING)
        existing_day_keys = {dates.normalize_to_day(task.ready_date) for task in pending}

        created: list[GeneratedTask] = []
        for ready_date in sorted(candidate_ready_dates(routine, now=current)):
            if not dates.should_generate_task(routine, existing_day_keys, ready_date, now=current):
                continue

            created.append(await _create_routine_task(routine, ready_date=ready_date))
            existing_day_keys.add(dates.normalize_to_day(ready_date))

        logger.info("Generated %d routine tasks for %s (%s)", len(created), routine.name, routine.frequency)
        return created


def generation_floor(frequency: Frequency) -> int:
    """Minimum pending tasks a routine should hold inside the generation window."""
    match frequency:
        case Frequency.DAILY:
            return constants.GENERATION_FLOOR_DAILY
        case Frequency.TWICE_A_WEEK:
            return constants.GENERATION_FLOOR_TWICE_A_WEEK
        case _:
            return constants.GENERATION_FLOOR_DEFAULT


async def get_routines_needing_generation(*, now: int | None = None) -> list[Routine]:
    """Active routines whose pending tasks inside the window fall below their floor."""
    current = now if now is not None else dates.now_ms()
    window_end = dates.add_days(current, constants.GENERATION_WINDOW_DAYS)

    needing: list[Routine] = []
    for routine in await list_routines(deferred=False):
        pending = await list_routine_tasks(routine_id=routine.id, status=RoutineTaskStatus.PENDING)
        in_window = sum(1 for task in pending if task.ready_date <= window_end)
        if in_window < generation_floor(routine.frequency):
            needing.append(routine)

    return needing
