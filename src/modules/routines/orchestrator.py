"""Daily routine generation pipeline.

The pipeline is best-effort: a failure for one task or routine is counted and
logged, and the run carries on with the rest. Only the summary tells the
caller what went wrong.
"""

import logging
import time

from pydantic import BaseModel, Field

from src.core.config import constants
from src.core.errors import ExternalTaskCreateError
from src.core.logging import log_with_context, span
from src.core.scheduler_tracker import job_tracker
from src.domain.routine import Routine, RoutineTaskStatus
from src.modules.routines import completion, dates, external, generation, records, state_machine


logger = logging.getLogger(__name__)

GENERATION_JOB_ID = "routine_generation"


class GenerationSummary(BaseModel):
    """Counters for one pipeline run."""

    duration_ms: int = 0
    overdue_tasks_marked: int = 0
    external_closed: int = 0
    external_close_failed: int = 0
    routines_recalculated: int = 0
    recalculation_failures: int = 0
    deferred_tasks_marked: int = 0
    deferred_routines_count: int = 0
    routines_processed: int = 0
    routines_succeeded: int = 0
    routines_failed: int = 0
    total_tasks_created: int = 0
    external_create_failed: int = 0
    relinked_tasks: int = 0
    errors: list[str] = Field(default_factory=list)


async def _relink_placeholder_tasks(summary: GenerationSummary) -> None:
    """Retry external creation for pending tasks of active routines that never got linked."""
    for routine in await records.list_routines(deferred=False):
        pending = await records.list_routine_tasks(routine_id=routine.id, status=RoutineTaskStatus.PENDING)
        for task in pending:
            if task.external_task_id != constants.PENDING_EXTERNAL_ID:
                continue
            try:
                await external.sync_routine_task(task.id, routine=routine)
            except ExternalTaskCreateError as e:
                summary.external_create_failed += 1
                logger.warning("Still unable to create external task for routine task %s: %s", task.id, e)
            except Exception as e:
                summary.external_create_failed += 1
                summary.errors.append(f"{routine.name}: {e}")
                logger.error("Failed to relink routine task %s: %s", task.id, e)
            else:
                summary.relinked_tasks += 1


async def _process_routine(routine: Routine, summary: GenerationSummary, *, now: int) -> None:
    created = await generation.generate_tasks_for_routine(routine.id, now=now)

    for task in created:
        spec = external.build_external_task_spec(routine, ready_date=task.ready_date, due_date=task.due_date)
        try:
            external_task_id = await external.create_external_task(spec)
        except ExternalTaskCreateError as e:
            summary.external_create_failed += 1
            logger.warning("Created routine task %s locally but not externally: %s", task.routine_task_id, e)
            continue

        await external.link_routine_task(task.routine_task_id, external_task_id)
        summary.total_tasks_created += 1


async def run_generation_pipeline(*, now: int | None = None) -> GenerationSummary:
    """Run the full generation pipeline once.

    Steps, in order:
    1. Mark pending tasks past their grace period missed
    2. Close the external twins of those tasks
    3. Recalculate completion rates of the affected routines
    4. Mark pending tasks of paused routines deferred
    5. Retry external creation for tasks still holding the placeholder id
    6. Generate and mirror tasks for every routine below its floor

    Args:
        now: Current time in epoch ms

    Returns:
        Summary of the run; partial failures are reported here, not raised
    """
    current = now if now is not None else dates.now_ms()
    started = time.monotonic()
    summary = GenerationSummary()

    with span("routine_orchestrator.run_generation_pipeline"):
        try:
            overdue = await state_machine.mark_overdue_tasks_missed(now=current)
        except Exception as e:
            overdue = state_machine.OverdueSweepResult(errors=[f"overdue sweep: {e}"])
            logger.error("Overdue sweep failed: %s", e)
        summary.overdue_tasks_marked = overdue.missed_count
        summary.errors.extend(overdue.errors)

        for external_task_id in overdue.external_task_ids:
            if await external.close_external_task(external_task_id):
                summary.external_closed += 1
            else:
                summary.external_close_failed += 1

        for routine_id in overdue.routine_ids:
            try:
                await completion.recalculate_completion_rate(routine_id, now=current)
            except Exception as e:
                summary.recalculation_failures += 1
                logger.error("Failed to recalculate completion rate for routine %s: %s", routine_id, e)
            else:
                summary.routines_recalculated += 1

        try:
            deferred = await state_machine.mark_deferred_routine_tasks()
        except Exception as e:
            deferred = state_machine.DeferredSweepResult(errors=[f"deferred sweep: {e}"])
            logger.error("Deferred sweep failed: %s", e)
        summary.deferred_tasks_marked = deferred.deferred_task_count
        summary.deferred_routines_count = deferred.deferred_routines_count
        summary.errors.extend(deferred.errors)

        try:
            await _relink_placeholder_tasks(summary)
        except Exception as e:
            summary.errors.append(f"placeholder relink: {e}")
            logger.error("Placeholder relink failed: %s", e)

        try:
            needing = await generation.get_routines_needing_generation(now=current)
        except Exception as e:
            needing = []
            summary.errors.append(f"routine selection: {e}")
            logger.error("Failed to select routines needing generation: %s", e)

        for routine in needing:
            summary.routines_processed += 1
            try:
                await _process_routine(routine, summary, now=current)
            except Exception as e:
                summary.routines_failed += 1
                summary.errors.append(f"{routine.name}: {e}")
                log_with_context(
                    logger,
                    "error",
                    "Routine generation failed",
                    routine_id=routine.id,
                    routine_name=routine.name,
                    error=str(e),
                )
            else:
                summary.routines_succeeded += 1

    summary.duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Routine generation finished",
        extra=summary.model_dump(exclude={"errors"}) | {"error_count": len(summary.errors)},
    )
    return summary


async def run_generation_job() -> GenerationSummary | None:
    """Run the pipeline unless another run holds the lock.

    Returns:
        The run summary, or None when a run was already in progress
    """
    if not await job_tracker.acquire_run_lock(GENERATION_JOB_ID):
        logger.warning("Routine generation already running; skipping this trigger")
        return None

    try:
        return await run_generation_pipeline()
    finally:
        await job_tracker.release_run_lock(GENERATION_JOB_ID)
