"""HTTP endpoints for managing routines and their tasks."""

import logging
from collections.abc import Awaitable
from typing import NoReturn, TypeVar

from fastapi import APIRouter, HTTPException, status

from src.core.db_client import DatabaseError
from src.core.errors import classify_error_with_response
from src.domain.create_models import RoutineCreate
from src.domain.routine import Routine, RoutineTask, RoutineTaskStatus
from src.domain.update_models import RoutineUpdate
from src.modules.routines import orchestrator, service
from src.modules.routines.completion import RoutineStats
from src.modules.routines.orchestrator import GenerationSummary
from src.modules.routines.service import ClearPendingResult, GenerationStatus


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routines", tags=["routines"])

T = TypeVar("T")


def _raise_http(e: Exception) -> NoReturn:
    error_response = classify_error_with_response(e)
    logger.warning("Routine request failed: %s", e, extra={"error_code": error_response.code})
    raise HTTPException(
        status_code=error_response.http_status,
        detail={
            "code": error_response.code,
            "message": error_response.message,
            "suggestion": error_response.suggestion,
        },
    ) from e


async def _call(operation: Awaitable[T]) -> T:
    """Await a service call, translating its errors into HTTP responses."""
    try:
        return await operation
    except (KeyError, ValueError, DatabaseError) as e:
        _raise_http(e)


@router.get("")
async def list_routines(deferred: bool | None = None, project_id: str | None = None) -> list[Routine]:
    return await _call(service.list_routines(deferred=deferred, project_id=project_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_routine(data: RoutineCreate) -> Routine:
    return await _call(service.create_routine(data))


@router.get("/generation-status")
async def get_generation_status() -> GenerationStatus:
    return await _call(service.get_routine_generation_status())


@router.post("/generate")
async def generate_now() -> GenerationSummary:
    """Run the generation pipeline immediately.

    Raises:
        HTTPException: 409 if a run is already in progress
    """
    summary = await orchestrator.run_generation_job()
    if summary is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Routine generation is already running")
    return summary


@router.post("/tasks/clear-pending")
async def clear_pending_tasks() -> ClearPendingResult:
    return await _call(service.clear_all_pending_routine_tasks())


@router.post("/tasks/{task_id}/skip")
async def skip_task(task_id: str) -> RoutineTask:
    return await _call(service.skip_routine_task(task_id))


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str) -> RoutineTask:
    return await _call(service.mark_routine_task_completed(task_id))


@router.get("/{routine_id}")
async def get_routine(routine_id: str) -> Routine:
    return await _call(service.get_routine(routine_id))


@router.patch("/{routine_id}")
async def update_routine(routine_id: str, data: RoutineUpdate) -> Routine:
    return await _call(service.update_routine(routine_id, data))


@router.delete("/{routine_id}")
async def delete_routine(routine_id: str) -> Routine:
    """Soft-delete: the routine is paused and its pending tasks are skipped."""
    return await _call(service.delete_routine(routine_id))


@router.post("/{routine_id}/defer")
async def defer_routine(routine_id: str) -> Routine:
    return await _call(service.defer_routine(routine_id))


@router.post("/{routine_id}/undefer")
async def undefer_routine(routine_id: str) -> Routine:
    return await _call(service.undefer_routine(routine_id))


@router.get("/{routine_id}/tasks")
async def get_routine_tasks(routine_id: str, task_status: RoutineTaskStatus | None = None) -> list[RoutineTask]:
    return await _call(service.get_routine_tasks(routine_id, status=task_status))


@router.get("/{routine_id}/stats")
async def get_routine_stats(routine_id: str) -> RoutineStats:
    return await _call(service.get_routine_stats(routine_id))
