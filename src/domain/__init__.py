"""Domain models and DTOs."""

from src.domain.create_models import RoutineCreate, RoutineTaskCreate
from src.domain.routine import Duration, Frequency, Routine, RoutineTask, RoutineTaskStatus, TimeOfDay
from src.domain.update_models import RoutineUpdate


__all__ = [
    "Duration",
    "Frequency",
    "Routine",
    "RoutineCreate",
    "RoutineTask",
    "RoutineTaskCreate",
    "RoutineTaskStatus",
    "RoutineUpdate",
    "TimeOfDay",
]
