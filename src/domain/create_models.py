"""Pydantic models for creating records in database."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from src.core.config import constants
from src.domain.routine import Duration, Frequency, RoutineTaskStatus, TimeOfDay


def check_timezone(v: str | None) -> str | None:
    """Validate the timezone is a known IANA name."""
    if v is None:
        return v
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as e:
        msg = f"Unknown timezone: {v}"
        raise ValueError(msg) from e
    return v


class RoutineCreate(BaseModel):
    """Pydantic model for creating a routine record."""

    name: str = Field(..., min_length=1, description="Routine name")
    description: str | None = Field(None, description="Optional routine notes")
    category: str | None = Field(None, description="Free-form grouping")
    frequency: Frequency = Field(..., description="Recurrence frequency")
    duration: Duration = Field(..., description="Advisory duration")
    time_of_day: TimeOfDay | None = Field(None, description="Optional wall-clock anchor")
    ideal_day: int | None = Field(None, ge=0, le=6, description="Preferred weekday, 0 = Sunday")
    project_id: str | None = Field(None, description="External project for generated tasks")
    labels: list[str] = Field(default_factory=list, description="Labels copied onto external tasks")
    priority: int = Field(default=1, ge=1, le=4, description="External task priority")
    timezone: str | None = Field(None, description="IANA timezone overriding the default")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Routine name cannot be blank"
            raise ValueError(msg)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        return check_timezone(v)


class RoutineTaskCreate(BaseModel):
    """Pydantic model for creating a routine task record."""

    routine_id: str
    ready_date: int
    due_date: int
    external_task_id: str = Field(default=constants.PENDING_EXTERNAL_ID)
    status: RoutineTaskStatus = Field(default=RoutineTaskStatus.PENDING)
