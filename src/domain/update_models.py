"""Update models for database operations."""

from pydantic import BaseModel, Field, field_validator

from src.domain.create_models import check_timezone
from src.domain.routine import Duration, Frequency, TimeOfDay


class RoutineUpdate(BaseModel):
    """Partial update payload for a routine; unset fields are left untouched."""

    name: str | None = Field(None, min_length=1)
    description: str | None = None
    category: str | None = None
    frequency: Frequency | None = None
    duration: Duration | None = None
    time_of_day: TimeOfDay | None = None
    ideal_day: int | None = Field(None, ge=0, le=6)
    project_id: str | None = None
    labels: list[str] | None = None
    priority: int | None = Field(None, ge=1, le=4)
    timezone: str | None = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        return check_timezone(v)
