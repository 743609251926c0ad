"""Routine domain models and enums."""

import json
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class Frequency(StrEnum):
    """How often a routine recurs."""

    DAILY = "Daily"
    TWICE_A_WEEK = "Twice a Week"
    WEEKLY = "Weekly"
    EVERY_OTHER_WEEK = "Every Other Week"
    MONTHLY = "Monthly"
    EVERY_OTHER_MONTH = "Every Other Month"
    QUARTERLY = "Quarterly"
    TWICE_A_YEAR = "Twice a Year"
    YEARLY = "Yearly"
    EVERY_OTHER_YEAR = "Every Other Year"

    @property
    def days(self) -> int:
        """Nominal period in days."""
        match self:
            case Frequency.DAILY:
                return 1
            case Frequency.TWICE_A_WEEK:
                return 3
            case Frequency.WEEKLY:
                return 7
            case Frequency.EVERY_OTHER_WEEK:
                return 14
            case Frequency.MONTHLY:
                return 30
            case Frequency.EVERY_OTHER_MONTH:
                return 60
            case Frequency.QUARTERLY:
                return 90
            case Frequency.TWICE_A_YEAR:
                return 182
            case Frequency.YEARLY:
                return 365
            case Frequency.EVERY_OTHER_YEAR:
                return 730


class Duration(StrEnum):
    """Advisory time a routine takes."""

    FIVE_MINUTES = "5min"
    FIFTEEN_MINUTES = "15min"
    THIRTY_MINUTES = "30min"
    FORTY_FIVE_MINUTES = "45min"
    ONE_HOUR = "1hr"
    TWO_HOURS = "2hr"
    THREE_HOURS = "3hr"
    FOUR_HOURS = "4hr"

    @property
    def minutes(self) -> int:
        match self:
            case Duration.FIVE_MINUTES:
                return 5
            case Duration.FIFTEEN_MINUTES:
                return 15
            case Duration.THIRTY_MINUTES:
                return 30
            case Duration.FORTY_FIVE_MINUTES:
                return 45
            case Duration.ONE_HOUR:
                return 60
            case Duration.TWO_HOURS:
                return 120
            case Duration.THREE_HOURS:
                return 180
            case Duration.FOUR_HOURS:
                return 240

    @property
    def hours(self) -> float:
        return round(self.minutes / 60, 3)


class TimeOfDay(StrEnum):
    """Wall-clock slot a routine is anchored to."""

    MORNING = "Morning"
    DAY = "Day"
    EVENING = "Evening"
    NIGHT = "Night"

    @property
    def hour(self) -> int:
        """Local hour (24h clock) the slot starts at."""
        match self:
            case TimeOfDay.MORNING:
                return 7
            case TimeOfDay.DAY:
                return 11
            case TimeOfDay.EVENING:
                return 15
            case TimeOfDay.NIGHT:
                return 19

    @property
    def label(self) -> str:
        """Label attached to the external task."""
        return self.value.lower()


class RoutineTaskStatus(StrEnum):
    """Lifecycle status of a generated routine task."""

    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"
    SKIPPED = "skipped"
    DEFERRED = "deferred"

    @property
    def is_terminal(self) -> bool:
        return self is not RoutineTaskStatus.PENDING

    @property
    def counts_toward_completion(self) -> bool:
        """Deferred tasks are excluded from completion rates."""
        return self in (RoutineTaskStatus.COMPLETED, RoutineTaskStatus.MISSED, RoutineTaskStatus.SKIPPED)


class Routine(BaseModel):
    """Routine data transfer object."""

    id: str = Field(..., description="Unique routine ID")
    name: str = Field(..., description="Routine name (e.g., 'Water the plants')")
    description: str | None = Field(default=None, description="Optional routine notes")
    category: str | None = Field(default=None, description="Free-form grouping")
    frequency: Frequency = Field(..., description="Recurrence frequency")
    duration: Duration = Field(..., description="Advisory duration")
    time_of_day: TimeOfDay | None = Field(default=None, description="Optional wall-clock anchor")
    ideal_day: int | None = Field(default=None, ge=0, le=6, description="Preferred weekday, 0 = Sunday")
    project_id: str | None = Field(default=None, description="External project for generated tasks")
    labels: list[str] = Field(default_factory=list, description="Labels copied onto external tasks")
    priority: int = Field(default=1, ge=1, le=4, description="External task priority")
    timezone: str | None = Field(default=None, description="IANA timezone overriding the default")
    defer: bool = Field(default=False, description="Paused routines generate no tasks")
    deferral_date: int | None = Field(default=None, description="When the routine was deferred (epoch ms)")
    undeferred_date: int | None = Field(default=None, description="When the routine was last resumed (epoch ms)")
    last_completed_date: int | None = Field(default=None, description="Last completion (epoch ms)")
    completion_rate_overall: int = Field(default=100, ge=0, le=100)
    completion_rate_month: int = Field(default=100, ge=0, le=100)
    created: str = Field(default="", description="Record creation timestamp")
    updated: str = Field(default="", description="Record update timestamp")

    @field_validator("labels", mode="before")
    @classmethod
    def parse_labels(cls, v: object) -> object:
        """Labels are stored as a JSON array string."""
        if v is None:
            return []
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class RoutineTask(BaseModel):
    """Generated routine task instance."""

    id: str = Field(..., description="Unique routine task ID")
    routine_id: str = Field(..., description="Owning routine ID")
    external_task_id: str = Field(..., description="External task ID, or the placeholder until linked")
    ready_date: int = Field(..., description="When the task becomes actionable (epoch ms)")
    due_date: int = Field(..., description="When the task is due (epoch ms)")
    status: RoutineTaskStatus = Field(default=RoutineTaskStatus.PENDING)
    completed_date: int | None = Field(default=None, description="Completion time (epoch ms)")
    created: str = Field(default="")
    updated: str = Field(default="")
