"""Work schedule Pydantic v2 schemas — templates, assignments, current schedule."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

TIME_WINDOWS = (
    ("flex_time_start", "flex_time_end"),
    ("core_time_start", "core_time_end"),
)


def inverted_windows(values: dict[str, Any]) -> dict[str, list[str]]:
    """Errors for every window whose start is not before its end."""
    errors: dict[str, list[str]] = {}
    for start, end in TIME_WINDOWS:
        lo, hi = values.get(start), values.get(end)
        # HH:MM strings compare correctly as text
        if lo and hi and lo >= hi:
            errors[start] = [f"{start} must be before {end}."]
    return errors


# ═════════════════════════════════════════════════════════════════════
# Template
# ═════════════════════════════════════════════════════════════════════


class _TemplateTimes(BaseModel):
    flex_time_start: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    flex_time_end: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    core_time_start: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    core_time_end: Optional[str] = Field(None, pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def validate_windows(self):
        errors = inverted_windows(self.model_dump())
        if errors:
            raise ValueError(next(iter(errors.values()))[0])
        return self


class WorkScheduleCreate(_TemplateTimes):
    """Payload for creating a schedule template."""

    name: str = Field(..., min_length=1, max_length=100)
    standard_hours: Decimal = Field(..., ge=1, le=12)
    break_duration: int = Field(60, ge=0, description="Minutes")
    overtime_threshold: Decimal = Field(Decimal("8.0"), ge=1, description="Hours")
    is_flex_time: bool = False
    is_default: bool = False
    company_id: Optional[uuid.UUID] = Field(
        None, description="Required for ADMIN; COMPANY admins use their own company"
    )


class WorkScheduleUpdate(_TemplateTimes):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    standard_hours: Optional[Decimal] = Field(None, ge=1, le=12)
    break_duration: Optional[int] = Field(None, ge=0)
    overtime_threshold: Optional[Decimal] = Field(None, ge=1)
    is_flex_time: Optional[bool] = None
    is_default: Optional[bool] = None

    @field_validator(
        "name",
        "standard_hours",
        "break_duration",
        "overtime_threshold",
        "is_flex_time",
        "is_default",
        mode="before",
    )
    @classmethod
    def not_null(cls, v: Any) -> Any:
        # Omit a field to keep it; only the HH:MM windows may be cleared
        if v is None:
            raise ValueError("may be omitted but not set to null.")
        return v


class WorkScheduleBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    standard_hours: Decimal
    is_flex_time: bool


class WorkScheduleOut(BaseModel):
    """Full template representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    standard_hours: Decimal
    flex_time_start: Optional[str] = None
    flex_time_end: Optional[str] = None
    core_time_start: Optional[str] = None
    core_time_end: Optional[str] = None
    break_duration: int
    overtime_threshold: Decimal
    is_flex_time: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime

    # Filled by the list endpoint
    assignment_count: Optional[int] = None


# ═════════════════════════════════════════════════════════════════════
# Assignment
# ═════════════════════════════════════════════════════════════════════


class _AssignmentDates(BaseModel):
    start_date: date
    end_date: Optional[date] = Field(None, description="Omit for an open-ended assignment")

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


class AssignmentCreate(_AssignmentDates):
    """Assign a template to a user over a date range."""

    user_id: uuid.UUID
    work_schedule_id: uuid.UUID


class AssignmentUpdate(_AssignmentDates):
    """New date range, optionally with a different template."""

    work_schedule_id: Optional[uuid.UUID] = None


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    work_schedule_id: uuid.UUID
    start_date: date
    end_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    work_schedule: Optional[WorkScheduleBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Current schedule
# ═════════════════════════════════════════════════════════════════════


class ScheduleSource(str, enum.Enum):
    assignment = "ASSIGNMENT"
    company_default = "COMPANY_DEFAULT"
    none = "NONE"


class CurrentScheduleOut(BaseModel):
    """Schedule in force for a user on a date.

    ``source`` is NONE, with both fields null, when the user has no
    covering assignment and the company has no default template.
    """

    user_id: uuid.UUID
    as_of: date
    source: ScheduleSource
    assignment: Optional[AssignmentOut] = None
    work_schedule: Optional[WorkScheduleOut] = None
