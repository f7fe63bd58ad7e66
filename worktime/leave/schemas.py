"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)
  - *Brief                        → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from worktime.common.constants import MIN_LEAVE_DAYS, LeaveStatus, LeaveType


def _in_half_steps(v: Decimal, field: str) -> Decimal:
    # Day columns are NUMERIC(5,1); half days are the finest unit
    if (v * 2) % 1 != 0:
        raise ValueError(f"{field} must be a multiple of 0.5.")
    return v


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class UserBrief(BaseModel):
    """Minimal user info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for one (user, year, leave type)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    year: int
    leave_type: LeaveType
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal
    expiry_date: Optional[date] = None


class BalanceInitializeRequest(BaseModel):
    """Admin payload for setting a yearly allotment."""

    user_id: uuid.UUID
    year: Optional[int] = Field(
        None, ge=2000, le=2100, description="Target year; defaults to current year"
    )
    total_days: Decimal = Field(..., ge=0, le=366)
    leave_type: LeaveType = LeaveType.paid_leave

    @field_validator("total_days")
    @classmethod
    def total_in_half_steps(cls, v: Decimal) -> Decimal:
        return _in_half_steps(v, "total_days")


class BalanceAdjustRequest(BaseModel):
    """Admin correction of used days."""

    user_id: uuid.UUID
    adjustment: Decimal = Field(
        ...,
        description=(
            "Positive records extra used days (debit), "
            "negative gives days back (credit)"
        ),
    )
    reason: str = Field(..., min_length=1, max_length=500)
    year: Optional[int] = Field(
        None, ge=2000, le=2100, description="Target year; defaults to current year"
    )
    leave_type: LeaveType = LeaveType.paid_leave

    @field_validator("adjustment")
    @classmethod
    def valid_adjustment(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("adjustment must not be 0.")
        return _in_half_steps(v, "adjustment")


# ═════════════════════════════════════════════════════════════════════
# Leave Request payloads
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting (or re-submitting on edit) a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    days: Decimal = Field(
        ..., ge=MIN_LEAVE_DAYS, description="Requested day count; 0.5 for a half day"
    )
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("days")
    @classmethod
    def days_in_half_steps(cls, v: Decimal) -> Decimal:
        return _in_half_steps(v, "days")

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        span = (self.end_date - self.start_date).days + 1
        if span > 366:
            raise ValueError("Leave request cannot span more than 366 days.")
        if self.days > span:
            raise ValueError("days cannot exceed the number of calendar days requested.")
        return self


LeaveRequestUpdate = LeaveRequestCreate


# ═════════════════════════════════════════════════════════════════════
# Leave Request responses
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: Decimal
    reason: Optional[str] = None
    status: LeaveStatus
    approver_id: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    reject_reason: Optional[str] = None
    requested_at: datetime
    updated_at: datetime

    user: Optional[UserBrief] = None
    approver: Optional[UserBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject
# ═════════════════════════════════════════════════════════════════════


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("reason must not be blank.")
        return v.strip()


# ═════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════


class LeaveStatEntry(BaseModel):
    """Count and day sum for one (leave type, status) pair."""

    leave_type: LeaveType
    status: LeaveStatus
    count: int
    days: Decimal


class MonthlyLeaveStat(BaseModel):
    month: int
    total_days: int


class LeaveStatsSummary(BaseModel):
    total_requests: int
    total_days: Decimal
    approved_requests: int
    approved_days: Decimal


class LeaveStatsOut(BaseModel):
    """Yearly leave statistics for one user."""

    user_id: uuid.UUID
    year: int
    leave_stats: list[LeaveStatEntry]
    monthly_stats: list[MonthlyLeaveStat]
    leave_balance: Optional[LeaveBalanceOut] = None
    summary: LeaveStatsSummary
