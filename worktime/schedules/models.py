"""Work schedule ORM models: WorkSchedule (template), UserWorkSchedule (assignment)."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worktime.database import Base


class WorkSchedule(Base):
    __tablename__ = "work_schedules"
    __table_args__ = (
        sa.Index("ix_work_schedules_company_default", "company_id", "is_default"),
        # At most one default per company
        sa.Index(
            "uq_work_schedules_one_default",
            "company_id",
            unique=True,
            postgresql_where=sa.text("is_default"),
            sqlite_where=sa.text("is_default"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    standard_hours: Mapped[Decimal] = mapped_column(sa.Numeric(4, 2), nullable=False)
    # HH:MM strings
    flex_time_start: Mapped[Optional[str]] = mapped_column(sa.String(5))
    flex_time_end: Mapped[Optional[str]] = mapped_column(sa.String(5))
    core_time_start: Mapped[Optional[str]] = mapped_column(sa.String(5))
    core_time_end: Mapped[Optional[str]] = mapped_column(sa.String(5))
    # Minutes
    break_duration: Mapped[int] = mapped_column(sa.Integer, default=60)
    # Hours per day after which work counts as overtime
    overtime_threshold: Mapped[Decimal] = mapped_column(
        sa.Numeric(4, 2), default=Decimal("8.0")
    )
    is_flex_time: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    is_default: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    company: Mapped["worktime.users.models.Company"] = relationship(
        back_populates="work_schedules"
    )
    # Templates are only deleted when unassigned
    user_schedules: Mapped[list[UserWorkSchedule]] = relationship(
        back_populates="work_schedule", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<WorkSchedule {self.name!r} default={self.is_default}>"


class UserWorkSchedule(Base):
    __tablename__ = "user_work_schedules"
    __table_args__ = (
        sa.CheckConstraint(
            "end_date IS NULL OR start_date <= end_date",
            name="ck_user_work_schedule_dates",
        ),
        sa.Index("ix_user_work_schedules_user_dates", "user_id", "start_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_schedule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("work_schedules.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # NULL = open-ended
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    user: Mapped["worktime.users.models.User"] = relationship(
        back_populates="work_schedules"
    )
    work_schedule: Mapped[WorkSchedule] = relationship(
        back_populates="user_schedules"
    )

    def __repr__(self) -> str:
        return (
            f"<UserWorkSchedule {self.user_id} {self.start_date}.."
            f"{self.end_date or 'open'}>"
        )
