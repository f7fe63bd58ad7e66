"""User ORM models: Company, User.

Only the columns the engine reads are modelled here: role, reporting line,
and company membership. Profile data, credentials, and sessions live with
the identity collaborator.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worktime.common.constants import UserRole
from worktime.database import Base, enum_type

if TYPE_CHECKING:
    from worktime.leave.models import LeaveBalance, LeaveRequest
    from worktime.schedules.models import UserWorkSchedule, WorkSchedule


# ═════════════════════════════════════════════════════════════════════
# Company
# ═════════════════════════════════════════════════════════════════════


class Company(Base):
    """Tenant company; owns users and work-schedule templates."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ───────────────────────────────────────────────
    users: Mapped[list[User]] = relationship(
        back_populates="company", foreign_keys="User.company_id",
    )
    work_schedules: Mapped[list["WorkSchedule"]] = relationship(
        back_populates="company",
    )

    def __repr__(self) -> str:
        return f"<Company {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# User
# ═════════════════════════════════════════════════════════════════════


class User(Base):
    """A subject of leave/schedule records and, when authenticated, an actor."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.member,
    )

    # ── Org hierarchy ───────────────────────────────────────────────
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), index=True,
    )
    # Set for COMPANY admins: the company whose users they administer
    managed_company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"),
    )
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), index=True,
    )

    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ───────────────────────────────────────────────
    company: Mapped[Optional[Company]] = relationship(
        back_populates="users", foreign_keys=[company_id],
    )
    manager: Mapped[Optional[User]] = relationship(
        back_populates="direct_reports",
        remote_side=[id],
        foreign_keys=[manager_id],
    )
    direct_reports: Mapped[list[User]] = relationship(
        back_populates="manager", foreign_keys=[manager_id],
    )
    leave_requests: Mapped[list["LeaveRequest"]] = relationship(
        back_populates="user", foreign_keys="LeaveRequest.user_id",
    )
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="user",
    )
    work_schedules: Mapped[list["UserWorkSchedule"]] = relationship(
        back_populates="user",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} {self.role.value}>"
