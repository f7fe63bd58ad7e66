"""Model factories and auth helpers shared by the test modules."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.common.constants import LeaveStatus, LeaveType, UserRole
from worktime.config import settings
from worktime.leave.models import LeaveBalance, LeaveRequest
from worktime.schedules.models import UserWorkSchedule, WorkSchedule
from worktime.users.models import Company, User


async def make_company(db: AsyncSession, *, name: str = "Acme KK") -> Company:
    company = Company(id=uuid.uuid4(), name=name, is_active=True)
    db.add(company)
    await db.flush()
    return company


async def make_user(
    db: AsyncSession,
    *,
    role: UserRole = UserRole.member,
    company: Optional[Company] = None,
    manager: Optional[User] = None,
    managed_company: Optional[Company] = None,
    first_name: str = "Test",
    last_name: str = "User",
    is_active: bool = True,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{first_name.lower()}.{uuid.uuid4().hex[:8]}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
        company_id=company.id if company else None,
        manager_id=manager.id if manager else None,
        managed_company_id=managed_company.id if managed_company else None,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def make_balance(
    db: AsyncSession,
    user: User,
    *,
    year: int = 2025,
    total: Decimal = Decimal("20"),
    used: Decimal = Decimal("0"),
    leave_type: LeaveType = LeaveType.paid_leave,
) -> LeaveBalance:
    balance = LeaveBalance(
        id=uuid.uuid4(),
        user_id=user.id,
        year=year,
        leave_type=leave_type,
        total_days=total,
        used_days=used,
        remaining_days=total - used,
        expiry_date=date(year + 1, 4, 30),
    )
    db.add(balance)
    await db.flush()
    return balance


async def make_leave_request(
    db: AsyncSession,
    user: User,
    start: date,
    end: date,
    *,
    days: Optional[Decimal] = None,
    status: LeaveStatus = LeaveStatus.pending,
    leave_type: LeaveType = LeaveType.paid_leave,
) -> LeaveRequest:
    leave_req = LeaveRequest(
        id=uuid.uuid4(),
        user_id=user.id,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        days=days if days is not None else Decimal((end - start).days + 1),
        status=status,
        requested_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(leave_req)
    await db.flush()
    return leave_req


async def make_template(
    db: AsyncSession,
    company: Company,
    *,
    name: str = "Standard 9-18",
    is_default: bool = False,
    standard_hours: Decimal = Decimal("8"),
) -> WorkSchedule:
    template = WorkSchedule(
        id=uuid.uuid4(),
        company_id=company.id,
        name=name,
        standard_hours=standard_hours,
        core_time_start="10:00",
        core_time_end="15:00",
        break_duration=60,
        overtime_threshold=Decimal("8.0"),
        is_flex_time=False,
        is_default=is_default,
    )
    db.add(template)
    await db.flush()
    return template


async def make_assignment(
    db: AsyncSession,
    user: User,
    template: WorkSchedule,
    start: date,
    end: Optional[date] = None,
) -> UserWorkSchedule:
    assignment = UserWorkSchedule(
        id=uuid.uuid4(),
        user_id=user.id,
        work_schedule_id=template.id,
        start_date=start,
        end_date=end,
    )
    db.add(assignment)
    await db.flush()
    return assignment


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(user_id: uuid.UUID, *, expired: bool = False) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {"sub": str(user_id), "type": "access", "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
