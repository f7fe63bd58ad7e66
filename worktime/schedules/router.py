"""Work schedule router — templates, assignments, current schedule.

Template writes require a COMPANY admin or above; assignment writes require
MANAGER or above. Per-subject scope is enforced in the service.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.auth.dependencies import get_current_user, require_role
from worktime.common.clock import Clock, get_clock
from worktime.common.constants import UserRole
from worktime.database import get_db
from worktime.schedules.schemas import (
    AssignmentCreate,
    AssignmentOut,
    AssignmentUpdate,
    CurrentScheduleOut,
    WorkScheduleCreate,
    WorkScheduleOut,
    WorkScheduleUpdate,
)
from worktime.schedules.service import WorkScheduleService
from worktime.users.models import User

router = APIRouter(prefix="", tags=["schedules"])


# ── Templates ───────────────────────────────────────────────────────

@router.post(
    "/templates",
    response_model=WorkScheduleOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    body: WorkScheduleCreate,
    user: User = Depends(require_role(UserRole.company)),
    db: AsyncSession = Depends(get_db),
):
    """Create a schedule template. ``is_default`` replaces the company's current default."""
    return await WorkScheduleService.create_template(db, user, body)


@router.get("/templates", response_model=list[WorkScheduleOut])
async def list_templates(
    company_id: Optional[uuid.UUID] = Query(None, description="ADMIN only"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WorkScheduleService.list_templates(db, user, company_id=company_id)


@router.get("/templates/{schedule_id}", response_model=WorkScheduleOut)
async def get_template(
    schedule_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WorkScheduleService.get_template(db, user, schedule_id)


@router.put("/templates/{schedule_id}", response_model=WorkScheduleOut)
async def update_template(
    schedule_id: uuid.UUID,
    body: WorkScheduleUpdate,
    user: User = Depends(require_role(UserRole.company)),
    db: AsyncSession = Depends(get_db),
):
    return await WorkScheduleService.update_template(db, user, schedule_id, body)


@router.delete("/templates/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    schedule_id: uuid.UUID,
    user: User = Depends(require_role(UserRole.company)),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unassigned, non-default template."""
    await WorkScheduleService.delete_template(db, user, schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Assignments ─────────────────────────────────────────────────────

@router.post(
    "/assignments",
    response_model=AssignmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def assign_schedule(
    body: AssignmentCreate,
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Assign a template to a user; omit ``end_date`` for an open-ended assignment."""
    return await WorkScheduleService.assign(db, user, body)


@router.get("/assignments", response_model=list[AssignmentOut])
async def list_assignments(
    user_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await WorkScheduleService.list_assignments(db, user, user_id=user_id)


@router.put("/assignments/{assignment_id}", response_model=AssignmentOut)
async def update_assignment(
    assignment_id: uuid.UUID,
    body: AssignmentUpdate,
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    return await WorkScheduleService.update_assignment(db, user, assignment_id, body)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_assignment(
    assignment_id: uuid.UUID,
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    await WorkScheduleService.delete_assignment(db, user, assignment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── GET /current ────────────────────────────────────────────────────

@router.get("/current", response_model=CurrentScheduleOut)
async def current_schedule(
    user_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Schedule in force today, falling back to the company default."""
    return await WorkScheduleService.resolve_current(db, user, clock, user_id=user_id)
