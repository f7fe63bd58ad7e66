"""Leave router — requests, approvals, balances, statistics.

All endpoints require authentication. Approval and balance-administration
endpoints enforce role checks; per-subject scope is enforced in the service.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.auth.dependencies import get_current_user, require_role
from worktime.common.clock import Clock, get_clock
from worktime.common.constants import LeaveStatus, LeaveType, UserRole
from worktime.common.pagination import PaginatedResponse, PaginationParams
from worktime.database import get_db
from worktime.leave.schemas import (
    BalanceAdjustRequest,
    BalanceInitializeRequest,
    LeaveBalanceOut,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatsOut,
)
from worktime.leave.service import LeaveService
from worktime.users.models import User

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post(
    "/requests",
    response_model=LeaveRequestOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_request(
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Submit a leave request. Checks balance sufficiency and overlaps."""
    return await LeaveService.create_request(db, user, body, clock)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    user_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests visible to the caller, newest first."""
    return await LeaveService.list_requests(
        db,
        user,
        params,
        user_id=user_id,
        status=status,
        leave_type=leave_type,
        from_date=from_date,
        to_date=to_date,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, user, request_id)


# ── PUT /requests/{id} ──────────────────────────────────────────────

@router.put("/requests/{request_id}", response_model=LeaveRequestOut)
async def update_request(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Edit a pending request (requester only)."""
    return await LeaveService.update_request(db, user, request_id, body, clock)


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending request (requester only)."""
    await LeaveService.delete_request(db, user, request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── PATCH /requests/{id}/approve ────────────────────────────────────

@router.patch("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Approve a pending request. Debits the balance for ledger-tracked types."""
    return await LeaveService.approve_request(db, user, request_id, clock)


# ── PATCH /requests/{id}/reject ─────────────────────────────────────

@router.patch("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    user: User = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Reject a pending request."""
    return await LeaveService.reject_request(db, user, request_id, body.reason, clock)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    user_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    year: Optional[int] = Query(None, description="Leave year; defaults to current year"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await LeaveService.get_balances(db, user, clock, user_id=user_id, year=year)


# ── POST /balances/initialize ───────────────────────────────────────

@router.post("/balances/initialize", response_model=LeaveBalanceOut)
async def initialize_balance(
    body: BalanceInitializeRequest,
    user: User = Depends(require_role(UserRole.company)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Set a user's yearly allotment. Used days are preserved."""
    return await LeaveService.initialize_balance(db, user, body, clock)


# ── POST /balances/adjust ───────────────────────────────────────────

@router.post("/balances/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    body: BalanceAdjustRequest,
    user: User = Depends(require_role(UserRole.company)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Correct a user's used days with a reason."""
    return await LeaveService.adjust_balance(db, user, body, clock)


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def get_stats(
    user_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await LeaveService.get_stats(db, user, clock, user_id=user_id, year=year)
