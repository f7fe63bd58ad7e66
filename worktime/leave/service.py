"""Leave service layer — request workflow, approvals, balances, statistics.

Business logic:
  - Submit / edit / cancel a PENDING request (subject only) with balance
    sufficiency and overlap checks
  - Approve (debit first, then flip status) or reject (reason required)
  - PENDING → APPROVED | REJECTED; both terminal
  - Balance view, admin allotment and used-days adjustment
  - Yearly statistics per user
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from worktime.access.scope import AccessScopeResolver, has_role
from worktime.common.audit import create_audit_entry
from worktime.common.clock import Clock
from worktime.common.constants import (
    LeaveStatus,
    LeaveType,
    UserRole,
    is_ledger_tracked,
)
from worktime.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateTransitionException,
    NotFoundException,
)
from worktime.common.pagination import (
    PaginatedResponse,
    PaginationParams,
    paginate,
)
from worktime.intervals.conflicts import leave_conflicts
from worktime.leave.ledger import LeaveBalanceLedger
from worktime.leave.models import LeaveBalance, LeaveRequest
from worktime.leave.schemas import (
    BalanceAdjustRequest,
    BalanceInitializeRequest,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatEntry,
    LeaveStatsOut,
    LeaveStatsSummary,
    MonthlyLeaveStat,
)
from worktime.users.models import User

logger = logging.getLogger(__name__)

ENTITY = "leave_request"


def _request_values(req: LeaveRequest) -> dict[str, str]:
    return {
        "leave_type": req.leave_type.value,
        "start_date": req.start_date.isoformat(),
        "end_date": req.end_date.isoformat(),
        "days": str(req.days),
        "status": req.status.value,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: requests, approvals, balances, statistics."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _lock_subject(db: AsyncSession, user_id: uuid.UUID) -> User:
        """Take the per-subject write lock (the user row) for this transaction."""
        result = await db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        subject = result.scalars().first()
        if subject is None:
            raise NotFoundException("User", str(user_id))
        return subject

    @staticmethod
    async def _load_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveRequest:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.approver),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _to_out(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def _validate_request(
        db: AsyncSession,
        subject_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        exclude_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Balance sufficiency (advisory) and overlap checks shared by create and edit."""
        if is_ledger_tracked(data.leave_type):
            balance = await LeaveBalanceLedger.ensure_balance(
                db,
                subject_id,
                data.start_date.year,
                data.leave_type,
                for_update=True,
                actor_id=actor_id,
            )
            if not LeaveBalanceLedger.check_sufficient(balance, data.days):
                logger.warning(
                    "Leave request by %s refused: %s days requested, %s remaining",
                    subject_id, data.days, balance.remaining_days,
                )
                raise InsufficientBalanceException(balance.remaining_days, data.days)

        conflict = await leave_conflicts.find_conflict(
            db, subject_id, data.start_date, data.end_date, exclude_id=exclude_id,
        )
        if conflict is not None:
            logger.warning(
                "Leave request by %s for %s..%s overlaps request %s",
                subject_id, data.start_date, data.end_date, conflict.id,
            )
            raise ConflictError(
                f"Overlapping leave request exists for "
                f"{conflict.start_date} to {conflict.end_date}.",
                conflicting_id=conflict.id,
            )

    @staticmethod
    async def _load_for_subject_write(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        action: str,
    ) -> LeaveRequest:
        """Load a request the actor wants to edit or delete.

        Visible but decided → 409; visible pending but not the actor's own → 403.
        """
        leave_req = await LeaveService._load_request(db, request_id)
        if not AccessScopeResolver.can_view(actor, leave_req.user):
            raise ForbiddenException("You do not have permission to access this leave request.")

        await LeaveService._lock_subject(db, leave_req.user_id)
        leave_req = await LeaveService._load_request(db, request_id, for_update=True)

        if leave_req.status != LeaveStatus.pending:
            raise InvalidStateTransitionException("leave request", leave_req.status, action)
        if leave_req.user_id != actor.id:
            raise ForbiddenException(f"Only the requester can {action} a leave request.")
        return leave_req

    @staticmethod
    async def _load_for_decision(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        action: str,
    ) -> LeaveRequest:
        leave_req = await LeaveService._load_request(db, request_id)

        if not has_role(actor, UserRole.manager):
            raise ForbiddenException(f"Role '{actor.role.value}' cannot {action} leave requests.")
        if leave_req.user_id == actor.id:
            raise ForbiddenException(f"You cannot {action} your own leave request.")
        if not AccessScopeResolver.can_act(actor, leave_req.user):
            raise ForbiddenException(f"You are not authorized to {action} this leave request.")

        await LeaveService._lock_subject(db, leave_req.user_id)
        leave_req = await LeaveService._load_request(db, request_id, for_update=True)

        if leave_req.status != LeaveStatus.pending:
            raise InvalidStateTransitionException("leave request", leave_req.status, action)
        return leave_req

    # ─────────────────────────────────────────────────────────────────
    # Create / edit / delete (subject)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession,
        actor: User,
        data: LeaveRequestCreate,
        clock: Clock,
    ) -> LeaveRequestOut:
        """Submit a PENDING request for the actor. No balance is debited here."""
        await LeaveService._lock_subject(db, actor.id)
        await LeaveService._validate_request(db, actor.id, data, actor_id=actor.id)

        now = clock.now()
        leave_req = LeaveRequest(
            user_id=actor.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            days=data.days,
            reason=data.reason,
            status=LeaveStatus.pending,
            requested_at=now,
            updated_at=now,
        )
        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type=ENTITY,
            entity_id=leave_req.id,
            subject_id=leave_req.user_id,
            actor_id=actor.id,
            new_values=_request_values(leave_req),
        )
        logger.info(
            "Leave request %s created by %s (%s, %s days)",
            leave_req.id, actor.id, data.leave_type.value, data.days,
        )
        return await LeaveService._to_out(db, leave_req.id)

    @staticmethod
    async def update_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        clock: Clock,
    ) -> LeaveRequestOut:
        """Edit a PENDING request, re-running every create-time check."""
        leave_req = await LeaveService._load_for_subject_write(db, actor, request_id, "edit")
        old_values = _request_values(leave_req)

        await LeaveService._validate_request(
            db, leave_req.user_id, data, exclude_id=leave_req.id, actor_id=actor.id,
        )

        leave_req.leave_type = data.leave_type
        leave_req.start_date = data.start_date
        leave_req.end_date = data.end_date
        leave_req.days = data.days
        leave_req.reason = data.reason
        leave_req.updated_at = clock.now()
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type=ENTITY,
            entity_id=leave_req.id,
            subject_id=leave_req.user_id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=_request_values(leave_req),
        )
        logger.info("Leave request %s edited by %s", leave_req.id, actor.id)
        return await LeaveService._to_out(db, leave_req.id)

    @staticmethod
    async def delete_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
    ) -> None:
        """Cancel a PENDING request by removing it. Decided requests are kept."""
        leave_req = await LeaveService._load_for_subject_write(db, actor, request_id, "delete")
        old_values = _request_values(leave_req)
        subject_id = leave_req.user_id

        await db.delete(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type=ENTITY,
            entity_id=request_id,
            subject_id=subject_id,
            actor_id=actor.id,
            old_values=old_values,
        )
        logger.info("Leave request %s deleted by %s", request_id, actor.id)

    # ─────────────────────────────────────────────────────────────────
    # Approve / reject (approver)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        clock: Clock,
    ) -> LeaveRequestOut:
        """Approve a PENDING request.

        For ledger-tracked types the balance is debited before the status
        changes, so an insufficient balance aborts the approval.
        """
        leave_req = await LeaveService._load_for_decision(db, actor, request_id, "approve")

        if is_ledger_tracked(leave_req.leave_type):
            balance = await LeaveBalanceLedger.ensure_balance(
                db,
                leave_req.user_id,
                leave_req.start_date.year,
                leave_req.leave_type,
                for_update=True,
                actor_id=actor.id,
            )
            await LeaveBalanceLedger.debit(db, balance, leave_req.days, actor_id=actor.id)

        now = clock.now()
        leave_req.status = LeaveStatus.approved
        leave_req.approver_id = actor.id
        leave_req.approved_at = now
        leave_req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type=ENTITY,
            entity_id=leave_req.id,
            subject_id=leave_req.user_id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value, "days": str(leave_req.days)},
        )
        logger.info("Leave request %s approved by %s", leave_req.id, actor.id)
        return await LeaveService._to_out(db, leave_req.id)

    @staticmethod
    async def reject_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
        reason: str,
        clock: Clock,
    ) -> LeaveRequestOut:
        """Reject a PENDING request. No ledger effect: nothing was debited."""
        leave_req = await LeaveService._load_for_decision(db, actor, request_id, "reject")

        now = clock.now()
        leave_req.status = LeaveStatus.rejected
        leave_req.approver_id = actor.id
        leave_req.rejected_at = now
        leave_req.reject_reason = reason
        leave_req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type=ENTITY,
            entity_id=leave_req.id,
            subject_id=leave_req.user_id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "reason": reason},
        )
        logger.info("Leave request %s rejected by %s", leave_req.id, actor.id)
        return await LeaveService._to_out(db, leave_req.id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        actor: User,
        request_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        if not AccessScopeResolver.can_view(actor, leave_req.user):
            raise ForbiddenException("You do not have permission to view this leave request.")
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        actor: User,
        params: PaginationParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """Scoped, filtered, paginated listing, newest request first."""
        query = select(LeaveRequest)

        # Scope first: an explicit target is checked, otherwise narrow to the visible set
        if user_id is not None:
            await AccessScopeResolver.ensure_can_view(db, actor, user_id)
            query = query.where(LeaveRequest.user_id == user_id)
        else:
            visible = await AccessScopeResolver.scope_list_query(db, actor)
            if visible is not None:
                query = query.where(LeaveRequest.user_id.in_(visible))

        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)

        query = query.order_by(LeaveRequest.requested_at.desc())
        rows, meta = await paginate(
            db,
            query,
            params,
            options=(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.approver),
            ),
        )
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveRequestOut.model_validate(r) for r in rows],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        actor: User,
        clock: Clock,
        *,
        user_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """Balances of a visible user for a year (default: the clock's year)."""
        subject_id = user_id or actor.id
        await AccessScopeResolver.ensure_can_view(db, actor, subject_id)
        target_year = year or clock.today().year
        balances = await LeaveBalanceLedger.list_balances(db, subject_id, target_year)
        return [LeaveBalanceOut.model_validate(b) for b in balances]

    @staticmethod
    async def initialize_balance(
        db: AsyncSession,
        actor: User,
        data: BalanceInitializeRequest,
        clock: Clock,
    ) -> LeaveBalanceOut:
        """Admin allotment: set total days, keep used days."""
        await AccessScopeResolver.ensure_can_act(db, actor, data.user_id)
        await LeaveService._lock_subject(db, data.user_id)
        target_year = data.year or clock.today().year

        balance = await LeaveBalanceLedger.set_allotment(
            db,
            data.user_id,
            target_year,
            data.total_days,
            data.leave_type,
            actor_id=actor.id,
        )
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        actor: User,
        data: BalanceAdjustRequest,
        clock: Clock,
    ) -> LeaveBalanceOut:
        """Admin correction of used days.

        A positive adjustment records extra used days (debit); a negative one
        gives days back (credit). Both keep the ledger invariants.
        """
        await AccessScopeResolver.ensure_can_act(db, actor, data.user_id)
        await LeaveService._lock_subject(db, data.user_id)
        target_year = data.year or clock.today().year

        balance = await LeaveBalanceLedger.ensure_balance(
            db,
            data.user_id,
            target_year,
            data.leave_type,
            for_update=True,
            actor_id=actor.id,
        )
        if data.adjustment > 0:
            await LeaveBalanceLedger.debit(db, balance, data.adjustment, actor_id=actor.id)
        else:
            await LeaveBalanceLedger.credit(db, balance, -data.adjustment, actor_id=actor.id)

        await create_audit_entry(
            db,
            action="adjust",
            entity_type="leave_balance",
            entity_id=balance.id,
            subject_id=balance.user_id,
            actor_id=actor.id,
            new_values={
                "adjustment": str(data.adjustment),
                "reason": data.reason,
                "remaining_days": str(balance.remaining_days),
            },
        )
        logger.info(
            "Balance %s adjusted by %s days by %s: %s",
            balance.id, data.adjustment, actor.id, data.reason,
        )
        return LeaveBalanceOut.model_validate(balance)

    # ─────────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _monthly_days(
        leaves: list[tuple[date, date]],
        year: int,
    ) -> list[MonthlyLeaveStat]:
        """Calendar days of approved leave per month, clipped to each month."""
        stats: list[MonthlyLeaveStat] = []
        for month in range(1, 13):
            month_start = date(year, month, 1)
            month_end = date(year, month, calendar.monthrange(year, month)[1])
            total = 0
            for start, end in leaves:
                lo = max(start, month_start)
                hi = min(end, month_end)
                if lo <= hi:
                    total += (hi - lo).days + 1
            stats.append(MonthlyLeaveStat(month=month, total_days=total))
        return stats

    @staticmethod
    async def get_stats(
        db: AsyncSession,
        actor: User,
        clock: Clock,
        *,
        user_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> LeaveStatsOut:
        """Yearly counts and sums by (type, status), per-month approved days, balance."""
        subject_id = user_id or actor.id
        await AccessScopeResolver.ensure_can_view(db, actor, subject_id)
        target_year = year or clock.today().year
        year_start = date(target_year, 1, 1)
        year_end = date(target_year, 12, 31)

        grouped = await db.execute(
            select(
                LeaveRequest.leave_type,
                LeaveRequest.status,
                func.count(LeaveRequest.id),
                func.coalesce(func.sum(LeaveRequest.days), 0),
            )
            .where(
                LeaveRequest.user_id == subject_id,
                LeaveRequest.start_date >= year_start,
                LeaveRequest.end_date <= year_end,
            )
            .group_by(LeaveRequest.leave_type, LeaveRequest.status)
        )
        entries = [
            LeaveStatEntry(
                leave_type=leave_type,
                status=status,
                count=count,
                days=Decimal(str(days)),
            )
            for leave_type, status, count, days in grouped.all()
        ]

        approved = await db.execute(
            select(LeaveRequest.start_date, LeaveRequest.end_date).where(
                LeaveRequest.user_id == subject_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date <= year_end,
                LeaveRequest.end_date >= year_start,
            )
        )
        monthly = LeaveService._monthly_days(
            [(start, end) for start, end in approved.all()], target_year,
        )

        balance: Optional[LeaveBalance] = await LeaveBalanceLedger.get_balance(
            db, subject_id, target_year, LeaveType.paid_leave,
        )

        approved_entries = [e for e in entries if e.status == LeaveStatus.approved]
        summary = LeaveStatsSummary(
            total_requests=sum(e.count for e in entries),
            total_days=sum((e.days for e in entries), Decimal("0")),
            approved_requests=sum(e.count for e in approved_entries),
            approved_days=sum((e.days for e in approved_entries), Decimal("0")),
        )

        return LeaveStatsOut(
            user_id=subject_id,
            year=target_year,
            leave_stats=entries,
            monthly_stats=monthly,
            leave_balance=LeaveBalanceOut.model_validate(balance) if balance else None,
            summary=summary,
        )
