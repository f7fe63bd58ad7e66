"""Overlap detection for time-bound records of one subject.

Leave requests and schedule assignments share the same shape: a ``user_id``,
a ``start_date`` and an ``end_date`` (nullable only for assignments). Both
workflows ask the same question before every write, so the query lives here
once and is parameterized by what counts as "active" for each record type.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Callable, Optional

from sqlalchemy import ColumnElement, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.common.constants import ACTIVE_LEAVE_STATUSES
from worktime.leave.models import LeaveRequest
from worktime.schedules.models import UserWorkSchedule

# Stand-in for a missing end date; used in comparisons only, never stored
OPEN_END = date.max


def overlaps(
    a_start: date,
    a_end: Optional[date],
    b_start: date,
    b_end: Optional[date],
) -> bool:
    """Closed-interval overlap where a ``None`` end means unbounded."""
    return a_start <= (b_end or OPEN_END) and b_start <= (a_end or OPEN_END)


class IntervalConflictChecker:
    """Read-only overlap query over one interval model.

    Callers must run the check inside the same transaction as the write
    that depends on it, after locking the subject row.
    """

    def __init__(
        self,
        model: type,
        *,
        active: Optional[Callable[[], ColumnElement[bool]]] = None,
    ) -> None:
        self.model = model
        self._active = active

    def _query(
        self,
        subject_id: uuid.UUID,
        start: date,
        end: Optional[date],
        exclude_id: Optional[uuid.UUID],
    ):
        model = self.model
        candidate_end = end or OPEN_END

        query = select(model).where(
            model.user_id == subject_id,
            model.start_date <= candidate_end,
            or_(model.end_date.is_(None), model.end_date >= start),
        )
        if self._active is not None:
            query = query.where(self._active())
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        return query.order_by(model.start_date)

    async def find_conflict(
        self,
        db: AsyncSession,
        subject_id: uuid.UUID,
        start: date,
        end: Optional[date] = None,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Any]:
        """Return the earliest active record overlapping ``[start, end]``, if any."""
        result = await db.execute(
            self._query(subject_id, start, end, exclude_id).limit(1)
        )
        return result.scalars().first()

    async def has_conflict(
        self,
        db: AsyncSession,
        subject_id: uuid.UUID,
        start: date,
        end: Optional[date] = None,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        conflict = await self.find_conflict(db, subject_id, start, end, exclude_id)
        return conflict is not None


# Rejected requests never block; pending and approved ones do.
leave_conflicts = IntervalConflictChecker(
    LeaveRequest,
    active=lambda: LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
)

# Assignments have no status; every row is active.
schedule_conflicts = IntervalConflictChecker(UserWorkSchedule)
