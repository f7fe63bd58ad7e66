"""Interval conflict checker tests — pure overlap rule and DB-backed checks."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.common.constants import LeaveStatus
from worktime.intervals.conflicts import (
    leave_conflicts,
    overlaps,
    schedule_conflicts,
)
from tests.factories import (
    make_assignment,
    make_leave_request,
    make_template,
)


# ═════════════════════════════════════════════════════════════════════
# 1. overlaps(): pure logic (no DB)
# ═════════════════════════════════════════════════════════════════════


class TestOverlaps:

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ((date(2025, 3, 10), date(2025, 3, 14)), (date(2025, 3, 12), date(2025, 3, 13)), True),
            ((date(2025, 3, 10), date(2025, 3, 14)), (date(2025, 3, 14), date(2025, 3, 20)), True),
            ((date(2025, 3, 10), date(2025, 3, 14)), (date(2025, 3, 15), date(2025, 3, 20)), False),
            ((date(2025, 3, 10), date(2025, 3, 14)), (date(2025, 3, 1), date(2025, 3, 9)), False),
            ((date(2025, 3, 10), date(2025, 3, 10)), (date(2025, 3, 10), date(2025, 3, 10)), True),
        ],
    )
    def test_closed_interval_overlap(self, a, b, expected):
        assert overlaps(a[0], a[1], b[0], b[1]) is expected
        # symmetric
        assert overlaps(b[0], b[1], a[0], a[1]) is expected

    def test_open_end_is_unbounded(self):
        assert overlaps(date(2025, 4, 1), None, date(2030, 1, 1), date(2030, 1, 2))
        assert not overlaps(date(2025, 4, 1), None, date(2025, 3, 1), date(2025, 3, 31))

    def test_two_open_ended_always_overlap(self):
        assert overlaps(date(2025, 1, 1), None, date(2040, 1, 1), None)


# ═════════════════════════════════════════════════════════════════════
# 2. Leave requests
# ═════════════════════════════════════════════════════════════════════


class TestLeaveConflicts:

    async def test_pending_and_approved_block(self, db: AsyncSession, member):
        await make_leave_request(db, member, date(2025, 3, 10), date(2025, 3, 14))
        await make_leave_request(
            db, member, date(2025, 4, 1), date(2025, 4, 2), status=LeaveStatus.approved,
        )

        assert await leave_conflicts.has_conflict(db, member.id, date(2025, 3, 12), date(2025, 3, 13))
        assert await leave_conflicts.has_conflict(db, member.id, date(2025, 4, 2), date(2025, 4, 5))

    async def test_rejected_never_blocks(self, db: AsyncSession, member):
        await make_leave_request(
            db, member, date(2025, 3, 10), date(2025, 3, 14), status=LeaveStatus.rejected,
        )
        assert not await leave_conflicts.has_conflict(
            db, member.id, date(2025, 3, 10), date(2025, 3, 14),
        )

    async def test_adjacent_days_do_not_conflict(self, db: AsyncSession, member):
        await make_leave_request(db, member, date(2025, 3, 10), date(2025, 3, 14))
        assert not await leave_conflicts.has_conflict(
            db, member.id, date(2025, 3, 15), date(2025, 3, 16),
        )

    async def test_half_day_occupies_whole_date(self, db: AsyncSession, member):
        from decimal import Decimal

        await make_leave_request(
            db, member, date(2025, 3, 10), date(2025, 3, 10), days=Decimal("0.5"),
        )
        assert await leave_conflicts.has_conflict(
            db, member.id, date(2025, 3, 10), date(2025, 3, 10),
        )

    async def test_exclude_id_ignores_record_being_edited(self, db: AsyncSession, member):
        existing = await make_leave_request(db, member, date(2025, 3, 10), date(2025, 3, 14))
        assert not await leave_conflicts.has_conflict(
            db, member.id, date(2025, 3, 11), date(2025, 3, 15), exclude_id=existing.id,
        )

    async def test_other_subjects_are_independent(self, db: AsyncSession, member, member2):
        await make_leave_request(db, member, date(2025, 3, 10), date(2025, 3, 14))
        assert not await leave_conflicts.has_conflict(
            db, member2.id, date(2025, 3, 10), date(2025, 3, 14),
        )

    async def test_find_conflict_returns_earliest(self, db: AsyncSession, member):
        first = await make_leave_request(db, member, date(2025, 3, 3), date(2025, 3, 4))
        await make_leave_request(db, member, date(2025, 3, 6), date(2025, 3, 7))

        found = await leave_conflicts.find_conflict(
            db, member.id, date(2025, 3, 1), date(2025, 3, 31),
        )
        assert found is not None
        assert found.id == first.id


# ═════════════════════════════════════════════════════════════════════
# 3. Schedule assignments
# ═════════════════════════════════════════════════════════════════════


class TestScheduleConflicts:

    async def test_open_ended_existing_blocks_later_range(self, db: AsyncSession, company, member):
        template = await make_template(db, company)
        await make_assignment(db, member, template, date(2025, 4, 1))

        assert await schedule_conflicts.has_conflict(
            db, member.id, date(2025, 4, 15), date(2025, 4, 20),
        )
        assert not await schedule_conflicts.has_conflict(
            db, member.id, date(2025, 3, 1), date(2025, 3, 31),
        )

    async def test_open_ended_candidate_blocks_on_any_later_row(
        self, db: AsyncSession, company, member,
    ):
        template = await make_template(db, company)
        await make_assignment(db, member, template, date(2026, 1, 1), date(2026, 1, 31))

        assert await schedule_conflicts.has_conflict(db, member.id, date(2025, 6, 1), None)
        assert not await schedule_conflicts.has_conflict(db, member.id, date(2026, 2, 1), None)

    async def test_exclude_id(self, db: AsyncSession, company, member):
        template = await make_template(db, company)
        existing = await make_assignment(db, member, template, date(2025, 4, 1))

        assert not await schedule_conflicts.has_conflict(
            db, member.id, date(2025, 5, 1), None, exclude_id=existing.id,
        )
