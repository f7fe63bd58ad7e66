"""Work schedule test suite — template CRUD, default toggling, assignments,
overlap rules, current-schedule resolution.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from worktime.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from worktime.schedules.models import UserWorkSchedule, WorkSchedule
from worktime.schedules.schemas import (
    AssignmentCreate,
    AssignmentUpdate,
    ScheduleSource,
    WorkScheduleCreate,
    WorkScheduleUpdate,
)
from worktime.schedules.service import WorkScheduleService
from tests.factories import make_assignment, make_template


def _template_payload(**overrides) -> WorkScheduleCreate:
    payload = {
        "name": "Standard 9-18",
        "standard_hours": Decimal("8"),
        "core_time_start": "10:00",
        "core_time_end": "15:00",
    }
    payload.update(overrides)
    return WorkScheduleCreate(**payload)


async def _defaults(db, company) -> list[uuid.UUID]:
    result = await db.execute(
        select(WorkSchedule.id).where(
            WorkSchedule.company_id == company.id,
            WorkSchedule.is_default.is_(True),
        )
    )
    return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# 1. Templates
# ═════════════════════════════════════════════════════════════════════


class TestTemplates:

    async def test_company_admin_creates_for_own_company(self, db, company, company_admin):
        out = await WorkScheduleService.create_template(db, company_admin, _template_payload())
        assert out.company_id == company.id
        assert out.break_duration == 60
        assert out.overtime_threshold == Decimal("8.0")

    async def test_company_admin_cannot_target_other_company(
        self, db, other_company, company_admin,
    ):
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.create_template(
                db, company_admin, _template_payload(company_id=other_company.id),
            )

    async def test_admin_must_name_company(self, db, company, admin):
        with pytest.raises(ValidationException):
            await WorkScheduleService.create_template(db, admin, _template_payload())

        out = await WorkScheduleService.create_template(
            db, admin, _template_payload(company_id=company.id),
        )
        assert out.company_id == company.id

    async def test_manager_cannot_create(self, db, manager):
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.create_template(db, manager, _template_payload())

    async def test_new_default_replaces_old(self, db, company, company_admin):
        first = await WorkScheduleService.create_template(
            db, company_admin, _template_payload(name="Early", is_default=True),
        )
        second = await WorkScheduleService.create_template(
            db, company_admin, _template_payload(name="Late", is_default=True),
        )
        assert await _defaults(db, company) == [second.id]
        assert first.id != second.id

    async def test_update_to_default_clears_others(self, db, company, company_admin):
        old_default = await make_template(db, company, name="Old", is_default=True)
        other = await make_template(db, company, name="Flex")

        out = await WorkScheduleService.update_template(
            db, company_admin, other.id, WorkScheduleUpdate(is_default=True),
        )
        assert out.is_default is True
        assert await _defaults(db, company) == [other.id]
        assert old_default.id != other.id

    async def test_partial_update(self, db, company, company_admin):
        template = await make_template(db, company)
        out = await WorkScheduleService.update_template(
            db, company_admin, template.id, WorkScheduleUpdate(break_duration=45),
        )
        assert out.break_duration == 45
        assert out.name == "Standard 9-18"

    async def test_list_default_first_with_counts(self, db, company, company_admin, member):
        plain = await make_template(db, company, name="A-shift")
        await make_template(db, company, name="Z-default", is_default=True)
        await make_assignment(db, member, plain, date(2025, 1, 1))

        items = await WorkScheduleService.list_templates(db, company_admin)
        assert [t.name for t in items] == ["Z-default", "A-shift"]
        assert items[1].assignment_count == 1
        assert items[0].assignment_count == 0

    async def test_member_sees_own_company_only(self, db, company, other_company, member):
        await make_template(db, company, name="Ours")
        foreign = await make_template(db, other_company, name="Theirs")

        items = await WorkScheduleService.list_templates(db, member)
        assert [t.name for t in items] == ["Ours"]
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.get_template(db, member, foreign.id)

    async def test_delete_refused_while_assigned(self, db, company, company_admin, member):
        template = await make_template(db, company)
        await make_assignment(db, member, template, date(2025, 4, 1))

        with pytest.raises(ValidationException):
            await WorkScheduleService.delete_template(db, company_admin, template.id)

    async def test_delete_refused_for_default(self, db, company, company_admin):
        template = await make_template(db, company, is_default=True)
        with pytest.raises(ValidationException):
            await WorkScheduleService.delete_template(db, company_admin, template.id)

    async def test_delete_unused(self, db, company, company_admin):
        template = await make_template(db, company)
        await WorkScheduleService.delete_template(db, company_admin, template.id)
        assert await db.get(WorkSchedule, template.id) is None

    async def test_missing_template(self, db, company_admin):
        with pytest.raises(NotFoundException):
            await WorkScheduleService.get_template(db, company_admin, uuid.uuid4())

    def test_time_windows_validated(self):
        with pytest.raises(ValueError):
            _template_payload(core_time_start="15:00", core_time_end="10:00")
        with pytest.raises(ValueError):
            _template_payload(flex_time_start="7:00")

    async def test_partial_window_update_checked_against_stored(
        self, db, company, company_admin,
    ):
        out = await WorkScheduleService.create_template(
            db, company_admin,
            _template_payload(flex_time_start="09:00", flex_time_end="11:00"),
        )

        with pytest.raises(ValidationException) as exc_info:
            await WorkScheduleService.update_template(
                db, company_admin, out.id, WorkScheduleUpdate(flex_time_end="08:00"),
            )
        assert "flex_time_start" in exc_info.value.errors

        with pytest.raises(ValidationException):
            await WorkScheduleService.update_template(
                db, company_admin, out.id, WorkScheduleUpdate(core_time_start="16:00"),
            )

        stored = await db.get(WorkSchedule, out.id)
        assert (stored.flex_time_start, stored.flex_time_end) == ("09:00", "11:00")
        assert stored.core_time_start == "10:00"

    async def test_window_can_be_cleared(self, db, company, company_admin):
        template = await make_template(db, company)
        out = await WorkScheduleService.update_template(
            db, company_admin, template.id,
            WorkScheduleUpdate(core_time_start=None, core_time_end=None),
        )
        assert out.core_time_start is None
        assert out.core_time_end is None

    def test_update_rejects_null_for_required_fields(self):
        for field in (
            "name",
            "standard_hours",
            "break_duration",
            "overtime_threshold",
            "is_flex_time",
            "is_default",
        ):
            with pytest.raises(ValueError):
                WorkScheduleUpdate.model_validate({field: None})
        assert WorkScheduleUpdate.model_validate({}).model_dump(exclude_unset=True) == {}


# ═════════════════════════════════════════════════════════════════════
# 2. Assignments
# ═════════════════════════════════════════════════════════════════════


class TestAssignments:

    async def test_open_ended_assignment_blocks_later_range(
        self, db, company, manager, member,
    ):
        standard = await make_template(db, company, name="Standard")
        short = await make_template(db, company, name="Short week")

        first = await WorkScheduleService.assign(
            db,
            manager,
            AssignmentCreate(
                user_id=member.id,
                work_schedule_id=standard.id,
                start_date=date(2025, 4, 1),
            ),
        )
        assert first.end_date is None

        with pytest.raises(ConflictError) as exc_info:
            await WorkScheduleService.assign(
                db,
                manager,
                AssignmentCreate(
                    user_id=member.id,
                    work_schedule_id=short.id,
                    start_date=date(2025, 4, 15),
                    end_date=date(2025, 4, 20),
                ),
            )
        assert exc_info.value.errors["conflicting_id"] == str(first.id)

    async def test_closing_open_end_frees_later_dates(self, db, company, manager, member):
        standard = await make_template(db, company, name="Standard")
        first = await make_assignment(db, member, standard, date(2025, 4, 1))

        await WorkScheduleService.update_assignment(
            db,
            manager,
            first.id,
            AssignmentUpdate(start_date=date(2025, 4, 1), end_date=date(2025, 4, 14)),
        )
        out = await WorkScheduleService.assign(
            db,
            manager,
            AssignmentCreate(
                user_id=member.id,
                work_schedule_id=standard.id,
                start_date=date(2025, 4, 15),
                end_date=date(2025, 4, 20),
            ),
        )
        assert out.start_date == date(2025, 4, 15)

    async def test_update_excludes_itself(self, db, company, manager, member):
        standard = await make_template(db, company)
        existing = await make_assignment(db, member, standard, date(2025, 4, 1), date(2025, 4, 30))

        out = await WorkScheduleService.update_assignment(
            db,
            manager,
            existing.id,
            AssignmentUpdate(start_date=date(2025, 4, 10), end_date=None),
        )
        assert out.start_date == date(2025, 4, 10)
        assert out.end_date is None

    async def test_update_into_neighbour_conflicts(self, db, company, manager, member):
        standard = await make_template(db, company)
        await make_assignment(db, member, standard, date(2025, 5, 1), date(2025, 5, 31))
        april = await make_assignment(db, member, standard, date(2025, 4, 1), date(2025, 4, 30))

        with pytest.raises(ConflictError):
            await WorkScheduleService.update_assignment(
                db,
                manager,
                april.id,
                AssignmentUpdate(start_date=date(2025, 4, 1), end_date=date(2025, 5, 1)),
            )

    async def test_template_must_belong_to_subject_company(
        self, db, other_company, admin, member,
    ):
        foreign = await make_template(db, other_company)
        with pytest.raises(ValidationException):
            await WorkScheduleService.assign(
                db,
                admin,
                AssignmentCreate(
                    user_id=member.id,
                    work_schedule_id=foreign.id,
                    start_date=date(2025, 4, 1),
                ),
            )

    async def test_company_admin_limited_to_own_templates(
        self, db, other_company, company_admin, stranger,
    ):
        foreign = await make_template(db, other_company)
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.assign(
                db,
                company_admin,
                AssignmentCreate(
                    user_id=stranger.id,
                    work_schedule_id=foreign.id,
                    start_date=date(2025, 4, 1),
                ),
            )

    async def test_member_cannot_assign(self, db, company, member):
        template = await make_template(db, company)
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.assign(
                db,
                member,
                AssignmentCreate(
                    user_id=member.id,
                    work_schedule_id=template.id,
                    start_date=date(2025, 4, 1),
                ),
            )

    async def test_manager_cannot_assign_non_report(self, db, company, manager, outsider):
        template = await make_template(db, company)
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.assign(
                db,
                manager,
                AssignmentCreate(
                    user_id=outsider.id,
                    work_schedule_id=template.id,
                    start_date=date(2025, 4, 1),
                ),
            )

    async def test_delete_is_hard(self, db, company, manager, member):
        template = await make_template(db, company)
        existing = await make_assignment(db, member, template, date(2025, 4, 1))

        await WorkScheduleService.delete_assignment(db, manager, existing.id)
        remaining = (
            await db.execute(
                select(UserWorkSchedule).where(UserWorkSchedule.user_id == member.id)
            )
        ).scalars().all()
        assert remaining == []

    async def test_list_newest_first(self, db, company, member):
        template = await make_template(db, company)
        await make_assignment(db, member, template, date(2025, 1, 1), date(2025, 3, 31))
        await make_assignment(db, member, template, date(2025, 4, 1))

        items = await WorkScheduleService.list_assignments(db, member)
        assert [a.start_date for a in items] == [date(2025, 4, 1), date(2025, 1, 1)]

    async def test_list_other_user_needs_scope(self, db, member, member2):
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.list_assignments(db, member, user_id=member2.id)


# ═════════════════════════════════════════════════════════════════════
# 3. Current schedule
# ═════════════════════════════════════════════════════════════════════


class TestResolveCurrent:

    async def test_covering_assignment_wins(self, db, company, member, clock):
        await make_template(db, company, name="Default", is_default=True)
        assigned = await make_template(db, company, name="Night")
        await make_assignment(db, member, assigned, date(2025, 2, 1), date(2025, 3, 31))

        out = await WorkScheduleService.resolve_current(db, member, clock)
        assert out.source == ScheduleSource.assignment
        assert out.work_schedule.name == "Night"
        assert out.as_of == date(2025, 3, 1)

    async def test_falls_back_to_company_default(self, db, company, member, clock):
        await make_template(db, company, name="Default", is_default=True)
        night = await make_template(db, company, name="Night")
        # Ended before today
        await make_assignment(db, member, night, date(2025, 1, 1), date(2025, 2, 28))

        out = await WorkScheduleService.resolve_current(db, member, clock)
        assert out.source == ScheduleSource.company_default
        assert out.work_schedule.name == "Default"
        assert out.assignment is None

    async def test_none_when_nothing_applies(self, db, member, clock):
        out = await WorkScheduleService.resolve_current(db, member, clock)
        assert out.source == ScheduleSource.none
        assert out.work_schedule is None

    async def test_manager_resolves_for_report(self, db, company, manager, member, clock):
        template = await make_template(db, company)
        await make_assignment(db, member, template, date(2025, 3, 1))

        out = await WorkScheduleService.resolve_current(db, manager, clock, user_id=member.id)
        assert out.user_id == member.id
        assert out.source == ScheduleSource.assignment

    async def test_peer_cannot_resolve(self, db, member, member2, clock):
        with pytest.raises(ForbiddenException):
            await WorkScheduleService.resolve_current(db, member, clock, user_id=member2.id)
