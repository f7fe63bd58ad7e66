"""Work schedule service layer — templates, assignments, current-schedule resolution.

Assignments have no status: every row is active and deletion is a hard
delete. No two assignments of one user may overlap; a missing end date
means the assignment runs indefinitely.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from worktime.access.scope import AccessScopeResolver, has_role
from worktime.common.audit import create_audit_entry
from worktime.common.clock import Clock
from worktime.common.constants import UserRole
from worktime.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from worktime.intervals.conflicts import schedule_conflicts
from worktime.schedules.models import UserWorkSchedule, WorkSchedule
from worktime.schedules.schemas import (
    TIME_WINDOWS,
    AssignmentCreate,
    AssignmentOut,
    AssignmentUpdate,
    CurrentScheduleOut,
    ScheduleSource,
    WorkScheduleCreate,
    WorkScheduleOut,
    WorkScheduleUpdate,
    inverted_windows,
)
from worktime.users.models import Company, User

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = (
    "name",
    "standard_hours",
    "flex_time_start",
    "flex_time_end",
    "core_time_start",
    "core_time_end",
    "break_duration",
    "overtime_threshold",
    "is_flex_time",
    "is_default",
)


def _template_values(template: WorkSchedule) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field in TEMPLATE_FIELDS:
        value = getattr(template, field)
        values[field] = value if isinstance(value, (bool, int, str, type(None))) else str(value)
    return values


def _assignment_values(assignment: UserWorkSchedule) -> dict[str, Optional[str]]:
    return {
        "user_id": str(assignment.user_id),
        "work_schedule_id": str(assignment.work_schedule_id),
        "start_date": assignment.start_date.isoformat(),
        "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
    }


# ═════════════════════════════════════════════════════════════════════
# WorkScheduleService
# ═════════════════════════════════════════════════════════════════════


class WorkScheduleService:
    """Async template CRUD and assignment workflow."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _can_manage_template(actor: User, company_id: uuid.UUID) -> bool:
        if actor.role == UserRole.admin:
            return True
        return actor.role == UserRole.company and actor.managed_company_id == company_id

    @staticmethod
    def _can_view_template(actor: User, company_id: uuid.UUID) -> bool:
        if WorkScheduleService._can_manage_template(actor, company_id):
            return True
        return actor.company_id == company_id

    @staticmethod
    async def _get_template(db: AsyncSession, schedule_id: uuid.UUID) -> WorkSchedule:
        template = await db.get(WorkSchedule, schedule_id)
        if template is None:
            raise NotFoundException("WorkSchedule", str(schedule_id))
        return template

    @staticmethod
    async def _clear_other_defaults(
        db: AsyncSession,
        company_id: uuid.UUID,
        keep_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Unset every other default of the company, under the company row lock."""
        await db.execute(
            select(Company.id).where(Company.id == company_id).with_for_update()
        )
        stmt = update(WorkSchedule).where(
            WorkSchedule.company_id == company_id,
            WorkSchedule.is_default.is_(True),
        )
        if keep_id is not None:
            stmt = stmt.where(WorkSchedule.id != keep_id)
        await db.execute(
            stmt.values(is_default=False).execution_options(synchronize_session="fetch")
        )

    @staticmethod
    async def _lock_subject(db: AsyncSession, user_id: uuid.UUID) -> None:
        await db.execute(select(User.id).where(User.id == user_id).with_for_update())

    @staticmethod
    async def _load_assignment(
        db: AsyncSession,
        assignment_id: uuid.UUID,
    ) -> UserWorkSchedule:
        result = await db.execute(
            select(UserWorkSchedule)
            .where(UserWorkSchedule.id == assignment_id)
            .options(
                selectinload(UserWorkSchedule.user),
                selectinload(UserWorkSchedule.work_schedule),
            )
            .execution_options(populate_existing=True)
        )
        assignment = result.scalars().first()
        if assignment is None:
            raise NotFoundException("UserWorkSchedule", str(assignment_id))
        return assignment

    @staticmethod
    async def _check_template_for_subject(
        db: AsyncSession,
        actor: User,
        subject: User,
        schedule_id: uuid.UUID,
    ) -> WorkSchedule:
        template = await WorkScheduleService._get_template(db, schedule_id)
        if actor.role == UserRole.company and template.company_id != actor.managed_company_id:
            raise ForbiddenException("This work schedule belongs to another company.")
        if template.company_id != subject.company_id:
            raise ValidationException(
                {"work_schedule_id": ["Work schedule does not belong to the user's company."]}
            )
        return template

    @staticmethod
    async def _ensure_no_overlap(
        db: AsyncSession,
        user_id: uuid.UUID,
        start: date,
        end: Optional[date],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        conflict = await schedule_conflicts.find_conflict(
            db, user_id, start, end, exclude_id=exclude_id,
        )
        if conflict is not None:
            logger.warning(
                "Schedule assignment for %s (%s..%s) overlaps assignment %s",
                user_id, start, end or "open", conflict.id,
            )
            raise ConflictError(
                f"Overlapping work schedule assignment exists from "
                f"{conflict.start_date} to {conflict.end_date or 'open-ended'}.",
                conflicting_id=conflict.id,
            )

    @staticmethod
    def _require_assigner(actor: User) -> None:
        if not has_role(actor, UserRole.manager):
            raise ForbiddenException(
                f"Role '{actor.role.value}' cannot manage schedule assignments."
            )

    # ─────────────────────────────────────────────────────────────────
    # Templates
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_template(
        db: AsyncSession,
        actor: User,
        data: WorkScheduleCreate,
    ) -> WorkScheduleOut:
        if actor.role == UserRole.company:
            company_id = actor.managed_company_id
            if company_id is None or (data.company_id and data.company_id != company_id):
                raise ForbiddenException("You can only create schedules for your own company.")
        elif actor.role == UserRole.admin:
            if data.company_id is None:
                raise ValidationException({"company_id": ["company_id is required."]})
            company_id = data.company_id
        else:
            raise ForbiddenException("Only company admins can create work schedules.")

        if await db.get(Company, company_id) is None:
            raise NotFoundException("Company", str(company_id))

        if data.is_default:
            await WorkScheduleService._clear_other_defaults(db, company_id)

        template = WorkSchedule(
            company_id=company_id,
            **data.model_dump(exclude={"company_id"}),
        )
        db.add(template)
        await db.flush()
        await db.refresh(template)

        await create_audit_entry(
            db,
            action="create",
            entity_type="work_schedule",
            entity_id=template.id,
            actor_id=actor.id,
            new_values=_template_values(template),
        )
        logger.info("Work schedule %s created for company %s", template.id, company_id)
        return WorkScheduleOut.model_validate(template)

    @staticmethod
    async def list_templates(
        db: AsyncSession,
        actor: User,
        *,
        company_id: Optional[uuid.UUID] = None,
    ) -> list[WorkScheduleOut]:
        """Templates of the actor's company (ADMIN: any or all), default first."""
        if actor.role == UserRole.admin:
            target_company = company_id
        elif actor.role == UserRole.company:
            target_company = actor.managed_company_id
        else:
            target_company = actor.company_id
        if actor.role != UserRole.admin and target_company is None:
            return []

        counts = (
            select(
                UserWorkSchedule.work_schedule_id,
                func.count(UserWorkSchedule.id).label("n"),
            )
            .group_by(UserWorkSchedule.work_schedule_id)
            .subquery()
        )
        query = (
            select(WorkSchedule, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.work_schedule_id == WorkSchedule.id)
            .order_by(WorkSchedule.is_default.desc(), WorkSchedule.name)
        )
        if target_company is not None:
            query = query.where(WorkSchedule.company_id == target_company)

        result = await db.execute(query)
        items: list[WorkScheduleOut] = []
        for template, count in result.all():
            out = WorkScheduleOut.model_validate(template)
            out.assignment_count = count
            items.append(out)
        return items

    @staticmethod
    async def get_template(
        db: AsyncSession,
        actor: User,
        schedule_id: uuid.UUID,
    ) -> WorkScheduleOut:
        template = await WorkScheduleService._get_template(db, schedule_id)
        if not WorkScheduleService._can_view_template(actor, template.company_id):
            raise ForbiddenException("You do not have permission to view this work schedule.")
        return WorkScheduleOut.model_validate(template)

    @staticmethod
    async def update_template(
        db: AsyncSession,
        actor: User,
        schedule_id: uuid.UUID,
        data: WorkScheduleUpdate,
    ) -> WorkScheduleOut:
        template = await WorkScheduleService._get_template(db, schedule_id)
        if not WorkScheduleService._can_manage_template(actor, template.company_id):
            raise ForbiddenException("You do not have permission to edit this work schedule.")

        old_values = _template_values(template)
        changes = data.model_dump(exclude_unset=True)

        merged = {
            field: changes.get(field, getattr(template, field))
            for pair in TIME_WINDOWS
            for field in pair
        }
        errors = inverted_windows(merged)
        if errors:
            raise ValidationException(errors)

        if changes.get("is_default") and not template.is_default:
            await WorkScheduleService._clear_other_defaults(
                db, template.company_id, keep_id=template.id,
            )

        for field, value in changes.items():
            setattr(template, field, value)
        await db.flush()
        await db.refresh(template)

        await create_audit_entry(
            db,
            action="update",
            entity_type="work_schedule",
            entity_id=template.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=_template_values(template),
        )
        logger.info("Work schedule %s updated by %s", template.id, actor.id)
        return WorkScheduleOut.model_validate(template)

    @staticmethod
    async def delete_template(
        db: AsyncSession,
        actor: User,
        schedule_id: uuid.UUID,
    ) -> None:
        """Delete a template that is neither assigned nor the company default."""
        template = await WorkScheduleService._get_template(db, schedule_id)
        if not WorkScheduleService._can_manage_template(actor, template.company_id):
            raise ForbiddenException("You do not have permission to delete this work schedule.")

        in_use = (
            await db.execute(
                select(func.count(UserWorkSchedule.id)).where(
                    UserWorkSchedule.work_schedule_id == template.id
                )
            )
        ).scalar_one()
        if in_use:
            raise ValidationException(
                {"work_schedule": [f"Schedule is assigned to {in_use} user schedule(s)."]}
            )
        if template.is_default:
            raise ValidationException(
                {"work_schedule": ["The company default schedule cannot be deleted."]}
            )

        old_values = _template_values(template)
        await db.delete(template)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="work_schedule",
            entity_id=schedule_id,
            actor_id=actor.id,
            old_values=old_values,
        )
        logger.info("Work schedule %s deleted by %s", schedule_id, actor.id)

    # ─────────────────────────────────────────────────────────────────
    # Assignments
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def assign(
        db: AsyncSession,
        actor: User,
        data: AssignmentCreate,
    ) -> AssignmentOut:
        """Assign a template to a user. Any overlap with an existing assignment fails."""
        WorkScheduleService._require_assigner(actor)
        subject = await AccessScopeResolver.ensure_can_act(db, actor, data.user_id)
        await WorkScheduleService._check_template_for_subject(
            db, actor, subject, data.work_schedule_id,
        )

        await WorkScheduleService._lock_subject(db, subject.id)
        await WorkScheduleService._ensure_no_overlap(
            db, subject.id, data.start_date, data.end_date,
        )

        assignment = UserWorkSchedule(
            user_id=subject.id,
            work_schedule_id=data.work_schedule_id,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        db.add(assignment)
        await db.flush()

        await create_audit_entry(
            db,
            action="assign",
            entity_type="user_work_schedule",
            entity_id=assignment.id,
            subject_id=assignment.user_id,
            actor_id=actor.id,
            new_values=_assignment_values(assignment),
        )
        logger.info(
            "Schedule %s assigned to %s for %s..%s",
            data.work_schedule_id, subject.id, data.start_date, data.end_date or "open",
        )
        loaded = await WorkScheduleService._load_assignment(db, assignment.id)
        return AssignmentOut.model_validate(loaded)

    @staticmethod
    async def update_assignment(
        db: AsyncSession,
        actor: User,
        assignment_id: uuid.UUID,
        data: AssignmentUpdate,
    ) -> AssignmentOut:
        """Change an assignment's dates (and optionally its template)."""
        WorkScheduleService._require_assigner(actor)
        assignment = await WorkScheduleService._load_assignment(db, assignment_id)
        if not AccessScopeResolver.can_act(actor, assignment.user):
            raise ForbiddenException("You do not have permission to change this assignment.")

        if data.work_schedule_id is not None and data.work_schedule_id != assignment.work_schedule_id:
            await WorkScheduleService._check_template_for_subject(
                db, actor, assignment.user, data.work_schedule_id,
            )

        await WorkScheduleService._lock_subject(db, assignment.user_id)
        await WorkScheduleService._ensure_no_overlap(
            db, assignment.user_id, data.start_date, data.end_date,
            exclude_id=assignment.id,
        )

        old_values = _assignment_values(assignment)
        assignment.start_date = data.start_date
        assignment.end_date = data.end_date
        if data.work_schedule_id is not None:
            assignment.work_schedule_id = data.work_schedule_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="user_work_schedule",
            entity_id=assignment.id,
            subject_id=assignment.user_id,
            actor_id=actor.id,
            old_values=old_values,
            new_values=_assignment_values(assignment),
        )
        logger.info("Schedule assignment %s updated by %s", assignment.id, actor.id)
        loaded = await WorkScheduleService._load_assignment(db, assignment.id)
        return AssignmentOut.model_validate(loaded)

    @staticmethod
    async def delete_assignment(
        db: AsyncSession,
        actor: User,
        assignment_id: uuid.UUID,
    ) -> None:
        """Hard-delete an assignment."""
        WorkScheduleService._require_assigner(actor)
        assignment = await WorkScheduleService._load_assignment(db, assignment_id)
        if not AccessScopeResolver.can_act(actor, assignment.user):
            raise ForbiddenException("You do not have permission to delete this assignment.")

        old_values = _assignment_values(assignment)
        subject_id = assignment.user_id
        await db.delete(assignment)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="user_work_schedule",
            entity_id=assignment_id,
            subject_id=subject_id,
            actor_id=actor.id,
            old_values=old_values,
        )
        logger.info("Schedule assignment %s deleted by %s", assignment_id, actor.id)

    @staticmethod
    async def list_assignments(
        db: AsyncSession,
        actor: User,
        *,
        user_id: Optional[uuid.UUID] = None,
    ) -> list[AssignmentOut]:
        """A visible user's assignments, newest start first."""
        subject_id = user_id or actor.id
        await AccessScopeResolver.ensure_can_view(db, actor, subject_id)

        result = await db.execute(
            select(UserWorkSchedule)
            .where(UserWorkSchedule.user_id == subject_id)
            .options(selectinload(UserWorkSchedule.work_schedule))
            .order_by(UserWorkSchedule.start_date.desc())
        )
        return [AssignmentOut.model_validate(a) for a in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Current schedule
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def resolve_current(
        db: AsyncSession,
        actor: User,
        clock: Clock,
        *,
        user_id: Optional[uuid.UUID] = None,
    ) -> CurrentScheduleOut:
        """Schedule in force today.

        Order: the covering assignment (latest start wins), then the
        company's default template, then an explicit NONE result.
        """
        subject = await AccessScopeResolver.ensure_can_view(db, actor, user_id or actor.id)
        today = clock.today()

        result = await db.execute(
            select(UserWorkSchedule)
            .where(
                UserWorkSchedule.user_id == subject.id,
                UserWorkSchedule.start_date <= today,
                (UserWorkSchedule.end_date.is_(None)) | (UserWorkSchedule.end_date >= today),
            )
            .options(selectinload(UserWorkSchedule.work_schedule))
            .order_by(UserWorkSchedule.start_date.desc())
            .limit(1)
        )
        assignment = result.scalars().first()
        if assignment is not None:
            return CurrentScheduleOut(
                user_id=subject.id,
                as_of=today,
                source=ScheduleSource.assignment,
                assignment=AssignmentOut.model_validate(assignment),
                work_schedule=WorkScheduleOut.model_validate(assignment.work_schedule),
            )

        if subject.company_id is not None:
            default = (
                await db.execute(
                    select(WorkSchedule)
                    .where(
                        WorkSchedule.company_id == subject.company_id,
                        WorkSchedule.is_default.is_(True),
                    )
                    .limit(1)
                )
            ).scalars().first()
            if default is not None:
                return CurrentScheduleOut(
                    user_id=subject.id,
                    as_of=today,
                    source=ScheduleSource.company_default,
                    work_schedule=WorkScheduleOut.model_validate(default),
                )

        return CurrentScheduleOut(
            user_id=subject.id,
            as_of=today,
            source=ScheduleSource.none,
        )
