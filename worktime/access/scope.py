"""Role-scoped visibility: which subjects an actor may read or act on.

Scope by role, ascending:
  - MEMBER   → self
  - MANAGER  → self + direct reports (``manager_id == actor.id``)
  - COMPANY  → self + every user of the managed company
  - ADMIN    → everyone
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.common.constants import ROLE_RANK, UserRole
from worktime.common.exceptions import ForbiddenException, NotFoundException
from worktime.users.models import User


def has_role(actor: User, minimum: UserRole) -> bool:
    """True when *actor*'s role ranks at or above *minimum*."""
    return ROLE_RANK[actor.role] >= ROLE_RANK[minimum]


def _covers(actor: User, subject: User) -> bool:
    if subject.id == actor.id:
        return True
    if actor.role == UserRole.admin:
        return True
    if actor.role == UserRole.company:
        return (
            actor.managed_company_id is not None
            and subject.company_id == actor.managed_company_id
        )
    if actor.role == UserRole.manager:
        return subject.manager_id == actor.id
    return False


class AccessScopeResolver:
    """Single authority for role scoping across leave and schedule workflows."""

    @staticmethod
    def can_view(actor: User, subject: User) -> bool:
        return _covers(actor, subject)

    @staticmethod
    def can_act(actor: User, subject: User) -> bool:
        # Same rule as viewing for now; kept separate so policies can diverge.
        return _covers(actor, subject)

    @staticmethod
    async def scope_list_query(
        db: AsyncSession,
        actor: User,
    ) -> Optional[set[uuid.UUID]]:
        """Resolve the visible subject ids for list queries.

        Returns ``None`` for ADMIN (no filter), otherwise the id set, which
        always contains the actor.
        """
        if actor.role == UserRole.admin:
            return None
        if actor.role == UserRole.member:
            return {actor.id}

        if actor.role == UserRole.company:
            if actor.managed_company_id is None:
                return {actor.id}
            clause = or_(
                User.company_id == actor.managed_company_id,
                User.id == actor.id,
            )
        else:
            clause = or_(User.manager_id == actor.id, User.id == actor.id)

        result = await db.execute(select(User.id).where(clause))
        return set(result.scalars().all())

    @staticmethod
    async def _load_subject(db: AsyncSession, subject_id: uuid.UUID) -> User:
        subject = await db.get(User, subject_id)
        if subject is None:
            raise NotFoundException("User", str(subject_id))
        return subject

    @staticmethod
    async def ensure_can_view(
        db: AsyncSession,
        actor: User,
        subject_id: uuid.UUID,
    ) -> User:
        """Return the subject, or raise 404 if absent / 403 if out of scope."""
        if subject_id == actor.id:
            return actor
        subject = await AccessScopeResolver._load_subject(db, subject_id)
        if not AccessScopeResolver.can_view(actor, subject):
            raise ForbiddenException(
                "You do not have permission to view this user's records."
            )
        return subject

    @staticmethod
    async def ensure_can_act(
        db: AsyncSession,
        actor: User,
        subject_id: uuid.UUID,
    ) -> User:
        """Return the subject, or raise 404 if absent / 403 if out of scope."""
        if subject_id == actor.id:
            return actor
        subject = await AccessScopeResolver._load_subject(db, subject_id)
        if not AccessScopeResolver.can_act(actor, subject):
            raise ForbiddenException(
                "You do not have permission to act on this user's records."
            )
        return subject
