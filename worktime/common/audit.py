"""Audit trail: the record of every state change the engine makes.

Rows are written in the same transaction as the change they describe, so a
rolled-back command leaves no trace. ``subject_id`` is the user whose leave
or schedule was touched; mail and export collaborators select on it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from worktime.database import Base


class AuditTrail(Base):
    """Append-only change log."""

    __tablename__ = "audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=True,
    )
    # No FK: the subject's rows may outlive a deleted user in exports
    subject_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    old_values = Column(JSONB, nullable=True)
    new_values = Column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("ix_audit_trail_subject", "subject_id", "created_at"),
        Index("ix_audit_trail_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditTrail {self.action} {self.entity_type}"
            f"/{self.entity_id} by {self.actor_id}>"
        )


async def create_audit_entry(
    session: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    subject_id: Optional[uuid.UUID] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
) -> AuditTrail:
    """
    Add and flush an audit entry in *session*'s transaction.

    Args:
        action: create | update | delete | approve | reject | debit | credit
            | set_allotment | adjust | assign.
        entity_type: "leave_request", "leave_balance", "work_schedule",
            "user_work_schedule".
        subject_id: Owner of the affected record; None for company-level
            records such as templates.
    """
    entry = AuditTrail(
        actor_id=actor_id,
        subject_id=subject_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
    )
    session.add(entry)
    await session.flush()
    return entry


async def entries_for_subject(
    session: AsyncSession,
    subject_id: uuid.UUID,
    *,
    entity_type: Optional[str] = None,
) -> list[AuditTrail]:
    """Change history of one user's records, ordered by creation time."""
    query = select(AuditTrail).where(AuditTrail.subject_id == subject_id)
    if entity_type is not None:
        query = query.where(AuditTrail.entity_type == entity_type)
    result = await session.execute(query.order_by(AuditTrail.created_at, AuditTrail.id))
    return list(result.scalars().all())
