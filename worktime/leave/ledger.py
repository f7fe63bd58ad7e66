"""Leave balance ledger — the only writer of LeaveBalance rows.

Each balance keyed by (user, year, leave type) satisfies, after every write:

    remaining_days >= 0
    used_days + remaining_days == total_days

Debits and credits are issued as conditional UPDATEs so that a stale read
can never push ``remaining_days`` below zero, and the table carries CHECK
constraints for the same two rules.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.common.audit import create_audit_entry
from worktime.common.constants import LeaveType
from worktime.common.exceptions import (
    InsufficientBalanceException,
    ValidationException,
)
from worktime.config import settings
from worktime.leave.models import LeaveBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _snapshot(balance: LeaveBalance) -> dict[str, str]:
    return {
        "total_days": str(balance.total_days),
        "used_days": str(balance.used_days),
        "remaining_days": str(balance.remaining_days),
    }


def _require_positive(days: Decimal) -> Decimal:
    days = Decimal(days)
    if days <= ZERO:
        raise ValidationException({"days": ["Day count must be greater than 0."]})
    return days


class LeaveBalanceLedger:
    """Async balance operations. All methods flush; the caller's session commits."""

    @staticmethod
    def expiry_for(year: int) -> date:
        """Balances of *year* lapse on the configured day of the following year."""
        return date(year + 1, settings.BALANCE_EXPIRY_MONTH, settings.BALANCE_EXPIRY_DAY)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        leave_type: LeaveType = LeaveType.paid_leave,
        *,
        for_update: bool = False,
    ) -> Optional[LeaveBalance]:
        query = select(LeaveBalance).where(
            LeaveBalance.user_id == user_id,
            LeaveBalance.year == year,
            LeaveBalance.leave_type == leave_type,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def list_balances(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
    ) -> Sequence[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
            .order_by(LeaveBalance.leave_type)
        )
        return result.scalars().all()

    @staticmethod
    def check_sufficient(balance: LeaveBalance, days: Decimal) -> bool:
        return balance.remaining_days >= Decimal(days)

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def ensure_balance(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        leave_type: LeaveType = LeaveType.paid_leave,
        *,
        for_update: bool = False,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Return the balance row, creating it with the default allotment if absent.

        Idempotent: a second call returns the row created by the first.
        """
        balance = await LeaveBalanceLedger.get_balance(
            db, user_id, year, leave_type, for_update=for_update,
        )
        if balance is not None:
            return balance

        allotment = Decimal(settings.DEFAULT_PAID_LEAVE_DAYS)
        balance = LeaveBalance(
            user_id=user_id,
            year=year,
            leave_type=leave_type,
            total_days=allotment,
            used_days=ZERO,
            remaining_days=allotment,
            expiry_date=LeaveBalanceLedger.expiry_for(year),
        )
        db.add(balance)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_balance",
            entity_id=balance.id,
            subject_id=balance.user_id,
            actor_id=actor_id,
            new_values={**_snapshot(balance), "year": year, "leave_type": leave_type.value},
        )
        logger.info(
            "Initialized %s balance for user %s year %s with %s days",
            leave_type.value, user_id, year, allotment,
        )
        return balance

    @staticmethod
    async def debit(
        db: AsyncSession,
        balance: LeaveBalance,
        days: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Move *days* from remaining to used.

        The write only lands if the row still has enough remaining days at
        UPDATE time; otherwise ``InsufficientBalanceException`` is raised and
        nothing changes.
        """
        days = _require_positive(days)
        old = _snapshot(balance)

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.id == balance.id,
                LeaveBalance.remaining_days >= days,
            )
            .values(
                used_days=LeaveBalance.used_days + days,
                remaining_days=LeaveBalance.remaining_days - days,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(balance)
        if result.rowcount == 0:
            logger.warning(
                "Debit of %s days refused for balance %s (remaining %s)",
                days, balance.id, balance.remaining_days,
            )
            raise InsufficientBalanceException(balance.remaining_days, days)

        await create_audit_entry(
            db,
            action="debit",
            entity_type="leave_balance",
            entity_id=balance.id,
            subject_id=balance.user_id,
            actor_id=actor_id,
            old_values=old,
            new_values={**_snapshot(balance), "days": str(days)},
        )
        return balance

    @staticmethod
    async def credit(
        db: AsyncSession,
        balance: LeaveBalance,
        days: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Return *days* from used to remaining. Cannot credit more than was used."""
        days = _require_positive(days)
        old = _snapshot(balance)

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.id == balance.id,
                LeaveBalance.used_days >= days,
            )
            .values(
                used_days=LeaveBalance.used_days - days,
                remaining_days=LeaveBalance.remaining_days + days,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(balance)
        if result.rowcount == 0:
            raise ValidationException(
                {"days": [f"Cannot credit {days} days; only {balance.used_days} used."]}
            )

        await create_audit_entry(
            db,
            action="credit",
            entity_type="leave_balance",
            entity_id=balance.id,
            subject_id=balance.user_id,
            actor_id=actor_id,
            old_values=old,
            new_values={**_snapshot(balance), "days": str(days)},
        )
        return balance

    @staticmethod
    async def set_allotment(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        total_days: Decimal,
        leave_type: LeaveType = LeaveType.paid_leave,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """Set the yearly allotment, leaving ``used_days`` untouched.

        ``remaining_days = max(0, total - used)``. If the new total is below
        what is already used, the stored total is lifted to ``used_days``.
        """
        total_days = Decimal(total_days)
        if total_days < ZERO:
            raise ValidationException({"total_days": ["Allotment cannot be negative."]})

        balance = await LeaveBalanceLedger.get_balance(
            db, user_id, year, leave_type, for_update=True,
        )
        if balance is None:
            balance = LeaveBalance(
                user_id=user_id,
                year=year,
                leave_type=leave_type,
                total_days=total_days,
                used_days=ZERO,
                remaining_days=total_days,
                expiry_date=LeaveBalanceLedger.expiry_for(year),
            )
            db.add(balance)
            await db.flush()
            old: Optional[dict[str, str]] = None
        else:
            old = _snapshot(balance)
            used = balance.used_days
            balance.total_days = max(total_days, used)
            balance.remaining_days = max(ZERO, total_days - used)
            await db.flush()

        await create_audit_entry(
            db,
            action="set_allotment",
            entity_type="leave_balance",
            entity_id=balance.id,
            subject_id=balance.user_id,
            actor_id=actor_id,
            old_values=old,
            new_values={**_snapshot(balance), "requested_total": str(total_days)},
        )
        logger.info(
            "Set %s allotment for user %s year %s to %s (used %s)",
            leave_type.value, user_id, year, balance.total_days, balance.used_days,
        )
        return balance
