"""Enums and constants for worktime — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    member = "MEMBER"
    manager = "MANAGER"
    company = "COMPANY"
    admin = "ADMIN"


# Ascending scope: a role may do everything a lower-ranked role may do
ROLE_RANK: dict[UserRole, int] = {
    UserRole.member: 0,
    UserRole.manager: 1,
    UserRole.company: 2,
    UserRole.admin: 3,
}


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class LeaveType(str, enum.Enum):
    paid_leave = "PAID_LEAVE"
    sick_leave = "SICK_LEAVE"
    personal_leave = "PERSONAL_LEAVE"
    maternity = "MATERNITY"
    paternity = "PATERNITY"
    special = "SPECIAL"
    unpaid = "UNPAID"


# Statuses that still occupy their dates for overlap purposes
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)


@dataclass(frozen=True)
class LeaveTypePolicy:
    """Per-type ledger policy."""

    ledger_tracked: bool = False


LEAVE_TYPE_POLICIES: dict[LeaveType, LeaveTypePolicy] = {
    LeaveType.paid_leave: LeaveTypePolicy(ledger_tracked=True),
    LeaveType.sick_leave: LeaveTypePolicy(),
    LeaveType.personal_leave: LeaveTypePolicy(),
    LeaveType.maternity: LeaveTypePolicy(),
    LeaveType.paternity: LeaveTypePolicy(),
    LeaveType.special: LeaveTypePolicy(),
    LeaveType.unpaid: LeaveTypePolicy(),
}


def is_ledger_tracked(leave_type: LeaveType) -> bool:
    """Whether requests of *leave_type* consume a LeaveBalance."""
    return LEAVE_TYPE_POLICIES.get(leave_type, LeaveTypePolicy()).ledger_tracked


# ── Misc constants ──────────────────────────────────────────────────

MIN_LEAVE_DAYS = Decimal("0.5")
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
