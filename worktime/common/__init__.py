"""Common module — shared utilities for worktime."""

from worktime.common.audit import AuditTrail, create_audit_entry, entries_for_subject
from worktime.common.clock import Clock, FixedClock, get_clock
from worktime.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DEFAULT_PAGE_SIZE,
    LEAVE_TYPE_POLICIES,
    MAX_PAGE_SIZE,
    ROLE_RANK,
    LeaveStatus,
    LeaveType,
    UserRole,
    is_ledger_tracked,
)
from worktime.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from worktime.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "entries_for_subject",
    # Clock
    "Clock",
    "FixedClock",
    "get_clock",
    # Constants / Enums
    "LeaveStatus",
    "LeaveType",
    "UserRole",
    "ROLE_RANK",
    "ACTIVE_LEAVE_STATUSES",
    "LEAVE_TYPE_POLICIES",
    "is_ledger_tracked",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "InvalidStateTransitionException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
