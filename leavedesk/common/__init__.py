"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.constants import (
    DATE_FORMAT,
    LEAVE_TRANSITIONS,
    TIMEZONE,
    Capability,
    FamilyResponsibilityReason,
    ForfeitureState,
    HalfDayPeriod,
    LeaveAction,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ConcurrencyConflict,
    EligibilityError,
    ForbiddenException,
    NotFoundException,
    PersistenceError,
    StateError,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "Capability",
    "FamilyResponsibilityReason",
    "ForfeitureState",
    "HalfDayPeriod",
    "LeaveAction",
    "LeaveStatus",
    "UserRole",
    "LEAVE_TRANSITIONS",
    "DATE_FORMAT",
    "TIMEZONE",
    # Exceptions
    "AppException",
    "ConcurrencyConflict",
    "EligibilityError",
    "ForbiddenException",
    "NotFoundException",
    "PersistenceError",
    "StateError",
    "ValidationException",
    "register_exception_handlers",
]
