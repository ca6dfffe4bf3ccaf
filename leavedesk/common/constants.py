"""Enums and constants for LeaveDesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class Capability(str, enum.Enum):
    request_leave = "leave:request"
    approve_leave = "leave:approve"
    cancel_any_leave = "leave:cancel_any"
    read_all_leave = "leave:read_all"
    manage_users = "system:manage_users"
    review_forfeitures = "forfeiture:read_all"


class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self]

    @property
    def can_approve(self) -> bool:
        return self.can(Capability.approve_leave)

    @property
    def can_manage_users(self) -> bool:
        return self.can(Capability.manage_users)


# ── Role-based capabilities ─────────────────────────────────────────

ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.employee: frozenset({
        Capability.request_leave,
    }),
    UserRole.manager: frozenset({
        Capability.request_leave,
        Capability.approve_leave,
        Capability.read_all_leave,
    }),
    UserRole.admin: frozenset({
        Capability.request_leave,
        Capability.approve_leave,
        Capability.cancel_any_leave,
        Capability.read_all_leave,
        Capability.manage_users,
        Capability.review_forfeitures,
    }),
}


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class LeaveAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    cancel = "cancel"


# Legal workflow moves: (from_status, action) -> to_status
LEAVE_TRANSITIONS: dict[tuple[LeaveStatus, LeaveAction], LeaveStatus] = {
    (LeaveStatus.pending, LeaveAction.approve): LeaveStatus.approved,
    (LeaveStatus.pending, LeaveAction.reject): LeaveStatus.rejected,
    (LeaveStatus.pending, LeaveAction.cancel): LeaveStatus.cancelled,
    (LeaveStatus.approved, LeaveAction.cancel): LeaveStatus.cancelled,
}

# Requests in these states block overlapping dates
ACTIVE_LEAVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


class HalfDayPeriod(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"


class AccrualMethod(str, enum.Enum):
    monthly = "MONTHLY"
    lump_sum = "LUMP_SUM"


class FamilyResponsibilityReason(str, enum.Enum):
    """Qualifying events for family responsibility leave (BCEA s27)."""

    child_birth = "child_birth"
    child_illness = "child_illness"
    death_spouse = "death_spouse"
    death_life_partner = "death_life_partner"
    death_parent = "death_parent"
    death_grandparent = "death_grandparent"
    death_child = "death_child"
    death_grandchild = "death_grandchild"
    death_sibling = "death_sibling"


class ForfeitureState(str, enum.Enum):
    compliant = "compliant"
    forfeiture_due = "forfeiture_due"
    acknowledged = "acknowledged"
    processed = "processed"


# ── Leave type codes ────────────────────────────────────────────────

ANNUAL_LEAVE_CODE = "AL"
SICK_LEAVE_CODE = "SL"
FAMILY_RESPONSIBILITY_CODE = "FRL"


# ── South African statutory constants (BCEA) ────────────────────────

ANNUAL_LEAVE_DAYS_PER_YEAR = Decimal("21")
SICK_LEAVE_DAYS_PER_CYCLE = Decimal("30")
SICK_LEAVE_CYCLE_MONTHS = 36
FAMILY_RESPONSIBILITY_DAYS_PER_YEAR = Decimal("3")
FAMILY_RESPONSIBILITY_MIN_SERVICE_MONTHS = 4
FAMILY_RESPONSIBILITY_MIN_WORK_DAYS = 4
SICK_LEAVE_MEDICAL_CERT_THRESHOLD = Decimal("2")

# Annual leave must be taken within 6 months of the cycle ending
FORFEITURE_GRACE_MONTHS = 6
FORFEITURE_WINDOW_MONTHS = 18

# Monday=0 … Sunday=6
SA_WEEKEND = frozenset({5, 6})
HALF_DAY = Decimal("0.5")

# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%d %b %Y"
TIMEZONE = "Africa/Johannesburg"
