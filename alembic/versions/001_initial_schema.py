"""001 – Initial schema: employees, leave types, balances, requests, holidays, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-06 09:00:00.000000+02:00
"""

from alembic import op
import sqlalchemy as sa

from leavedesk.common.constants import (
    ANNUAL_LEAVE_CODE,
    ANNUAL_LEAVE_DAYS_PER_YEAR,
    FAMILY_RESPONSIBILITY_CODE,
    FAMILY_RESPONSIBILITY_DAYS_PER_YEAR,
    SICK_LEAVE_CODE,
    SICK_LEAVE_CYCLE_MONTHS,
    SICK_LEAVE_DAYS_PER_CYCLE,
)

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "admin"]),
    ("accrual_method", ["MONTHLY", "LUMP_SUM"]),
    ("half_day_period", ["morning", "afternoon"]),
    (
        "family_responsibility_reason",
        [
            "child_birth",
            "child_illness",
            "death_spouse",
            "death_life_partner",
            "death_parent",
            "death_grandparent",
            "death_child",
            "death_grandchild",
            "death_sibling",
        ],
    ),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email                              VARCHAR(255) NOT NULL UNIQUE,
            full_name                          VARCHAR(200) NOT NULL,
            role                               user_role NOT NULL DEFAULT 'employee',
            department                         VARCHAR(100),
            start_work_date                    DATE NOT NULL,
            end_work_date                      DATE,
            weekly_days_off                    JSONB,
            forfeiture_acknowledgment_required BOOLEAN NOT NULL DEFAULT FALSE,
            last_forfeiture_processed_at       TIMESTAMPTZ,
            created_at                         TIMESTAMPTZ DEFAULT NOW(),
            updated_at                         TIMESTAMPTZ DEFAULT NOW(),
            CHECK (end_work_date IS NULL OR end_work_date >= start_work_date)
        )
    """)

    # ── 2. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code               VARCHAR(10)  NOT NULL UNIQUE,
            name               VARCHAR(100) NOT NULL,
            color              VARCHAR(20)  NOT NULL DEFAULT '#3b82f6',
            is_statutory       BOOLEAN NOT NULL DEFAULT FALSE,
            cycle_months       INTEGER NOT NULL DEFAULT 12,
            accrual_method     accrual_method NOT NULL DEFAULT 'LUMP_SUM',
            max_days_per_cycle NUMERIC(6,2) NOT NULL,
            is_active          BOOLEAN NOT NULL DEFAULT TRUE,
            created_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                         UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id                UUID NOT NULL REFERENCES employees(id),
            leave_type_id              UUID NOT NULL REFERENCES leave_types(id),
            year                       INTEGER NOT NULL,
            total_days                 NUMERIC(6,2) NOT NULL DEFAULT 0,
            used_days                  NUMERIC(6,2) NOT NULL DEFAULT 0,
            remaining_days             NUMERIC(6,2) NOT NULL DEFAULT 0,
            accrued_days               NUMERIC(6,2) NOT NULL DEFAULT 0,
            accrued_months             INTEGER NOT NULL DEFAULT 0,
            carried_over_days          NUMERIC(6,2) NOT NULL DEFAULT 0,
            cycle_start_date           DATE,
            cycle_end_date             DATE,
            forfeited_days             NUMERIC(6,2) NOT NULL DEFAULT 0,
            forfeiture_acknowledged_at TIMESTAMPTZ,
            forfeiture_processed_at    TIMESTAMPTZ,
            version                    INTEGER NOT NULL DEFAULT 0,
            updated_at                 TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year),
            CONSTRAINT ck_balance_remaining CHECK (remaining_days = total_days - used_days),
            CONSTRAINT ck_balance_total_nonneg CHECK (total_days >= 0),
            CONSTRAINT ck_balance_used_nonneg CHECK (used_days >= 0),
            CONSTRAINT ck_balance_remaining_nonneg CHECK (remaining_days >= 0)
        )
    """)
    op.execute(
        "CREATE INDEX idx_leave_balances_employee ON leave_balances(employee_id, leave_type_id)"
    )

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id                  UUID NOT NULL REFERENCES employees(id),
            leave_type_id                UUID NOT NULL REFERENCES leave_types(id),
            balance_year                 INTEGER NOT NULL,
            start_date                   DATE NOT NULL,
            end_date                     DATE NOT NULL,
            total_days                   NUMERIC(6,2) NOT NULL,
            carry_over_year              INTEGER,
            carry_over_days              NUMERIC(6,2) NOT NULL DEFAULT 0,
            is_half_day                  BOOLEAN NOT NULL DEFAULT FALSE,
            half_day_period              half_day_period,
            reason                       TEXT,
            family_reason                family_responsibility_reason,
            requires_medical_certificate BOOLEAN NOT NULL DEFAULT FALSE,
            status                       leave_status NOT NULL DEFAULT 'pending',
            approved_by                  UUID REFERENCES employees(id),
            approved_at                  TIMESTAMPTZ,
            reviewer_remarks             TEXT,
            cancellation_reason          TEXT,
            cancelled_by                 UUID REFERENCES employees(id),
            cancelled_at                 TIMESTAMPTZ,
            created_at                   TIMESTAMPTZ DEFAULT NOW(),
            updated_at                   TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_status ON leave_requests(employee_id, status)"
    )
    op.execute(
        "CREATE INDEX idx_leave_requests_dates ON leave_requests(start_date, end_date)"
    )

    # ── 5. public_holidays ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE public_holidays (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            date          DATE NOT NULL,
            name          VARCHAR(100) NOT NULL,
            year          INTEGER NOT NULL,
            is_observed   BOOLEAN NOT NULL DEFAULT TRUE,
            original_date DATE,
            CONSTRAINT uq_public_holiday_date_name UNIQUE (date, name)
        )
    """)
    op.execute("CREATE INDEX ix_public_holidays_year ON public_holidays(year)")

    # ── 6. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    leave_types = sa.table(
        "leave_types",
        sa.column("code", sa.String),
        sa.column("name", sa.String),
        sa.column("color", sa.String),
        sa.column("is_statutory", sa.Boolean),
        sa.column("cycle_months", sa.Integer),
        sa.column("max_days_per_cycle", sa.Numeric),
    )
    op.bulk_insert(
        leave_types,
        [
            {"code": ANNUAL_LEAVE_CODE, "name": "Annual Leave", "color": "#3b82f6",
             "is_statutory": True, "cycle_months": 12,
             "max_days_per_cycle": ANNUAL_LEAVE_DAYS_PER_YEAR},
            {"code": SICK_LEAVE_CODE, "name": "Sick Leave", "color": "#ef4444",
             "is_statutory": True, "cycle_months": SICK_LEAVE_CYCLE_MONTHS,
             "max_days_per_cycle": SICK_LEAVE_DAYS_PER_CYCLE},
            {"code": FAMILY_RESPONSIBILITY_CODE, "name": "Family Responsibility Leave",
             "color": "#a855f7", "is_statutory": True, "cycle_months": 12,
             "max_days_per_cycle": FAMILY_RESPONSIBILITY_DAYS_PER_YEAR},
        ],
    )
    # Only annual leave accrues month by month
    op.execute(
        f"UPDATE leave_types SET accrual_method = 'MONTHLY' WHERE code = '{ANNUAL_LEAVE_CODE}'"
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "public_holidays",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
