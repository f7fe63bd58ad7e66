"""001 – Initial schema: companies, users, leave, work schedules, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["MEMBER", "MANAGER", "COMPANY", "ADMIN"]),
    ("leave_status", ["PENDING", "APPROVED", "REJECTED"]),
    (
        "leave_type",
        [
            "PAID_LEAVE",
            "SICK_LEAVE",
            "PERSONAL_LEAVE",
            "MATERNITY",
            "PATERNITY",
            "SPECIAL",
            "UNPAID",
        ],
    ),
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
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. companies ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE companies (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(200) NOT NULL,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email               VARCHAR(255) NOT NULL UNIQUE,
            first_name          VARCHAR(100) NOT NULL,
            last_name           VARCHAR(100) NOT NULL,
            role                user_role NOT NULL DEFAULT 'MEMBER',
            company_id          UUID REFERENCES companies(id),
            managed_company_id  UUID REFERENCES companies(id),
            manager_id          UUID REFERENCES users(id),
            is_active           BOOLEAN DEFAULT TRUE,
            created_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_users_company_id ON users(company_id)")
    op.execute("CREATE INDEX ix_users_manager_id ON users(manager_id)")

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id         UUID NOT NULL REFERENCES users(id),
            year            INTEGER NOT NULL,
            leave_type      leave_type NOT NULL,
            total_days      NUMERIC(5,1) NOT NULL DEFAULT 0,
            used_days       NUMERIC(5,1) NOT NULL DEFAULT 0,
            remaining_days  NUMERIC(5,1) NOT NULL DEFAULT 0,
            expiry_date     DATE,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (user_id, year, leave_type),
            CONSTRAINT ck_leave_balance_remaining CHECK (remaining_days >= 0),
            CONSTRAINT ck_leave_balance_used CHECK (used_days >= 0),
            CONSTRAINT ck_leave_balance_consistent
                CHECK (used_days + remaining_days = total_days)
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id         UUID NOT NULL REFERENCES users(id),
            leave_type      leave_type NOT NULL,
            start_date      DATE NOT NULL,
            end_date        DATE NOT NULL,
            days            NUMERIC(5,1) NOT NULL,
            reason          TEXT,
            status          leave_status NOT NULL DEFAULT 'PENDING',
            approver_id     UUID REFERENCES users(id),
            approved_at     TIMESTAMPTZ,
            rejected_at     TIMESTAMPTZ,
            reject_reason   TEXT,
            requested_at    TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date),
            CONSTRAINT ck_leave_request_days CHECK (days >= 0.5)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_user_dates "
        "ON leave_requests(user_id, start_date, end_date)"
    )

    # ── 5. work_schedules ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE work_schedules (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id          UUID NOT NULL REFERENCES companies(id),
            name                VARCHAR(100) NOT NULL,
            standard_hours      NUMERIC(4,2) NOT NULL,
            flex_time_start     VARCHAR(5),
            flex_time_end       VARCHAR(5),
            core_time_start     VARCHAR(5),
            core_time_end       VARCHAR(5),
            break_duration      INTEGER DEFAULT 60,
            overtime_threshold  NUMERIC(4,2) DEFAULT 8.0,
            is_flex_time        BOOLEAN DEFAULT FALSE,
            is_default          BOOLEAN DEFAULT FALSE,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_work_schedules_company_default "
        "ON work_schedules(company_id, is_default)"
    )
    # At most one default template per company
    op.execute(
        "CREATE UNIQUE INDEX uq_work_schedules_one_default "
        "ON work_schedules(company_id) WHERE is_default"
    )

    # ── 6. user_work_schedules ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_work_schedules (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            work_schedule_id  UUID NOT NULL REFERENCES work_schedules(id),
            start_date        DATE NOT NULL,
            end_date          DATE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_user_work_schedule_dates
                CHECK (end_date IS NULL OR start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_user_work_schedules_user_dates "
        "ON user_work_schedules(user_id, start_date)"
    )

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES users(id),
            subject_id   UUID,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)
    op.execute(
        "CREATE INDEX ix_audit_trail_subject ON audit_trail(subject_id, created_at)"
    )
    op.execute(
        "CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "user_work_schedules",
        "work_schedules",
        "leave_requests",
        "leave_balances",
        "users",
        "companies",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
