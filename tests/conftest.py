"""Shared test fixtures — async DB, client, clock, org fixtures.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from worktime.common.clock import FixedClock, get_clock
from worktime.common.constants import UserRole
from worktime.database import Base, get_db
from worktime.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import worktime.common.audit  # noqa: F401
import worktime.leave.models  # noqa: F401
import worktime.schedules.models  # noqa: F401
import worktime.users.models  # noqa: F401

from tests.factories import make_company, make_user

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

# 2025-03-01 09:00 UTC; scenarios below are dated in spring 2025
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from worktime.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Clock ───────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(clock):
    """Create a fresh app instance with DB and clock dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_clock] = lambda: clock
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Org fixtures ────────────────────────────────────────────────────
#
#   company ── company_admin (COMPANY, manages company)
#      ├── manager (MANAGER)
#      │     ├── member   (report)
#      │     └── member2  (report)
#      └── outsider (MEMBER, no manager)
#   other_company ── stranger (MEMBER)
#   admin (ADMIN)


@pytest.fixture
async def company(db):
    return await make_company(db, name="Acme KK")


@pytest.fixture
async def other_company(db):
    return await make_company(db, name="Globex")


@pytest.fixture
async def admin(db):
    return await make_user(db, role=UserRole.admin, first_name="Ada")


@pytest.fixture
async def company_admin(db, company):
    return await make_user(
        db,
        role=UserRole.company,
        company=company,
        managed_company=company,
        first_name="Carol",
    )


@pytest.fixture
async def manager(db, company):
    return await make_user(db, role=UserRole.manager, company=company, first_name="Mona")


@pytest.fixture
async def member(db, company, manager):
    return await make_user(db, company=company, manager=manager, first_name="Uma")


@pytest.fixture
async def member2(db, company, manager):
    return await make_user(db, company=company, manager=manager, first_name="Ulf")


@pytest.fixture
async def outsider(db, company):
    return await make_user(db, company=company, first_name="Otto")


@pytest.fixture
async def stranger(db, other_company):
    return await make_user(db, company=other_company, first_name="Sven")
