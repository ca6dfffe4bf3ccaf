"""Shared test fixtures — in-memory repository, async DB, client, auth helpers.

Engine tests run against ``InMemoryLeaveRepository``. Repository and API tests
use SQLite + aiosqlite for fast isolated runs without PostgreSQL.
"""

from __future__ import annotations

import os

# Secrets and retry timing must be set before any import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("BATCH_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "warning")

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from leavedesk.auth.tokens import create_access_token
from leavedesk.common.constants import UserRole
from leavedesk.common.rate_limit import limiter
from leavedesk.database import Base, get_db
from leavedesk.leave.service import LeaveService
from leavedesk.main import create_app

# Import every model module so metadata.create_all sees all tables
import leavedesk.calendar.models  # noqa: F401
import leavedesk.common.audit  # noqa: F401
import leavedesk.employees.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401

from tests.factories import (
    annual_leave_type,
    family_responsibility_type,
    make_employee,
    sick_leave_type,
)
from tests.fakes import InMemoryLeaveRepository


# ── SQLite compat: compile PG-specific types ────────────────────────

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
    """Register NOW() as a SQLite function and take over transaction control.

    pysqlite's implicit BEGIN handling breaks SAVEPOINT, so BEGIN is emitted
    explicitly from the "begin" event below.
    """
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f"),
    )
    dbapi_conn.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture
async def sql_db():
    """Create all tables for the test, drop them after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db(sql_db) -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
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


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(sql_db):
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
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


def auth_headers_for(employee_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id)}"}


# ── In-memory engine fixtures ───────────────────────────────────────

@pytest.fixture
def repo() -> InMemoryLeaveRepository:
    return InMemoryLeaveRepository()


@pytest.fixture
def service(repo) -> LeaveService:
    return LeaveService(repo)


@pytest.fixture
def leave_types(repo) -> SimpleNamespace:
    """AL, SL and FRL leave types seeded into the fake repository."""
    types = SimpleNamespace(
        annual=annual_leave_type(),
        sick=sick_leave_type(),
        family=family_responsibility_type(),
    )
    repo.seed(types.annual, types.sick, types.family)
    return types


@pytest.fixture
def employee(repo):
    person = make_employee(full_name="Thandi Nkosi")
    repo.seed(person)
    return person


@pytest.fixture
def manager(repo):
    person = make_employee(role=UserRole.manager, full_name="Sipho Dlamini")
    repo.seed(person)
    return person


@pytest.fixture
def admin(repo):
    person = make_employee(role=UserRole.admin, full_name="Anele Mokoena")
    repo.seed(person)
    return person
