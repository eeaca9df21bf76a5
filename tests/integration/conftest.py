"""
Shared pytest fixtures for PostgreSQL integration tests.

The database comes from ``SESSIONLOCK_TEST_POSTGRES_URL`` when set, and
otherwise from a PostgreSQL container started with testcontainers. When
neither is available the tests are skipped.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


# ============================================================================
# Infrastructure Detection
# ============================================================================

POSTGRES_URL_ENV = "SESSIONLOCK_TEST_POSTGRES_URL"

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]

ASYNCPG_AVAILABLE = False

try:
    import asyncpg  # noqa: F401

    ASYNCPG_AVAILABLE = True
except ImportError:
    pass


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


EXTERNAL_POSTGRES_URL = os.environ.get(POSTGRES_URL_ENV)

POSTGRES_AVAILABLE = ASYNCPG_AVAILABLE and (
    EXTERNAL_POSTGRES_URL is not None or (TESTCONTAINERS_AVAILABLE and is_docker_available())
)

skip_if_no_postgres_infra = pytest.mark.skipif(
    not POSTGRES_AVAILABLE,
    reason=f"PostgreSQL test infrastructure not available (set {POSTGRES_URL_ENV} or run Docker)",
)


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_connection_url() -> Generator[str, None, None]:
    """
    Connection URL of the test database, for the asyncpg driver.

    A container is started once per session when no URL is configured.
    """
    if not POSTGRES_AVAILABLE:
        pytest.skip("PostgreSQL test infrastructure not available")

    if EXTERNAL_POSTGRES_URL is not None:
        yield EXTERNAL_POSTGRES_URL
        return

    container = PostgresContainer("postgres:15")
    container.start()
    try:
        # testcontainers returns a psycopg2 URL, convert to asyncpg
        url = container.get_connection_url()
        yield url.replace("postgresql://", "postgresql+asyncpg://").replace("psycopg2", "asyncpg")
    finally:
        container.stop()


@pytest.fixture
async def postgres_engine(postgres_connection_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """
    SQLAlchemy async engine with every table created and emptied.

    Function-scoped so the engine's connections belong to the test's event loop.
    """
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    from sessionlock.migrations import get_schema, split_statements

    engine = create_async_engine(postgres_connection_url, echo=False, pool_size=5)

    # Execute each statement individually for asyncpg compatibility
    async with engine.begin() as conn:
        for statement in split_statements(get_schema("all")):
            await conn.execute(text(statement))

    async def truncate_tables() -> None:
        async with engine.begin() as conn:
            await conn.execute(text("TRUNCATE TABLE distributed_locks, users, sessions"))

    await truncate_tables()
    yield engine
    await truncate_tables()
    await engine.dispose()


@pytest.fixture
def pg_services(postgres_engine: AsyncEngine, clock: Any) -> dict[str, Any]:
    """Lock manager, user service and session manager over PostgreSQL stores."""
    from sessionlock.locks import LockManager, PostgreSQLLockStore
    from sessionlock.sessions import PostgreSQLSessionStore, SessionManager
    from sessionlock.users import PostgreSQLUserStore, UserService

    locks = LockManager(
        PostgreSQLLockStore(postgres_engine),
        clock=clock,
        sleep=clock.sleep,
        enable_tracing=False,
    )
    sessions = SessionManager(
        locks, PostgreSQLSessionStore(postgres_engine), clock=clock, enable_tracing=False
    )
    users = UserService(
        locks,
        PostgreSQLUserStore(postgres_engine),
        sessions=sessions,
        clock=clock,
        enable_tracing=False,
    )
    return {"locks": locks, "sessions": sessions, "users": users}
