"""
Shared pytest fixtures for the sessionlock tests.

This module provides:
- Clock fixtures (clock) driving lock and session expiry deterministically
- In-memory fixtures (harness, lock_store, lock_manager, user_service, session_manager)
- Sample data fixtures (user_id, ios_metadata, android_metadata)
- SQLite fixtures (sqlite_db, sqlite_db_factory) using temporary database files
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from uuid import UUID, uuid4

import pytest

from sessionlock.config import LockOptions
from sessionlock.locks import InMemoryLockStore, LockManager
from sessionlock.repositories import SQLiteDatabase
from sessionlock.sessions import DeviceMetadata, Platform, SessionManager
from sessionlock.testing import FakeClock, InMemoryTestHarness
from sessionlock.users import UserService

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass

skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# ============================================================================
# Clock and In-Memory Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """A fresh FakeClock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def harness(clock: FakeClock) -> InMemoryTestHarness:
    """Every component wired to in-memory stores and the shared clock."""
    return InMemoryTestHarness(clock=clock)


@pytest.fixture
def lock_store() -> InMemoryLockStore:
    return InMemoryLockStore()


@pytest.fixture
def lock_manager(lock_store: InMemoryLockStore, clock: FakeClock) -> LockManager:
    """LockManager over the in-memory store with instant, recorded backoff."""
    return LockManager(
        lock_store,
        default_options=LockOptions(timeout=5.0, retries=3, retry_delay=0.1),
        clock=clock,
        sleep=clock.sleep,
        enable_tracing=False,
    )


@pytest.fixture
def user_service(harness: InMemoryTestHarness) -> UserService:
    return harness.users


@pytest.fixture
def session_manager(harness: InMemoryTestHarness) -> SessionManager:
    return harness.sessions


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def ios_metadata() -> DeviceMetadata:
    return DeviceMetadata(
        platform=Platform.IOS,
        device_name="Ada's iPhone",
        device_model="iPhone15,2",
        os_version="17.4",
        app_version="2.3.0",
        push_token="apns-token-1",
    )


@pytest.fixture
def android_metadata() -> DeviceMetadata:
    return DeviceMetadata(
        platform=Platform.ANDROID,
        device_name="Pixel",
        device_model="Pixel 8",
        os_version="14",
        app_version="2.3.0",
    )


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    """Path of a temporary database file shared by every connection in a test."""
    return str(tmp_path / "sessionlock.db")


@pytest.fixture
async def sqlite_db_factory(
    sqlite_path: str,
) -> AsyncGenerator[Callable[[], Awaitable[SQLiteDatabase]], None]:
    """
    Factory opening additional connections to the same database file.

    Each SQLiteDatabase stands in for a separate process.
    """
    opened: list[SQLiteDatabase] = []

    async def open_db() -> SQLiteDatabase:
        db = SQLiteDatabase(sqlite_path)
        await db.connect()
        await db.initialize()
        opened.append(db)
        return db

    yield open_db

    for db in opened:
        await db.close()


@pytest.fixture
async def sqlite_db(
    sqlite_db_factory: Callable[[], Awaitable[SQLiteDatabase]],
) -> SQLiteDatabase:
    """An initialized database with every table."""
    return await sqlite_db_factory()
