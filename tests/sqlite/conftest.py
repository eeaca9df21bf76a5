"""Fixtures wiring the services to SQLite stores."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import pytest

from sessionlock.config import LockOptions
from sessionlock.locks import LockManager, SQLiteLockStore
from sessionlock.repositories import SQLiteDatabase
from sessionlock.sessions import SessionManager, SQLiteSessionStore
from sessionlock.testing import FakeClock
from sessionlock.users import SQLiteUserStore, UserService


@dataclass
class SQLiteProcess:
    """Everything one process would build over its own connection."""

    db: SQLiteDatabase
    locks: LockManager
    users: UserService
    sessions: SessionManager


def build_process(
    db: SQLiteDatabase,
    clock: FakeClock,
    lock_options: LockOptions | None = None,
) -> SQLiteProcess:
    locks = LockManager(
        SQLiteLockStore(db),
        default_options=lock_options,
        clock=clock,
        sleep=clock.sleep,
        enable_tracing=False,
    )
    sessions = SessionManager(locks, SQLiteSessionStore(db), clock=clock, enable_tracing=False)
    users = UserService(
        locks,
        SQLiteUserStore(db),
        sessions=sessions,
        clock=clock,
        enable_tracing=False,
    )
    return SQLiteProcess(db=db, locks=locks, users=users, sessions=sessions)


@pytest.fixture
async def process(sqlite_db: SQLiteDatabase, clock: FakeClock) -> SQLiteProcess:
    return build_process(sqlite_db, clock)


@pytest.fixture
def open_process(
    sqlite_db_factory: Callable[[], Awaitable[SQLiteDatabase]],
    clock: FakeClock,
) -> Callable[[], Awaitable[SQLiteProcess]]:
    """Open another connection to the same file, standing in for another process."""

    async def open_one() -> SQLiteProcess:
        return build_process(await sqlite_db_factory(), clock)

    return open_one
