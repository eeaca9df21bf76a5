"""SQLite user store."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import aiosqlite

from sessionlock.exceptions import EntityNotFoundError, OptimisticConflictError
from sessionlock.repositories._errors import uniqueness_violation
from sessionlock.repositories.sqlite import SQLiteDatabase, to_db_params, to_db_timestamp
from sessionlock.users.models import USER_COLUMNS, User

logger = logging.getLogger(__name__)

_SELECT = f"SELECT {', '.join(USER_COLUMNS)} FROM users"  # nosec B608
_UNIQUE_FIELDS = ("wallet_address", "privy_id")


def _row_to_user(row: Any) -> User:
    return User.model_validate(dict(row))


async def _fetch_user(conn: aiosqlite.Connection, where: str, value: Any) -> User | None:
    cursor = await conn.execute(f"{_SELECT} WHERE {where} = ?", (value,))  # nosec B608
    row = await cursor.fetchone()
    return _row_to_user(row) if row else None


class SQLiteUserTransaction:
    """UserTransaction over a connection inside ``BEGIN IMMEDIATE``."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, user_id: UUID) -> User | None:
        return await _fetch_user(self._conn, "id", str(user_id))

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        return await _fetch_user(self._conn, "privy_id", privy_id)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        return await _fetch_user(self._conn, "wallet_address", wallet_address)

    async def insert(self, user: User) -> None:
        params = to_db_params(user.model_dump())
        columns = ", ".join(USER_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in USER_COLUMNS)
        try:
            await self._conn.execute(
                f"INSERT INTO users ({columns}) VALUES ({placeholders})",  # nosec B608
                params,
            )
        except aiosqlite.IntegrityError as e:
            raise uniqueness_violation(e, _UNIQUE_FIELDS, params) from e

    async def update(self, user: User, expected_version: int) -> None:
        params = to_db_params(user.model_dump())
        params["expected_version"] = expected_version
        set_clause = ", ".join(f"{c} = :{c}" for c in USER_COLUMNS if c not in ("id", "created_at"))
        try:
            cursor = await self._conn.execute(
                f"""
                UPDATE users SET {set_clause}
                WHERE id = :id AND version = :expected_version
                """,  # nosec B608
                params,
            )
        except aiosqlite.IntegrityError as e:
            raise uniqueness_violation(e, _UNIQUE_FIELDS, params) from e

        if cursor.rowcount == 0:
            # Either the row is gone or its version moved - check which
            current = await self.get(user.id)
            if current is None:
                raise EntityNotFoundError("User", user.id)
            raise OptimisticConflictError(user.id, expected_version, current.version)


class SQLiteUserStore:
    """
    UserStore over the ``users`` table of a SQLite database.

    Example:
        >>> async with SQLiteDatabase("app.db") as db:
        ...     users = SQLiteUserStore(db)
        ...     await users.initialize()
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    async def initialize(self) -> None:
        await self._db.initialize("users")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteUserTransaction]:
        async with self._db.transaction() as conn:
            yield SQLiteUserTransaction(conn)

    async def get(self, user_id: UUID) -> User | None:
        async with self._db.connection() as conn:
            return await _fetch_user(conn, "id", str(user_id))

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        async with self._db.connection() as conn:
            return await _fetch_user(conn, "privy_id", privy_id)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        async with self._db.connection() as conn:
            return await _fetch_user(conn, "wallet_address", wallet_address)

    async def list_users(self, offset: int, limit: int) -> list[User]:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                f"{_SELECT} ORDER BY created_at DESC, id LIMIT ? OFFSET ?",  # nosec B608
                (limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_user(row) for row in rows]

    async def count(self) -> int:
        async with self._db.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM users")
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def touch_last_active(self, user_id: UUID, at: datetime) -> bool:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "UPDATE users SET last_active_at = ? WHERE id = ?",
                (to_db_timestamp(at), str(user_id)),
            )
            return cursor.rowcount > 0


__all__ = ["SQLiteUserStore", "SQLiteUserTransaction"]
