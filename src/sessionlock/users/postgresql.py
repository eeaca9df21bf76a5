"""
PostgreSQL user store.

Reads inside a transaction take ``FOR UPDATE`` row locks, so a
read-modify-write holds the row until commit even for callers that
bypass the lock manager.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sessionlock.exceptions import EntityNotFoundError, OptimisticConflictError
from sessionlock.migrations import get_schema, split_statements
from sessionlock.repositories._connection import execute_with_connection
from sessionlock.repositories._errors import uniqueness_violation
from sessionlock.users.models import USER_COLUMNS, User

_SELECT = f"SELECT {', '.join(USER_COLUMNS)} FROM users"  # nosec B608
_UNIQUE_FIELDS = ("wallet_address", "privy_id")


def _params(user: User) -> dict[str, Any]:
    return {
        name: value.value if isinstance(value, Enum) else value
        for name, value in user.model_dump().items()
    }


async def _fetch_user(
    conn: AsyncConnection,
    where: str,
    value: Any,
    for_update: bool = False,
) -> User | None:
    suffix = " FOR UPDATE" if for_update else ""
    result = await conn.execute(
        text(f"{_SELECT} WHERE {where} = :value{suffix}"),  # nosec B608
        {"value": value},
    )
    row = result.mappings().fetchone()
    return User.model_validate(dict(row)) if row else None


class PostgreSQLUserTransaction:
    """UserTransaction over a connection inside an open transaction."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def get(self, user_id: UUID) -> User | None:
        return await _fetch_user(self._conn, "id", user_id, for_update=True)

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        return await _fetch_user(self._conn, "privy_id", privy_id)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        return await _fetch_user(self._conn, "wallet_address", wallet_address)

    async def insert(self, user: User) -> None:
        params = _params(user)
        columns = ", ".join(USER_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in USER_COLUMNS)
        try:
            await self._conn.execute(
                text(f"INSERT INTO users ({columns}) VALUES ({placeholders})"),  # nosec B608
                params,
            )
        except IntegrityError as e:
            raise uniqueness_violation(e, _UNIQUE_FIELDS, params) from e

    async def update(self, user: User, expected_version: int) -> None:
        params = _params(user)
        params["expected_version"] = expected_version
        set_clause = ", ".join(f"{c} = :{c}" for c in USER_COLUMNS if c not in ("id", "created_at"))
        query = text(f"""
            UPDATE users SET {set_clause}
            WHERE id = :id AND version = :expected_version
            RETURNING version
        """)  # nosec B608
        try:
            result = await self._conn.execute(query, params)
        except IntegrityError as e:
            raise uniqueness_violation(e, _UNIQUE_FIELDS, params) from e

        if result.fetchone() is None:
            current = await _fetch_user(self._conn, "id", user.id)
            if current is None:
                raise EntityNotFoundError("User", user.id)
            raise OptimisticConflictError(user.id, expected_version, current.version)


class PostgreSQLUserStore:
    """
    UserStore over the ``users`` table of a PostgreSQL database.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> users = PostgreSQLUserStore(engine)
        >>> await users.initialize()
    """

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self._conn = conn

    async def initialize(self) -> None:
        async with execute_with_connection(self._conn) as conn:
            for statement in split_statements(get_schema("users")):
                await conn.execute(text(statement))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgreSQLUserTransaction]:
        async with execute_with_connection(self._conn, transactional=True) as conn:
            yield PostgreSQLUserTransaction(conn)

    async def get(self, user_id: UUID) -> User | None:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await _fetch_user(conn, "id", user_id)

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await _fetch_user(conn, "privy_id", privy_id)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await _fetch_user(conn, "wallet_address", wallet_address)

    async def list_users(self, offset: int, limit: int) -> list[User]:
        query = text(f"{_SELECT} ORDER BY created_at DESC, id LIMIT :limit OFFSET :offset")  # nosec B608
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"limit": limit, "offset": offset})
            return [User.model_validate(dict(row)) for row in result.mappings()]

    async def count(self) -> int:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(text("SELECT COUNT(*) FROM users"))
            return result.scalar_one()

    async def touch_last_active(self, user_id: UUID, at: datetime) -> bool:
        query = text("UPDATE users SET last_active_at = :at WHERE id = :id")
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, {"at": at, "id": user_id})
            return result.rowcount > 0


__all__ = ["PostgreSQLUserStore", "PostgreSQLUserTransaction"]
