"""PostgreSQL session store."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sessionlock.exceptions import UniquenessViolationError
from sessionlock.migrations import get_schema, split_statements
from sessionlock.repositories._connection import execute_with_connection
from sessionlock.sessions.models import (
    SESSION_COLUMNS,
    Session,
    TerminationReason,
    reason_value,
)

_SELECT = f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions"  # nosec B608


def _params(values: dict[str, Any]) -> dict[str, Any]:
    return {name: v.value if isinstance(v, Enum) else v for name, v in values.items()}


async def _fetch_one(
    conn: AsyncConnection,
    sql: str,
    params: dict[str, Any],
) -> Session | None:
    result = await conn.execute(text(sql), params)
    row = result.mappings().fetchone()
    return Session.model_validate(dict(row)) if row else None


async def _terminate_where(
    conn: AsyncConnection,
    where: str,
    params: dict[str, Any],
    reason: TerminationReason | str,
    now: datetime,
) -> list[UUID]:
    query = text(f"""
        UPDATE sessions
        SET is_active = FALSE, terminated_at = :now, termination_reason = :reason
        WHERE is_active = TRUE AND {where}
        RETURNING id
    """)  # nosec B608
    result = await conn.execute(query, {**params, "now": now, "reason": reason_value(reason)})
    return [row[0] for row in result.fetchall()]


class PostgreSQLSessionTransaction:
    """SessionTransaction over a connection inside an open transaction."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def get(self, session_id: UUID) -> Session | None:
        return await _fetch_one(
            self._conn, f"{_SELECT} WHERE id = :id FOR UPDATE", {"id": session_id}
        )

    async def find_for_device(self, user_id: UUID, device_id: str) -> Session | None:
        return await _fetch_one(
            self._conn,
            f"{_SELECT} WHERE user_id = :user_id AND device_id = :device_id "
            "ORDER BY created_at DESC LIMIT 1 FOR UPDATE",
            {"user_id": user_id, "device_id": device_id},
        )

    async def insert(self, session: Session) -> None:
        columns = ", ".join(SESSION_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in SESSION_COLUMNS)
        try:
            await self._conn.execute(
                text(f"INSERT INTO sessions ({columns}) VALUES ({placeholders})"),  # nosec B608
                _params(session.model_dump()),
            )
        except IntegrityError as e:
            raise UniquenessViolationError("id", session.id) from e

    async def save(self, session: Session) -> None:
        set_clause = ", ".join(f"{c} = :{c}" for c in SESSION_COLUMNS if c != "id")
        await self._conn.execute(
            text(f"UPDATE sessions SET {set_clause} WHERE id = :id"),  # nosec B608
            _params(session.model_dump()),
        )

    async def terminate_other_active(
        self,
        user_id: UUID,
        keep_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        # Held until commit; a concurrent login for another device waits here
        # and its UPDATE then sees the row this transaction inserts.
        await self._conn.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": f"sessions:{user_id}"},
        )
        return await _terminate_where(
            self._conn,
            "user_id = :user_id AND id != :keep_id",
            {"user_id": user_id, "keep_id": keep_id},
            reason,
            now,
        )


class PostgreSQLSessionStore:
    """
    SessionStore over the ``sessions`` table of a PostgreSQL database.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> sessions = PostgreSQLSessionStore(engine)
        >>> await sessions.initialize()
    """

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self._conn = conn

    async def initialize(self) -> None:
        async with execute_with_connection(self._conn) as conn:
            for statement in split_statements(get_schema("sessions")):
                await conn.execute(text(statement))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgreSQLSessionTransaction]:
        async with execute_with_connection(self._conn, transactional=True) as conn:
            yield PostgreSQLSessionTransaction(conn)

    async def get(self, session_id: UUID) -> Session | None:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await _fetch_one(conn, f"{_SELECT} WHERE id = :id", {"id": session_id})

    async def list_for_user(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Session]:
        active_clause = "" if include_inactive else " AND is_active = TRUE"
        query = text(
            f"{_SELECT} WHERE user_id = :user_id{active_clause} ORDER BY last_activity_at DESC"  # nosec B608
        )
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"user_id": user_id})
            return [Session.model_validate(dict(row)) for row in result.mappings()]

    async def find_active_for_user(self, user_id: UUID) -> Session | None:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await _fetch_one(
                conn,
                f"{_SELECT} WHERE user_id = :user_id AND is_active = TRUE "
                "ORDER BY last_activity_at DESC LIMIT 1",
                {"user_id": user_id},
            )

    async def update_fields(self, session_id: UUID, changes: dict[str, Any]) -> Session | None:
        unknown = set(changes) - set(SESSION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        async with execute_with_connection(self._conn) as conn:
            if changes:
                set_clause = ", ".join(f"{c} = :{c}" for c in changes)
                await conn.execute(
                    text(f"UPDATE sessions SET {set_clause} WHERE id = :id"),  # nosec B608
                    {**_params(changes), "id": session_id},
                )
            return await _fetch_one(conn, f"{_SELECT} WHERE id = :id", {"id": session_id})

    async def terminate(
        self,
        session_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> Session | None:
        async with execute_with_connection(self._conn) as conn:
            ids = await _terminate_where(conn, "id = :id", {"id": session_id}, reason, now)
            if not ids:
                return None
            return await _fetch_one(conn, f"{_SELECT} WHERE id = :id", {"id": session_id})

    async def terminate_all_for_user(
        self,
        user_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        async with execute_with_connection(self._conn) as conn:
            return await _terminate_where(
                conn, "user_id = :user_id", {"user_id": user_id}, reason, now
            )

    async def expire_due(self, now: datetime) -> list[UUID]:
        async with execute_with_connection(self._conn) as conn:
            return await _terminate_where(
                conn, "expires_at < :cutoff", {"cutoff": now}, TerminationReason.EXPIRED, now
            )


__all__ = ["PostgreSQLSessionStore", "PostgreSQLSessionTransaction"]
