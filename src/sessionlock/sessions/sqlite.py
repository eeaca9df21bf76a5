"""SQLite session store."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import aiosqlite

from sessionlock.exceptions import UniquenessViolationError
from sessionlock.repositories.sqlite import SQLiteDatabase, to_db_params, to_db_timestamp
from sessionlock.sessions.models import (
    SESSION_COLUMNS,
    Session,
    TerminationReason,
    reason_value,
)

_SELECT = f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions"  # nosec B608


def _row_to_session(row: Any) -> Session:
    return Session.model_validate(dict(row))


async def _fetch_one(
    conn: aiosqlite.Connection,
    sql: str,
    params: tuple[Any, ...],
) -> Session | None:
    cursor = await conn.execute(sql, params)
    row = await cursor.fetchone()
    return _row_to_session(row) if row else None


async def _terminate_where(
    conn: aiosqlite.Connection,
    where: str,
    params: tuple[Any, ...],
    reason: TerminationReason | str,
    now: datetime,
) -> list[UUID]:
    """Terminate the Active rows matching ``where`` and return their ids."""
    cursor = await conn.execute(
        f"SELECT id FROM sessions WHERE is_active = 1 AND {where}",  # nosec B608
        params,
    )
    ids = [row[0] for row in await cursor.fetchall()]
    if ids:
        placeholders = ", ".join("?" for _ in ids)
        await conn.execute(
            f"""
            UPDATE sessions
            SET is_active = 0, terminated_at = ?, termination_reason = ?
            WHERE is_active = 1 AND id IN ({placeholders})
            """,  # nosec B608
            (to_db_timestamp(now), reason_value(reason), *ids),
        )
    return [UUID(i) for i in ids]


class SQLiteSessionTransaction:
    """SessionTransaction over a connection inside ``BEGIN IMMEDIATE``."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, session_id: UUID) -> Session | None:
        return await _fetch_one(self._conn, f"{_SELECT} WHERE id = ?", (str(session_id),))

    async def find_for_device(self, user_id: UUID, device_id: str) -> Session | None:
        return await _fetch_one(
            self._conn,
            f"{_SELECT} WHERE user_id = ? AND device_id = ? ORDER BY created_at DESC LIMIT 1",
            (str(user_id), device_id),
        )

    async def insert(self, session: Session) -> None:
        columns = ", ".join(SESSION_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in SESSION_COLUMNS)
        try:
            await self._conn.execute(
                f"INSERT INTO sessions ({columns}) VALUES ({placeholders})",  # nosec B608
                to_db_params(session.model_dump()),
            )
        except aiosqlite.IntegrityError as e:
            raise UniquenessViolationError("id", session.id) from e

    async def save(self, session: Session) -> None:
        set_clause = ", ".join(f"{c} = :{c}" for c in SESSION_COLUMNS if c != "id")
        await self._conn.execute(
            f"UPDATE sessions SET {set_clause} WHERE id = :id",  # nosec B608
            to_db_params(session.model_dump()),
        )

    async def terminate_other_active(
        self,
        user_id: UUID,
        keep_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        return await _terminate_where(
            self._conn,
            "user_id = ? AND id != ?",
            (str(user_id), str(keep_id)),
            reason,
            now,
        )


class SQLiteSessionStore:
    """
    SessionStore over the ``sessions`` table of a SQLite database.

    Example:
        >>> async with SQLiteDatabase("app.db") as db:
        ...     sessions = SQLiteSessionStore(db)
        ...     await sessions.initialize()
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    async def initialize(self) -> None:
        await self._db.initialize("sessions")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteSessionTransaction]:
        async with self._db.transaction() as conn:
            yield SQLiteSessionTransaction(conn)

    async def get(self, session_id: UUID) -> Session | None:
        async with self._db.connection() as conn:
            return await _fetch_one(conn, f"{_SELECT} WHERE id = ?", (str(session_id),))

    async def list_for_user(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Session]:
        active_clause = "" if include_inactive else " AND is_active = 1"
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                f"{_SELECT} WHERE user_id = ?{active_clause} ORDER BY last_activity_at DESC",  # nosec B608
                (str(user_id),),
            )
            rows = await cursor.fetchall()
        return [_row_to_session(row) for row in rows]

    async def find_active_for_user(self, user_id: UUID) -> Session | None:
        async with self._db.connection() as conn:
            return await _fetch_one(
                conn,
                f"{_SELECT} WHERE user_id = ? AND is_active = 1 "
                "ORDER BY last_activity_at DESC LIMIT 1",
                (str(user_id),),
            )

    async def update_fields(self, session_id: UUID, changes: dict[str, Any]) -> Session | None:
        unknown = set(changes) - set(SESSION_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        params = to_db_params(changes)
        params["id"] = str(session_id)
        set_clause = ", ".join(f"{c} = :{c}" for c in changes)
        async with self._db.transaction() as conn:
            if changes:
                await conn.execute(
                    f"UPDATE sessions SET {set_clause} WHERE id = :id",  # nosec B608
                    params,
                )
            return await _fetch_one(conn, f"{_SELECT} WHERE id = ?", (str(session_id),))

    async def terminate(
        self,
        session_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> Session | None:
        async with self._db.transaction() as conn:
            ids = await _terminate_where(conn, "id = ?", (str(session_id),), reason, now)
            if not ids:
                return None
            return await _fetch_one(conn, f"{_SELECT} WHERE id = ?", (str(session_id),))

    async def terminate_all_for_user(
        self,
        user_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        async with self._db.transaction() as conn:
            return await _terminate_where(conn, "user_id = ?", (str(user_id),), reason, now)

    async def expire_due(self, now: datetime) -> list[UUID]:
        async with self._db.transaction() as conn:
            return await _terminate_where(
                conn,
                "expires_at < ?",
                (to_db_timestamp(now),),
                TerminationReason.EXPIRED,
                now,
            )


__all__ = ["SQLiteSessionStore", "SQLiteSessionTransaction"]
