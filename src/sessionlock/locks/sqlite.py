"""
SQLite lock store.

The primary key on ``lock_key`` is what makes ``try_insert`` atomic across
connections: the losing insert fails with IntegrityError.
"""

import logging
from datetime import datetime
from typing import Any

import aiosqlite

from sessionlock.locks.interface import LockRecord
from sessionlock.repositories.sqlite import SQLiteDatabase, from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class SQLiteLockStore:
    """
    LockStore over the ``distributed_locks`` table of a SQLite database.

    Example:
        >>> async with SQLiteDatabase("app.db") as db:
        ...     store = SQLiteLockStore(db)
        ...     await store.initialize()
        ...     manager = LockManager(store)
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    async def initialize(self) -> None:
        await self._db.initialize("locks")

    async def try_insert(self, record: LockRecord) -> bool:
        async with self._db.connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO distributed_locks (lock_key, lock_owner, acquired_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        record.key,
                        record.owner,
                        to_db_timestamp(record.acquired_at),
                        to_db_timestamp(record.expires_at),
                    ),
                )
            except aiosqlite.IntegrityError:
                logger.debug("Lock row already present for %s", record.key)
                return False
        return True

    async def get(self, key: str) -> LockRecord | None:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT lock_key, lock_owner, acquired_at, expires_at
                FROM distributed_locks
                WHERE lock_key = ?
                """,
                (key,),
            )
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def delete_expired(self, key: str, now: datetime) -> int:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM distributed_locks WHERE lock_key = ? AND expires_at < ?",
                (key, to_db_timestamp(now)),
            )
            return cursor.rowcount

    async def delete_owned(self, key: str, owner: str) -> bool:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM distributed_locks WHERE lock_key = ? AND lock_owner = ?",
                (key, owner),
            )
            return cursor.rowcount > 0

    async def extend_owned(self, key: str, owner: str, expires_at: datetime) -> bool:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                """
                UPDATE distributed_locks SET expires_at = ?
                WHERE lock_key = ? AND lock_owner = ?
                """,
                (to_db_timestamp(expires_at), key, owner),
            )
            return cursor.rowcount > 0

    async def delete(self, key: str) -> bool:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM distributed_locks WHERE lock_key = ?",
                (key,),
            )
            return cursor.rowcount > 0

    async def delete_all_expired(self, now: datetime) -> int:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM distributed_locks WHERE expires_at < ?",
                (to_db_timestamp(now),),
            )
            return cursor.rowcount

    @staticmethod
    def _row_to_record(row: Any) -> LockRecord:
        return LockRecord(
            key=row["lock_key"],
            owner=row["lock_owner"],
            acquired_at=from_db_timestamp(row["acquired_at"]),  # type: ignore[arg-type]
            expires_at=from_db_timestamp(row["expires_at"]),  # type: ignore[arg-type]
        )


__all__ = ["SQLiteLockStore"]
