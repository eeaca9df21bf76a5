"""
PostgreSQL lock store.

``INSERT ... ON CONFLICT DO NOTHING`` reports a taken key as zero affected
rows instead of an error, so a lost race never aborts the surrounding
transaction.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sessionlock.locks.interface import LockRecord
from sessionlock.migrations import get_schema, split_statements
from sessionlock.repositories._connection import execute_with_connection


class PostgreSQLLockStore:
    """
    LockStore over the ``distributed_locks`` table of a PostgreSQL database.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> manager = LockManager(PostgreSQLLockStore(engine))
    """

    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self._conn = conn

    async def initialize(self) -> None:
        async with execute_with_connection(self._conn) as conn:
            for statement in split_statements(get_schema("locks")):
                await conn.execute(text(statement))

    async def try_insert(self, record: LockRecord) -> bool:
        query = text("""
            INSERT INTO distributed_locks (lock_key, lock_owner, acquired_at, expires_at)
            VALUES (:key, :owner, :acquired_at, :expires_at)
            ON CONFLICT (lock_key) DO NOTHING
        """)
        params = {
            "key": record.key,
            "owner": record.owner,
            "acquired_at": record.acquired_at,
            "expires_at": record.expires_at,
        }
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, params)
            return result.rowcount == 1

    async def get(self, key: str) -> LockRecord | None:
        query = text("""
            SELECT lock_key, lock_owner, acquired_at, expires_at
            FROM distributed_locks
            WHERE lock_key = :key
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"key": key})
            row = result.fetchone()
        if row is None:
            return None
        return LockRecord(key=row[0], owner=row[1], acquired_at=row[2], expires_at=row[3])

    async def delete_expired(self, key: str, now: datetime) -> int:
        query = text("""
            DELETE FROM distributed_locks
            WHERE lock_key = :key AND expires_at < :now
        """)
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, {"key": key, "now": now})
            return result.rowcount

    async def delete_owned(self, key: str, owner: str) -> bool:
        query = text("""
            DELETE FROM distributed_locks
            WHERE lock_key = :key AND lock_owner = :owner
        """)
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, {"key": key, "owner": owner})
            return result.rowcount > 0

    async def extend_owned(self, key: str, owner: str, expires_at: datetime) -> bool:
        query = text("""
            UPDATE distributed_locks SET expires_at = :expires_at
            WHERE lock_key = :key AND lock_owner = :owner
        """)
        params = {"key": key, "owner": owner, "expires_at": expires_at}
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, params)
            return result.rowcount > 0

    async def delete(self, key: str) -> bool:
        query = text("DELETE FROM distributed_locks WHERE lock_key = :key")
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, {"key": key})
            return result.rowcount > 0

    async def delete_all_expired(self, now: datetime) -> int:
        query = text("DELETE FROM distributed_locks WHERE expires_at < :now")
        async with execute_with_connection(self._conn) as conn:
            result = await conn.execute(query, {"now": now})
            return result.rowcount


__all__ = ["PostgreSQLLockStore"]
