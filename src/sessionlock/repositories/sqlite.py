"""
Shared aiosqlite connection used by the SQLite stores.

One SQLiteDatabase stands for one process's handle on the database file.
The lock, user and session stores of a process share it, and an
asyncio.Lock serializes their use of the single connection so statements
from concurrent coroutines never interleave inside a transaction.

Several SQLiteDatabase instances opened on the same file behave like
separate processes: writers are serialized by SQLite itself through
``BEGIN IMMEDIATE`` and the busy timeout.

Example:
    >>> async with SQLiteDatabase("app.db") as db:
    ...     await db.initialize()
    ...     locks = SQLiteLockStore(db)
    ...     users = SQLiteUserStore(db)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

import aiosqlite

from sessionlock.migrations import SchemaName, get_schema

logger = logging.getLogger(__name__)


def to_db_timestamp(value: datetime | None) -> str | None:
    """
    Format a datetime as fixed-width ISO 8601 UTC text.

    Every stored timestamp has the same width and offset, so comparing the
    strings in SQL compares the instants.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    """Parse a timestamp written by to_db_timestamp."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_db_params(values: dict[str, Any]) -> dict[str, Any]:
    """Convert model values to types sqlite3 can bind."""
    params: dict[str, Any] = {}
    for name, value in values.items():
        if isinstance(value, datetime):
            params[name] = to_db_timestamp(value)
        elif isinstance(value, Enum):
            params[name] = value.value
        elif isinstance(value, UUID):
            params[name] = str(value)
        else:
            params[name] = value
    return params


class SQLiteDatabase:
    """
    Async wrapper around one aiosqlite connection.

    The connection runs in autocommit mode. ``connection()`` is for single
    statements; ``transaction()`` opens ``BEGIN IMMEDIATE`` so the write
    lock is taken up front and a read-modify-write cannot be overtaken by
    another connection.

    Attributes:
        database: Path to the database file, or ":memory:"
        wal_mode: Whether WAL journal mode is enabled
        busy_timeout: Milliseconds to wait on a locked database
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
    ) -> None:
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> SQLiteDatabase:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the connection and apply pragmas. Idempotent."""
        if self._connection is not None:
            return

        self._connection = await aiosqlite.connect(self._database, isolation_level=None)
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        if self._wal_mode and self._database != ":memory:":
            await self._connection.execute("PRAGMA journal_mode = WAL")
        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self, schema: SchemaName = "all") -> None:
        """
        Create tables if they don't exist.

        Args:
            schema: Which schema template to apply, every table by default
        """
        await self.connect()
        async with self._lock:
            conn = self._ensure_connected()
            await conn.executescript(get_schema(schema, backend="sqlite"))
        logger.info("Initialized SQLite schema '%s': %s", schema, self._database)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Exclusive use of the connection for autocommitted statements."""
        async with self._lock:
            yield self._ensure_connected()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run the block in an immediate transaction.

        Commits when the block exits normally and rolls back when it raises.
        """
        async with self._lock:
            conn = self._ensure_connected()
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with db:' or call 'connect()' first."
            )
        return self._connection

    @property
    def database(self) -> str:
        return self._database

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def wal_mode(self) -> bool:
        return self._wal_mode

    @property
    def busy_timeout(self) -> int:
        return self._busy_timeout


__all__ = ["SQLiteDatabase", "to_db_params", "to_db_timestamp", "from_db_timestamp"]
