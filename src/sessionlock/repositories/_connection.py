"""
Connection handling helper for the PostgreSQL stores.

Stores accept either an AsyncEngine or an AsyncConnection. The helper in
this module hides the difference so each query site reads the same way.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection ready for ``execute()`` calls.

    Args:
        conn: Database engine or an already-open connection
        transactional: Wrap the block in a transaction that commits on
            success and rolls back on error. Reads pass False.

    With an AsyncEngine a connection is checked out for the block. With an
    AsyncConnection that is already inside a transaction the connection is
    yielded untouched and the caller owns commit and rollback; otherwise a
    transaction is opened on it when ``transactional`` is set.

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(query, params)
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    elif transactional and not conn.in_transaction():
        async with conn.begin():
            yield conn
    else:
        yield conn


__all__ = ["execute_with_connection"]
