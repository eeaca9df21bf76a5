"""
Database plumbing shared by the lock, user and session stores.

- SQLiteDatabase: one aiosqlite connection shared by a process's stores
- execute_with_connection: AsyncEngine / AsyncConnection helper for PostgreSQL
"""

from sessionlock.repositories._connection import execute_with_connection
from sessionlock.repositories.sqlite import (
    SQLiteDatabase,
    from_db_timestamp,
    to_db_params,
    to_db_timestamp,
)

__all__ = [
    "SQLiteDatabase",
    "execute_with_connection",
    "from_db_timestamp",
    "to_db_params",
    "to_db_timestamp",
]
