"""
Distributed locks for coordinating processes through a shared database.

A lock is a row in the ``distributed_locks`` table. The row's owner token
prevents a process from releasing a lock it no longer owns, and its expiry
lets contenders reap locks left behind by crashed holders.

Example:
    >>> from sessionlock.locks import LockManager, SQLiteLockStore, user_lock_key
    >>>
    >>> manager = LockManager(SQLiteLockStore(db))
    >>>
    >>> async with manager.hold(user_lock_key(user_id)):
    ...     await update_user()
    >>>
    >>> try:
    ...     await manager.with_lock("wallet:0xabc", claim_wallet, LockOptions(timeout=5.0))
    ... except LockAcquisitionError:
    ...     print("Another instance is claiming this wallet")
"""

from sessionlock.exceptions import LockAcquisitionError, LockNotHeldError
from sessionlock.locks.in_memory import InMemoryLockStore
from sessionlock.locks.interface import LockRecord, LockStore
from sessionlock.locks.manager import (
    LockHandle,
    LockManager,
    session_lock_key,
    user_lock_key,
    wallet_lock_key,
)
from sessionlock.locks.postgresql import PostgreSQLLockStore
from sessionlock.locks.sqlite import SQLiteLockStore

__all__ = [
    "LockAcquisitionError",
    "LockNotHeldError",
    "LockRecord",
    "LockStore",
    "LockHandle",
    "LockManager",
    "InMemoryLockStore",
    "SQLiteLockStore",
    "PostgreSQLLockStore",
    "session_lock_key",
    "user_lock_key",
    "wallet_lock_key",
]
