"""
Lock record and the storage protocol behind the LockManager.

A lock store is the only channel through which processes coordinate. It
holds at most one row per lock key; the row's owner token says which
acquisition holds it and ``expires_at`` bounds how long it may be held.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class LockRecord:
    """
    A row in the lock table.

    Attributes:
        key: Namespaced resource key, e.g. "user:<id>" or "wallet:<address>"
        owner: Opaque token identifying the acquisition that holds the lock
        acquired_at: When the row was inserted
        expires_at: After this instant the row may be reaped by any contender
    """

    key: str
    owner: str
    acquired_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@runtime_checkable
class LockStore(Protocol):
    """
    Protocol for lock stores.

    Implementations must make ``try_insert`` atomic with respect to the key:
    when two processes insert the same key, exactly one succeeds.
    """

    async def initialize(self) -> None:
        """Create the lock table if the backend needs one."""
        ...

    async def try_insert(self, record: LockRecord) -> bool:
        """
        Insert a lock row.

        Returns:
            True if inserted, False if a row for the key already exists
        """
        ...

    async def get(self, key: str) -> LockRecord | None:
        """Return the row for a key, expired or not."""
        ...

    async def delete_expired(self, key: str, now: datetime) -> int:
        """Delete the row for a key if it expired before ``now``."""
        ...

    async def delete_owned(self, key: str, owner: str) -> bool:
        """Delete the row only if both key and owner match."""
        ...

    async def extend_owned(self, key: str, owner: str, expires_at: datetime) -> bool:
        """Move ``expires_at`` only if both key and owner match."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete the row regardless of owner."""
        ...

    async def delete_all_expired(self, now: datetime) -> int:
        """Delete every row that expired before ``now``."""
        ...


__all__ = ["LockRecord", "LockStore"]
