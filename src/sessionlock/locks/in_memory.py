"""
In-memory lock store.

Shared by every LockManager in one process that is handed the same
instance, which makes it a stand-in for the lock table in tests.
"""

import asyncio
from datetime import datetime

from sessionlock.locks.interface import LockRecord


class InMemoryLockStore:
    """
    LockStore backed by a dict guarded by an asyncio.Lock.

    Example:
        >>> store = InMemoryLockStore()
        >>> manager_a = LockManager(store)
        >>> manager_b = LockManager(store)  # contends with manager_a
    """

    def __init__(self) -> None:
        self._records: dict[str, LockRecord] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    async def try_insert(self, record: LockRecord) -> bool:
        async with self._lock:
            if record.key in self._records:
                return False
            self._records[record.key] = record
            return True

    async def get(self, key: str) -> LockRecord | None:
        async with self._lock:
            return self._records.get(key)

    async def delete_expired(self, key: str, now: datetime) -> int:
        async with self._lock:
            record = self._records.get(key)
            if record is None or not record.is_expired(now):
                return 0
            del self._records[key]
            return 1

    async def delete_owned(self, key: str, owner: str) -> bool:
        async with self._lock:
            record = self._records.get(key)
            if record is None or record.owner != owner:
                return False
            del self._records[key]
            return True

    async def extend_owned(self, key: str, owner: str, expires_at: datetime) -> bool:
        async with self._lock:
            record = self._records.get(key)
            if record is None or record.owner != owner:
                return False
            self._records[key] = LockRecord(
                key=key,
                owner=owner,
                acquired_at=record.acquired_at,
                expires_at=expires_at,
            )
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._records.pop(key, None) is not None

    async def delete_all_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [key for key, record in self._records.items() if record.is_expired(now)]
            for key in expired:
                del self._records[key]
            return len(expired)

    async def clear(self) -> None:
        """Drop every lock. Test teardown helper."""
        async with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["InMemoryLockStore"]
