"""
In-memory user store for tests and development.

A transaction works on a copy of the table and publishes it only when the
block exits cleanly, so a failed block leaves no trace.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sessionlock.exceptions import (
    EntityNotFoundError,
    OptimisticConflictError,
    UniquenessViolationError,
)
from sessionlock.users.models import User


class InMemoryUserTransaction:
    def __init__(self, users: dict[UUID, User]) -> None:
        self.users = users

    async def get(self, user_id: UUID) -> User | None:
        return self.users.get(user_id)

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        return next((u for u in self.users.values() if u.privy_id == privy_id), None)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        return next(
            (u for u in self.users.values() if u.wallet_address == wallet_address),
            None,
        )

    async def insert(self, user: User) -> None:
        if user.id in self.users:
            raise UniquenessViolationError("id", user.id)
        self._check_unique(user)
        self.users[user.id] = user

    async def update(self, user: User, expected_version: int) -> None:
        current = self.users.get(user.id)
        if current is None:
            raise EntityNotFoundError("User", user.id)
        if current.version != expected_version:
            raise OptimisticConflictError(user.id, expected_version, current.version)
        self._check_unique(user)
        self.users[user.id] = user

    def _check_unique(self, user: User) -> None:
        for other in self.users.values():
            if other.id == user.id:
                continue
            if other.privy_id == user.privy_id:
                raise UniquenessViolationError("privy_id", user.privy_id)
            if user.wallet_address is not None and other.wallet_address == user.wallet_address:
                raise UniquenessViolationError("wallet_address", user.wallet_address)


class InMemoryUserStore:
    """
    UserStore backed by a dict guarded by an asyncio.Lock.

    The lock is held for a whole transaction, so do not call the store's
    own methods from inside ``transaction()``; use the transaction object.
    """

    def __init__(self) -> None:
        self._users: dict[UUID, User] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryUserTransaction]:
        async with self._lock:
            tx = InMemoryUserTransaction(dict(self._users))
            yield tx
            self._users = tx.users

    async def get(self, user_id: UUID) -> User | None:
        async with self._lock:
            return self._users.get(user_id)

    async def get_by_privy_id(self, privy_id: str) -> User | None:
        async with self._lock:
            return await InMemoryUserTransaction(self._users).get_by_privy_id(privy_id)

    async def get_by_wallet_address(self, wallet_address: str) -> User | None:
        async with self._lock:
            return await InMemoryUserTransaction(self._users).get_by_wallet_address(wallet_address)

    async def list_users(self, offset: int, limit: int) -> list[User]:
        async with self._lock:
            ordered = sorted(self._users.values(), key=lambda u: u.created_at, reverse=True)
            return ordered[offset : offset + limit]

    async def count(self) -> int:
        async with self._lock:
            return len(self._users)

    async def touch_last_active(self, user_id: UUID, at: datetime) -> bool:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = user.model_copy(update={"last_active_at": at})
            return True

    async def clear(self) -> None:
        """Drop every user. Test teardown helper."""
        async with self._lock:
            self._users.clear()


__all__ = ["InMemoryUserStore", "InMemoryUserTransaction"]
