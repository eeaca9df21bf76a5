"""
Storage protocols for users.

Reads and single-field writes go straight to the UserStore. Anything that
reads a row and writes it back runs in ``UserStore.transaction()`` so the
read and the write commit together.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from sessionlock.users.models import User


@runtime_checkable
class UserTransaction(Protocol):
    """Reads and writes that commit or roll back together."""

    async def get(self, user_id: UUID) -> User | None:
        """Read a user, locking the row for the rest of the transaction where supported."""
        ...

    async def get_by_privy_id(self, privy_id: str) -> User | None: ...

    async def get_by_wallet_address(self, wallet_address: str) -> User | None: ...

    async def insert(self, user: User) -> None:
        """
        Insert a new user.

        Raises:
            UniquenessViolationError: If privy_id or wallet_address is taken
        """
        ...

    async def update(self, user: User, expected_version: int) -> None:
        """
        Overwrite a user only if the stored version still equals ``expected_version``.

        ``user`` carries the new version.

        Raises:
            EntityNotFoundError: If the row is gone
            OptimisticConflictError: If the stored version moved on
            UniquenessViolationError: If the new wallet_address is taken
        """
        ...


@runtime_checkable
class UserStore(Protocol):
    """Protocol for user stores."""

    async def initialize(self) -> None: ...

    def transaction(self) -> AbstractAsyncContextManager[UserTransaction]:
        """Open a transaction; commits on normal exit, rolls back on error."""
        ...

    async def get(self, user_id: UUID) -> User | None: ...

    async def get_by_privy_id(self, privy_id: str) -> User | None: ...

    async def get_by_wallet_address(self, wallet_address: str) -> User | None: ...

    async def list_users(self, offset: int, limit: int) -> list[User]:
        """Users ordered newest first."""
        ...

    async def count(self) -> int: ...

    async def touch_last_active(self, user_id: UUID, at: datetime) -> bool:
        """Set ``last_active_at`` without changing the version. False if no such user."""
        ...


__all__ = ["UserTransaction", "UserStore"]
