"""
Storage protocols for sessions.

Reconciliation reads the device's row, terminates the user's other Active
rows and writes the device's row back, all inside one
``SessionStore.transaction()``. The remaining operations address rows
that are already identified and are single statements.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sessionlock.sessions.models import Session, TerminationReason


@runtime_checkable
class SessionTransaction(Protocol):
    """Reads and writes that commit or roll back together."""

    async def get(self, session_id: UUID) -> Session | None: ...

    async def find_for_device(self, user_id: UUID, device_id: str) -> Session | None:
        """The row for a (user, device) pair in any state, newest if several exist."""
        ...

    async def insert(self, session: Session) -> None: ...

    async def save(self, session: Session) -> None:
        """Overwrite the row with the same id."""
        ...

    async def terminate_other_active(
        self,
        user_id: UUID,
        keep_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        """Terminate every Active row of the user except ``keep_id``; return their ids."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Protocol for session stores."""

    async def initialize(self) -> None: ...

    def transaction(self) -> AbstractAsyncContextManager[SessionTransaction]:
        """Open a transaction; commits on normal exit, rolls back on error."""
        ...

    async def get(self, session_id: UUID) -> Session | None: ...

    async def list_for_user(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Session]:
        """Sessions of a user, most recently active first."""
        ...

    async def find_active_for_user(self, user_id: UUID) -> Session | None:
        """The user's most recently active Active session."""
        ...

    async def update_fields(self, session_id: UUID, changes: dict[str, Any]) -> Session | None:
        """
        Write metadata or timestamp fields of one row.

        ``changes`` never holds lifecycle fields. Returns the updated row,
        or None if there is no such session.
        """
        ...

    async def terminate(
        self,
        session_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> Session | None:
        """Terminate one row if it is Active. Returns the row only if it changed."""
        ...

    async def terminate_all_for_user(
        self,
        user_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]: ...

    async def expire_due(self, now: datetime) -> list[UUID]:
        """Terminate every Active row whose expiry passed, with reason ``expired``."""
        ...


__all__ = ["SessionTransaction", "SessionStore"]
