"""In-memory session store for tests and development."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sessionlock.exceptions import UniquenessViolationError
from sessionlock.sessions.models import Session, TerminationReason
from sessionlock.sessions.state_machine import terminate_session


def _newest_first(sessions: list[Session]) -> list[Session]:
    return sorted(sessions, key=lambda s: s.last_activity_at, reverse=True)


class InMemorySessionTransaction:
    def __init__(self, sessions: dict[UUID, Session]) -> None:
        self.sessions = sessions

    async def get(self, session_id: UUID) -> Session | None:
        return self.sessions.get(session_id)

    async def find_for_device(self, user_id: UUID, device_id: str) -> Session | None:
        matches = [
            s for s in self.sessions.values() if s.user_id == user_id and s.device_id == device_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda s: s.created_at)

    async def insert(self, session: Session) -> None:
        if session.id in self.sessions:
            raise UniquenessViolationError("id", session.id)
        self.sessions[session.id] = session

    async def save(self, session: Session) -> None:
        self.sessions[session.id] = session

    async def terminate_other_active(
        self,
        user_id: UUID,
        keep_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        others = [
            s
            for s in self.sessions.values()
            if s.user_id == user_id and s.is_active and s.id != keep_id
        ]
        for session in others:
            self.sessions[session.id] = terminate_session(session, reason, now)
        return [s.id for s in others]


class InMemorySessionStore:
    """
    SessionStore backed by a dict guarded by an asyncio.Lock.

    Transactions work on a copy that replaces the table only on a clean
    exit. Do not call the store's own methods from inside ``transaction()``.
    """

    def __init__(self) -> None:
        self._sessions: dict[UUID, Session] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemorySessionTransaction]:
        async with self._lock:
            tx = InMemorySessionTransaction(dict(self._sessions))
            yield tx
            self._sessions = tx.sessions

    async def get(self, session_id: UUID) -> Session | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def list_for_user(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Session]:
        async with self._lock:
            return _newest_first(
                [
                    s
                    for s in self._sessions.values()
                    if s.user_id == user_id and (include_inactive or s.is_active)
                ]
            )

    async def find_active_for_user(self, user_id: UUID) -> Session | None:
        sessions = await self.list_for_user(user_id)
        return sessions[0] if sessions else None

    async def update_fields(self, session_id: UUID, changes: dict[str, Any]) -> Session | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            updated = session.model_copy(update=changes)
            self._sessions[session_id] = updated
            return updated

    async def terminate(
        self,
        session_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> Session | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.is_active:
                return None
            terminated = terminate_session(session, reason, now)
            self._sessions[session_id] = terminated
            return terminated

    async def terminate_all_for_user(
        self,
        user_id: UUID,
        reason: TerminationReason | str,
        now: datetime,
    ) -> list[UUID]:
        async with self._lock:
            active = [s for s in self._sessions.values() if s.user_id == user_id and s.is_active]
            for session in active:
                self._sessions[session.id] = terminate_session(session, reason, now)
            return [s.id for s in active]

    async def expire_due(self, now: datetime) -> list[UUID]:
        async with self._lock:
            due = [s for s in self._sessions.values() if s.is_active and s.is_expired(now)]
            for session in due:
                self._sessions[session.id] = terminate_session(
                    session, TerminationReason.EXPIRED, now
                )
            return [s.id for s in due]

    async def clear(self) -> None:
        """Drop every session. Test teardown helper."""
        async with self._lock:
            self._sessions.clear()


__all__ = ["InMemorySessionStore", "InMemorySessionTransaction"]
