"""
Session manager: login reconciliation and session lifecycle.

Reconciliation runs under a lock keyed by (user, device) and in one
transaction, and keeps a user at no more than one Active session across
all devices:

- No row for the device: a new Active row is inserted.
- A row in any state: it is reactivated in place, keeping its id and
  ``created_at``.
- Either way, every other Active row of the user is terminated with
  reason ``new_session_on_different_device`` before the device's row is
  written.

Repeated logins from one device therefore reuse a single row forever,
and the (user, device) lock, not the optional idempotency key, is what
deduplicates concurrent logins.

Example:
    >>> sessions = SessionManager(lock_manager, SQLiteSessionStore(db))
    >>> session = await sessions.get_or_create_session(
    ...     user_id,
    ...     "iphone-A",
    ...     DeviceMetadata(platform=Platform.IOS, push_token="tok"),
    ... )
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from uuid import UUID, uuid4

from sessionlock.config import SessionPolicy
from sessionlock.locks.manager import LockManager, session_lock_key
from sessionlock.observability import Tracer, create_tracer
from sessionlock.observability.attributes import (
    ATTR_DEVICE_ID,
    ATTR_SESSION_ID,
    ATTR_TERMINATION_REASON,
    ATTR_USER_ID,
)
from sessionlock.results import OperationResult
from sessionlock.sessions.interface import SessionStore
from sessionlock.sessions.models import (
    DeviceMetadata,
    ReconcileAction,
    Session,
    SessionReconciliation,
    SessionStats,
    SessionUpdate,
    TerminationReason,
    TerminationSummary,
    reason_value,
)
from sessionlock.sessions.state_machine import open_session, reactivate_session
from sessionlock.types import Clock, utc_now

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Owns every transition of a session's Active/Terminated state.

    Termination, expiry and metadata updates address rows by primary key
    and do not take the reconciliation lock. A ``terminate_all`` racing a
    login converges on the same end state: at most one Active session.
    """

    def __init__(
        self,
        lock_manager: LockManager,
        store: SessionStore,
        *,
        policy: SessionPolicy | None = None,
        clock: Clock = utc_now,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._locks = lock_manager
        self._store = store
        self._policy = policy or SessionPolicy()
        self._clock = clock

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def policy(self) -> SessionPolicy:
        return self._policy

    async def reconcile(
        self,
        user_id: UUID,
        device_id: str,
        metadata: DeviceMetadata,
        *,
        expires_in_days: int | None = None,
        idempotency_key: str | None = None,
    ) -> SessionReconciliation:
        """
        Create or reactivate the device's session and supersede the others.

        Args:
            user_id: Owner of the session
            device_id: Client-chosen stable device identifier
            metadata: Device details; unsupplied fields keep stored values
            expires_in_days: Lifetime from now; the policy default when None
            idempotency_key: Recorded on the row for diagnostics

        Returns:
            The Active session, whether it was created or reactivated, and
            the ids of sessions terminated on its behalf

        Raises:
            LockAcquisitionError: If the (user, device) lock could not be acquired
            ValueError: If expires_in_days is not positive
        """
        days = self._policy.default_expiry_days if expires_in_days is None else expires_in_days
        if days < 1:
            raise ValueError(f"expires_in_days must be positive, got {days}")

        with self._tracer.span(
            "sessionlock.session.reconcile",
            {ATTR_USER_ID: str(user_id), ATTR_DEVICE_ID: device_id},
        ):
            async with self._locks.hold(
                session_lock_key(user_id, device_id), self._policy.lock_options
            ):
                now = self._clock()
                expires_at = now + timedelta(days=days)
                async with self._store.transaction() as tx:
                    existing = await tx.find_for_device(user_id, device_id)
                    session_id = existing.id if existing else uuid4()
                    terminated = await tx.terminate_other_active(
                        user_id,
                        session_id,
                        TerminationReason.NEW_SESSION_ON_DIFFERENT_DEVICE,
                        now,
                    )
                    if existing is None:
                        session = open_session(
                            session_id,
                            user_id,
                            device_id,
                            metadata,
                            now,
                            expires_at,
                            idempotency_key,
                        )
                        await tx.insert(session)
                        action = ReconcileAction.CREATED
                    else:
                        session = reactivate_session(
                            existing, metadata, now, expires_at, idempotency_key
                        )
                        await tx.save(session)
                        action = ReconcileAction.REACTIVATED

        logger.info(
            "Session %s: session_id=%s, user_id=%s, device_id=%s, superseded=%d",
            action.value,
            session.id,
            user_id,
            device_id,
            len(terminated),
        )
        return SessionReconciliation(
            session=session,
            action=action,
            terminated_session_ids=terminated,
        )

    async def get_or_create_session(
        self,
        user_id: UUID,
        device_id: str,
        metadata: DeviceMetadata,
        expires_in_days: int | None = None,
        idempotency_key: str | None = None,
    ) -> Session:
        """
        Return the device's Active session, creating or reactivating it.

        Never reports a duplicate. Raises LockAcquisitionError under
        contention that outlasts the retry budget.
        """
        result = await self.reconcile(
            user_id,
            device_id,
            metadata,
            expires_in_days=expires_in_days,
            idempotency_key=idempotency_key,
        )
        return result.session

    async def get_session(self, session_id: UUID) -> OperationResult[Session]:
        session = await self._store.get(session_id)
        if session is None:
            return OperationResult.not_found("Session", session_id)
        return OperationResult.ok(session)

    async def get_active_session(self, user_id: UUID) -> OperationResult[Session]:
        """
        The user's Active session.

        An Active session found past its expiry is terminated with reason
        ``expired`` and reported as not found.
        """
        session = await self._store.find_active_for_user(user_id)
        if session is None:
            return OperationResult.not_found("Active session for user", user_id)
        now = self._clock()
        if session.is_expired(now):
            await self._store.terminate(session.id, TerminationReason.EXPIRED, now)
            logger.info("Session expired on read: session_id=%s", session.id)
            return OperationResult.not_found("Active session for user", user_id)
        return OperationResult.ok(session)

    async def get_user_sessions(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[Session]:
        return await self._store.list_for_user(user_id, include_inactive)

    async def update_session(
        self,
        session_id: UUID,
        update: SessionUpdate,
    ) -> OperationResult[Session]:
        """Merge device metadata into a session and record activity."""
        changes = update.supplied()
        changes["last_activity_at"] = self._clock()
        return await self._update_fields(session_id, changes)

    async def update_activity(self, session_id: UUID) -> OperationResult[Session]:
        return await self._update_fields(session_id, {"last_activity_at": self._clock()})

    async def update_push_token(
        self,
        session_id: UUID,
        push_token: str,
    ) -> OperationResult[Session]:
        now = self._clock()
        return await self._update_fields(
            session_id,
            {"push_token": push_token, "push_token_updated_at": now, "last_activity_at": now},
        )

    async def extend_session(
        self,
        session_id: UUID,
        additional_days: int = 30,
    ) -> OperationResult[Session]:
        """Push ``expires_at`` forward from its current value."""
        if additional_days < 1:
            raise ValueError(f"additional_days must be positive, got {additional_days}")

        async with self._store.transaction() as tx:
            session = await tx.get(session_id)
            if session is not None:
                session = session.model_copy(
                    update={
                        "expires_at": session.expires_at + timedelta(days=additional_days),
                        "last_activity_at": self._clock(),
                    }
                )
                await tx.save(session)

        if session is None:
            return OperationResult.not_found("Session", session_id)
        logger.debug("Extended session %s to %s", session_id, session.expires_at)
        return OperationResult.ok(session)

    async def terminate_session(
        self,
        session_id: UUID,
        reason: TerminationReason | str = TerminationReason.USER_LOGOUT,
    ) -> OperationResult[Session]:
        """
        Move one session from Active to Terminated.

        A session that is already Terminated is returned untouched.
        """
        with self._tracer.span(
            "sessionlock.session.terminate",
            {ATTR_SESSION_ID: str(session_id), ATTR_TERMINATION_REASON: reason_value(reason)},
        ):
            terminated = await self._store.terminate(session_id, reason, self._clock())
            if terminated is not None:
                logger.info(
                    "Session terminated: session_id=%s, reason=%s",
                    session_id,
                    reason_value(reason),
                )
                return OperationResult.ok(terminated)
            return await self.get_session(session_id)

    async def terminate_all_user_sessions(
        self,
        user_id: UUID,
        reason: TerminationReason | str = TerminationReason.USER_LOGOUT_ALL,
    ) -> TerminationSummary:
        with self._tracer.span(
            "sessionlock.session.terminate_all",
            {ATTR_USER_ID: str(user_id), ATTR_TERMINATION_REASON: reason_value(reason)},
        ):
            ids = await self._store.terminate_all_for_user(user_id, reason, self._clock())
            if ids:
                logger.info(
                    "Terminated %d sessions: user_id=%s, reason=%s",
                    len(ids),
                    user_id,
                    reason_value(reason),
                )
            return TerminationSummary(count=len(ids), session_ids=ids)

    async def expire_sessions(self) -> TerminationSummary:
        """Terminate every Active session whose expiry has passed."""
        with self._tracer.span("sessionlock.session.expire"):
            ids = await self._store.expire_due(self._clock())
            if ids:
                logger.info("Expired %d sessions", len(ids))
            return TerminationSummary(count=len(ids), session_ids=ids)

    async def get_session_stats(self, user_id: UUID) -> SessionStats:
        sessions = await self._store.list_for_user(user_id, include_inactive=True)
        platforms = Counter(s.platform.value for s in sessions)
        return SessionStats(
            total_sessions=len(sessions),
            active_sessions=sum(1 for s in sessions if s.is_active),
            platform_breakdown=dict(platforms),
        )

    async def _update_fields(
        self,
        session_id: UUID,
        changes: dict[str, object],
    ) -> OperationResult[Session]:
        session = await self._store.update_fields(session_id, changes)
        if session is None:
            return OperationResult.not_found("Session", session_id)
        return OperationResult.ok(session)


__all__ = ["SessionManager"]
