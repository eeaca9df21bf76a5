"""
User service: exactly-once creation and versioned updates.

Every mutation runs under a lock on the user's key and, within it, one
read-modify-write transaction:

1. Read the row. Absent: NOT_FOUND.
2. A supplied ``expected_version`` that differs from the stored version:
   CONFLICT, and nothing is written.
3. Otherwise apply the patch, bump ``version`` by one, stamp
   ``updated_at`` and commit. The write is itself conditional on the
   version, so callers that skip the lock are still caught.

Claims on unique identifiers (privy id, wallet address) are checked
inside the critical section under a second lock keyed by the candidate
value. Locks are always taken user key first, wallet key second.
"""

from __future__ import annotations

import logging
import math
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sessionlock.config import UserPolicy
from sessionlock.exceptions import (
    EntityNotFoundError,
    OptimisticConflictError,
    UniquenessViolationError,
)
from sessionlock.locks.manager import LockManager, user_lock_key, wallet_lock_key
from sessionlock.observability import Tracer, create_tracer
from sessionlock.observability.attributes import ATTR_EXPECTED_VERSION, ATTR_USER_ID
from sessionlock.results import OperationResult
from sessionlock.sessions.models import TerminationReason
from sessionlock.types import Clock, utc_now
from sessionlock.users.interface import UserStore
from sessionlock.users.models import NewUser, User, UserPage, UserPatch, UserStatus

if TYPE_CHECKING:
    from sessionlock.sessions.service import SessionManager

logger = logging.getLogger(__name__)


class UserService:
    """
    Create, read and update users safely across processes.

    Example:
        >>> users = UserService(lock_manager, SQLiteUserStore(db), sessions=session_manager)
        >>> created = await users.create_user(NewUser(privy_id="did:privy:abc"))
        >>> result = await users.update_with_version(
        ...     created.value.id,
        ...     UserPatch(display_name="Ada"),
        ...     expected_version=0,
        ... )
        >>> result.http_status
        200
    """

    def __init__(
        self,
        lock_manager: LockManager,
        store: UserStore,
        *,
        policy: UserPolicy | None = None,
        sessions: SessionManager | None = None,
        clock: Clock = utc_now,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the user service.

        Args:
            lock_manager: Lock manager shared with the session manager
            store: User storage backend
            policy: Lock options for creation and updates
            sessions: Used to end a deleted user's sessions; optional
            clock: Source of the current time
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._locks = lock_manager
        self._store = store
        self._policy = policy or UserPolicy()
        self._sessions = sessions
        self._clock = clock

    @property
    def store(self) -> UserStore:
        return self._store

    async def create_user(self, new_user: NewUser) -> OperationResult[User]:
        """
        Create a user exactly once per privy id.

        Concurrent calls for the same privy id are serialized by the
        ``user:<privy_id>`` lock; every call after the first finds the row
        and returns UNIQUENESS_VIOLATION. A wallet supplied at creation is
        claimed under its own lock.

        Raises:
            LockAcquisitionError: If a lock could not be acquired
        """
        options = self._policy.create_lock_options
        with self._tracer.span("sessionlock.user.create"):
            async with AsyncExitStack() as stack:
                await stack.enter_async_context(
                    self._locks.hold(user_lock_key(new_user.privy_id), options)
                )
                if new_user.wallet_address is not None:
                    await stack.enter_async_context(
                        self._locks.hold(wallet_lock_key(new_user.wallet_address), options)
                    )
                try:
                    user = await self._insert(new_user)
                except UniquenessViolationError as e:
                    logger.debug("User creation rejected: %s", e)
                    return OperationResult.failed(e)

        logger.info("Created user: user_id=%s, privy_id=%s", user.id, user.privy_id)
        return OperationResult.ok(user)

    async def _insert(self, new_user: NewUser) -> User:
        now = self._clock()
        async with self._store.transaction() as tx:
            if await tx.get_by_privy_id(new_user.privy_id) is not None:
                raise UniquenessViolationError("privy_id", new_user.privy_id)
            if new_user.wallet_address is not None and (
                await tx.get_by_wallet_address(new_user.wallet_address) is not None
            ):
                raise UniquenessViolationError("wallet_address", new_user.wallet_address)

            user = User(
                id=uuid4(),
                created_at=now,
                updated_at=now,
                wallet_registered_at=now if new_user.wallet_address is not None else None,
                version=0,
                **new_user.model_dump(),
            )
            await tx.insert(user)
        return user

    async def update_with_version(
        self,
        user_id: UUID,
        patch: UserPatch,
        expected_version: int | None = None,
    ) -> OperationResult[User]:
        """
        Apply a patch if the user is still at ``expected_version``.

        Args:
            user_id: Target user
            patch: Fields to change; only explicitly set fields apply
            expected_version: Version the caller last read; None skips the check

        Returns:
            The updated user with its version bumped by one, or a CONFLICT,
            NOT_FOUND or UNIQUENESS_VIOLATION result with nothing written

        Raises:
            LockAcquisitionError: If the user or wallet lock could not be acquired
        """
        changes = patch.changes()
        with self._tracer.span(
            "sessionlock.user.update_with_version",
            {
                ATTR_USER_ID: str(user_id),
                ATTR_EXPECTED_VERSION: -1 if expected_version is None else expected_version,
            },
        ):
            try:
                user = await self._locked_update(user_id, changes, expected_version)
            except (EntityNotFoundError, OptimisticConflictError, UniquenessViolationError) as e:
                logger.debug("Update of user %s rejected: %s", user_id, e)
                return OperationResult.failed(e)

        logger.debug("Updated user %s to version %d", user_id, user.version)
        return OperationResult.ok(user)

    async def _locked_update(
        self,
        user_id: UUID,
        changes: dict[str, Any],
        expected_version: int | None,
    ) -> User:
        options = self._policy.update_lock_options
        wallet = changes.get("wallet_address")
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(self._locks.hold(user_lock_key(user_id), options))
            if wallet is not None:
                await stack.enter_async_context(self._locks.hold(wallet_lock_key(wallet), options))
            return await self._apply(user_id, changes, expected_version)

    async def _apply(
        self,
        user_id: UUID,
        changes: dict[str, Any],
        expected_version: int | None,
    ) -> User:
        async with self._store.transaction() as tx:
            current = await tx.get(user_id)
            if current is None:
                raise EntityNotFoundError("User", user_id)
            if expected_version is not None and current.version != expected_version:
                raise OptimisticConflictError(user_id, expected_version, current.version)

            now = self._clock()
            update = dict(changes)
            wallet = update.get("wallet_address")
            if wallet is not None and wallet != current.wallet_address:
                holder = await tx.get_by_wallet_address(wallet)
                if holder is not None and holder.id != user_id:
                    raise UniquenessViolationError("wallet_address", wallet)
                if current.wallet_registered_at is None:
                    update["wallet_registered_at"] = now

            update["version"] = current.version + 1
            update["updated_at"] = now
            updated = current.model_copy(update=update)
            await tx.update(updated, expected_version=current.version)
        return updated

    async def register_wallet(
        self,
        user_id: UUID,
        wallet_address: str,
        expected_version: int | None = None,
    ) -> OperationResult[User]:
        """Link a wallet to a user. Same locking and checks as any versioned update."""
        return await self.update_with_version(
            user_id,
            UserPatch(wallet_address=wallet_address),
            expected_version,
        )

    async def get_user(self, user_id: UUID) -> OperationResult[User]:
        return self._found(await self._store.get(user_id), "User", user_id)

    async def get_user_by_privy_id(self, privy_id: str) -> OperationResult[User]:
        return self._found(await self._store.get_by_privy_id(privy_id), "User", privy_id)

    async def get_user_by_wallet_address(self, wallet_address: str) -> OperationResult[User]:
        return self._found(
            await self._store.get_by_wallet_address(wallet_address), "User", wallet_address
        )

    async def list_users(self, page: int = 1, limit: int = 50) -> UserPage:
        """One page of users, newest first."""
        if page < 1:
            raise ValueError(f"page must be at least 1, got {page}")
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        users = await self._store.list_users(offset=(page - 1) * limit, limit=limit)
        total = await self._store.count()
        return UserPage(
            users=users,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def update_last_active(self, user_id: UUID) -> OperationResult[User]:
        """
        Record activity. A plain timestamp write: no lock and no version
        bump, so activity pings never make a client's update conflict.
        """
        if not await self._store.touch_last_active(user_id, self._clock()):
            return OperationResult.not_found("User", user_id)
        return await self.get_user(user_id)

    async def delete_user(
        self,
        user_id: UUID,
        expected_version: int | None = None,
    ) -> OperationResult[User]:
        """
        Soft-delete a user and end all of their sessions.

        The status change is a versioned update. Sessions are terminated
        with reason ``user_deleted`` after the user lock is released.
        """
        result = await self.update_with_version(
            user_id,
            UserPatch(status=UserStatus.DELETED),
            expected_version,
        )
        if result.success and self._sessions is not None:
            await self._sessions.terminate_all_user_sessions(
                user_id, TerminationReason.USER_DELETED
            )
        if result.success:
            logger.info("Deleted user: user_id=%s", user_id)
        return result

    @staticmethod
    def _found(user: User | None, entity_type: str, key: Any) -> OperationResult[User]:
        if user is None:
            return OperationResult.not_found(entity_type, key)
        return OperationResult.ok(user)


__all__ = ["UserService"]
