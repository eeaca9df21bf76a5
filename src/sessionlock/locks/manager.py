"""
Database-backed distributed lock manager.

Processes that share nothing but the database coordinate through a table
of lock rows. Acquiring a lock inserts a row for the key with a fresh
owner token and an expiry; the insert fails while another live row holds
the key. A holder that crashes never deadlocks anyone: once its row
expires, the next contender reaps it and takes the key.

Usage:
    >>> manager = LockManager(SQLiteLockStore(db))
    >>> async with manager.hold(user_lock_key(user_id)) as handle:
    ...     # Critical section - one holder at a time across processes
    ...     await update_user()
    >>>
    >>> result = await manager.with_lock("wallet:0xabc", register, LockOptions(timeout=5.0))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TypeVar
from uuid import UUID, uuid4

from sessionlock.config import LockOptions
from sessionlock.exceptions import LockAcquisitionError, LockNotHeldError
from sessionlock.locks.interface import LockRecord, LockStore
from sessionlock.observability import Tracer, create_tracer
from sessionlock.observability.attributes import (
    ATTR_LOCK_KEY,
    ATTR_LOCK_RETRIES,
    ATTR_LOCK_TIMEOUT,
)
from sessionlock.types import Clock, OwnerToken, Sleeper, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


def user_lock_key(user_id: UUID | str) -> str:
    """
    Lock key for mutations of one user record.

    Example:
        >>> user_lock_key("42")
        'user:42'
    """
    return f"user:{user_id}"


def session_lock_key(user_id: UUID | str, device_id: str) -> str:
    """Lock key for session reconciliation of one (user, device) pair."""
    return f"session:{user_id}:{device_id}"


def wallet_lock_key(wallet_address: str) -> str:
    """Lock key guarding who may claim a wallet address."""
    return f"wallet:{wallet_address}"


@dataclass
class LockHandle:
    """
    A held lock, yielded by ``LockManager.hold``.

    Attributes:
        key: The lock key
        owner: Owner token of this acquisition
        expires_at: Current expiry as last written by this holder
    """

    key: str
    owner: OwnerToken
    expires_at: datetime
    _manager: LockManager = field(repr=False)

    async def renew(self, extension: float | None = None) -> datetime:
        """
        Push the expiry forward from now.

        Args:
            extension: Seconds from now; defaults to the manager's lock timeout

        Returns:
            The new expiry

        Raises:
            LockNotHeldError: If the row was reaped and possibly taken by another owner
        """
        expires_at = self._manager._expiry(extension)
        if not await self._manager._store.extend_owned(self.key, self.owner, expires_at):
            raise LockNotHeldError(self.key)
        self.expires_at = expires_at
        return expires_at


class LockManager:
    """
    Acquire, release and renew locks stored in a shared LockStore.

    Every manager built on the same store contends for the same keys, so
    one manager per process over a shared database gives cross-process
    mutual exclusion. Within the store, one key has at most one live row.

    Example:
        >>> manager = LockManager(store, default_options=LockOptions(timeout=10.0))
        >>> owner = await manager.acquire("user:42")
        >>> try:
        ...     await do_work()
        ... finally:
        ...     await manager.release("user:42", owner)

    Note:
        ``with_lock`` and ``hold`` guarantee release on every exit path and
        should be preferred to pairing ``acquire`` with ``release`` by hand.
    """

    def __init__(
        self,
        store: LockStore,
        *,
        default_options: LockOptions | None = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the lock manager.

        Args:
            store: Lock table shared by every contender
            default_options: Used when an acquisition passes no options
            clock: Source of the current time
            sleep: Awaited between attempts
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._store = store
        self._default_options = default_options or LockOptions()
        self._clock = clock
        self._sleep = sleep

    @property
    def store(self) -> LockStore:
        return self._store

    @property
    def default_options(self) -> LockOptions:
        return self._default_options

    async def acquire(self, key: str, options: LockOptions | None = None) -> OwnerToken:
        """
        Acquire a lock, retrying with linear backoff.

        Each attempt inserts a row expiring ``timeout`` seconds from that
        attempt. When the key is taken, an expired row is reaped and the
        insert retried at once without using up an attempt; otherwise
        losing attempt ``n`` (0-based) sleeps ``retry_delay * (n + 1)``.

        Args:
            key: Lock key, e.g. ``user_lock_key(user_id)``
            options: Timing; the manager's default options when omitted

        Returns:
            Owner token to pass to ``release`` and ``renew``

        Raises:
            LockAcquisitionError: If every attempt lost, or the store failed
        """
        options = options or self._default_options
        with self._tracer.span(
            "sessionlock.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TIMEOUT: options.timeout,
                ATTR_LOCK_RETRIES: options.retries,
            },
        ):
            return await self._acquire(key, str(uuid4()), options)

    async def _acquire(self, key: str, owner: OwnerToken, options: LockOptions) -> OwnerToken:
        attempts = 0
        while attempts <= options.retries:
            now = self._clock()
            record = LockRecord(
                key=key,
                owner=owner,
                acquired_at=now,
                expires_at=now + timedelta(seconds=options.timeout),
            )
            try:
                if await self._store.try_insert(record):
                    logger.debug(
                        "Acquired lock: key=%s, owner=%s, attempt=%d",
                        key,
                        owner,
                        attempts + 1,
                    )
                    return owner
                reaped = await self._store.delete_expired(key, now)
            except Exception as e:
                raise LockAcquisitionError(
                    key=key,
                    reason=f"Database error: {e}",
                    timeout=options.timeout,
                    attempts=attempts + 1,
                ) from e

            if reaped:
                logger.debug("Reaped expired lock: key=%s", key)
                continue

            attempts += 1
            if attempts <= options.retries:
                delay = options.retry_delay * attempts
                logger.debug(
                    "Lock busy: key=%s, attempt=%d/%d, retrying in %.3fs",
                    key,
                    attempts,
                    options.retries + 1,
                    delay,
                )
                await self._sleep(delay)

        raise LockAcquisitionError(
            key=key,
            reason=f"still held by another owner after {attempts} attempts",
            timeout=options.timeout,
            attempts=attempts,
        )

    async def release(self, key: str, owner: OwnerToken) -> bool:
        """
        Release a lock held by ``owner``.

        A row whose owner differs is left alone: it belongs to whoever
        reaped this holder's expired lock.

        Returns:
            True if a row was deleted
        """
        with self._tracer.span("sessionlock.lock.release", {ATTR_LOCK_KEY: key}):
            released = await self._store.delete_owned(key, owner)
            if released:
                logger.debug("Released lock: key=%s, owner=%s", key, owner)
            else:
                logger.warning(
                    "Lock was no longer held at release: key=%s, owner=%s",
                    key,
                    owner,
                )
            return released

    async def renew(
        self,
        key: str,
        owner: OwnerToken,
        extension: float | None = None,
    ) -> bool:
        """
        Extend a held lock to ``extension`` seconds from now.

        Args:
            key: Lock key
            owner: Token returned by ``acquire``
            extension: Seconds from now; defaults to the default lock timeout

        Returns:
            True if the row still belonged to ``owner`` and was extended
        """
        with self._tracer.span("sessionlock.lock.renew", {ATTR_LOCK_KEY: key}):
            renewed = await self._store.extend_owned(key, owner, self._expiry(extension))
            if not renewed:
                logger.warning("Lock could not be renewed: key=%s, owner=%s", key, owner)
            return renewed

    async def is_held(self, key: str) -> bool:
        """
        Whether a live row exists for the key.

        An expired row found here is reaped.
        """
        now = self._clock()
        record = await self._store.get(key)
        if record is None:
            return False
        if record.is_expired(now):
            await self._store.delete_expired(key, now)
            return False
        return True

    async def force_release(self, key: str) -> bool:
        """Delete the row for a key whoever holds it. For operator use."""
        released = await self._store.delete(key)
        if released:
            logger.warning("Force-released lock: key=%s", key)
        return released

    async def reap_expired(self) -> int:
        """Delete every expired row. Returns the number reaped."""
        with self._tracer.span("sessionlock.lock.reap_expired"):
            count = await self._store.delete_all_expired(self._clock())
            if count:
                logger.info("Reaped %d expired locks", count)
            return count

    @asynccontextmanager
    async def hold(
        self,
        key: str,
        options: LockOptions | None = None,
    ) -> AsyncIterator[LockHandle]:
        """
        Hold a lock for the duration of the block.

        The lock is released when the block exits, whether normally or by
        an exception. A failed release is logged and never replaces the
        block's own outcome.

        Raises:
            LockAcquisitionError: If the lock could not be acquired; the block never runs

        Example:
            >>> async with manager.hold(session_lock_key(user_id, device_id)) as handle:
            ...     await reconcile()
            ...     await handle.renew()
        """
        options = options or self._default_options
        owner = await self.acquire(key, options)
        handle = LockHandle(
            key=key,
            owner=owner,
            expires_at=self._clock() + timedelta(seconds=options.timeout),
            _manager=self,
        )
        try:
            yield handle
        finally:
            try:
                await self.release(key, owner)
            except Exception as e:
                logger.warning("Error releasing lock: key=%s, error=%s", key, e)

    async def with_lock(
        self,
        key: str,
        fn: Callable[[], Awaitable[T]],
        options: LockOptions | None = None,
    ) -> T:
        """
        Run ``fn`` while holding the lock and return its result.

        Raises:
            LockAcquisitionError: If the lock could not be acquired; ``fn`` never ran
        """
        with self._tracer.span("sessionlock.lock.with_lock", {ATTR_LOCK_KEY: key}):
            async with self.hold(key, options):
                return await fn()

    def _expiry(self, extension: float | None) -> datetime:
        seconds = self._default_options.timeout if extension is None else extension
        if seconds <= 0:
            raise ValueError(f"extension must be positive, got {seconds}")
        return self._clock() + timedelta(seconds=seconds)


__all__ = [
    "LockHandle",
    "LockManager",
    "user_lock_key",
    "session_lock_key",
    "wallet_lock_key",
]
