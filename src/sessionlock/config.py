"""
Configuration classes for the concurrency-control core.

This module provides:
- LockOptions: timing for a single lock acquisition
- UserPolicy: lock options used by the user service
- SessionPolicy: session lifetime and reconciliation lock options
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_LOCK_TIMEOUT = 30.0
DEFAULT_LOCK_RETRIES = 10
DEFAULT_RETRY_DELAY = 0.3
DEFAULT_SESSION_EXPIRY_DAYS = 30


@dataclass(frozen=True)
class LockOptions:
    """
    Timing for a lock acquisition.

    Attributes:
        timeout: Seconds until an acquired lock expires and may be reaped
        retries: Retries after the first attempt before giving up
        retry_delay: Base backoff in seconds; attempt n waits retry_delay * (n + 1)

    The worst-case wait before LockAcquisitionError is
    ``retry_delay * retries * (retries + 1) / 2`` seconds.

    Example:
        >>> options = LockOptions(timeout=5.0, retries=3)
        >>> options.max_wait
        1.8
    """

    timeout: float = DEFAULT_LOCK_TIMEOUT
    retries: int = DEFAULT_LOCK_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.retries < 0:
            raise ValueError(f"retries must be non-negative, got {self.retries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be non-negative, got {self.retry_delay}")

    @property
    def max_wait(self) -> float:
        """Total seconds spent sleeping if every attempt loses."""
        return round(self.retry_delay * self.retries * (self.retries + 1) / 2, 6)


@dataclass(frozen=True)
class UserPolicy:
    """
    Lock options for user mutations.

    Attributes:
        create_lock_options: Used while creating a user (keyed by privy id)
        update_lock_options: Used for versioned updates (keyed by user id)
    """

    create_lock_options: LockOptions = field(
        default_factory=lambda: LockOptions(timeout=5.0, retries=3)
    )
    update_lock_options: LockOptions = field(
        default_factory=lambda: LockOptions(timeout=5.0, retries=2)
    )


@dataclass(frozen=True)
class SessionPolicy:
    """
    Session lifetime and reconciliation locking.

    Attributes:
        default_expiry_days: Lifetime applied when the caller gives none
        lock_options: Used for the per-(user, device) reconciliation lock
    """

    default_expiry_days: int = DEFAULT_SESSION_EXPIRY_DAYS
    lock_options: LockOptions = field(default_factory=lambda: LockOptions(timeout=5.0, retries=3))

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.default_expiry_days < 1:
            raise ValueError(
                f"default_expiry_days must be positive, got {self.default_expiry_days}"
            )


__all__ = [
    "DEFAULT_LOCK_TIMEOUT",
    "DEFAULT_LOCK_RETRIES",
    "DEFAULT_RETRY_DELAY",
    "DEFAULT_SESSION_EXPIRY_DAYS",
    "LockOptions",
    "UserPolicy",
    "SessionPolicy",
]
