"""Library exceptions for the sessionlock package."""

from typing import Any
from uuid import UUID


class SessionLockError(Exception):
    """Base exception for sessionlock library."""

    pass


class LockAcquisitionError(SessionLockError):
    """
    Raised when a lock cannot be acquired within the retry budget.

    The critical section never ran, so the caller's operation made no
    writes and can be retried as a whole.

    Attributes:
        key: The lock key that could not be acquired
        reason: Description of why acquisition failed
        timeout: The lock timeout that was requested, if any
        attempts: How many insert attempts were made
    """

    def __init__(
        self,
        key: str,
        reason: str,
        timeout: float | None = None,
        attempts: int = 0,
    ) -> None:
        self.key = key
        self.reason = reason
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(f"Failed to acquire lock '{key}': {reason}")


class LockNotHeldError(SessionLockError):
    """
    Raised when renewing a lock that is no longer held by the caller.

    Attributes:
        key: The lock key that was not held
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Lock '{key}' is not held by this owner")


class OptimisticConflictError(SessionLockError):
    """Raised when an entity changed between a caller's read and write."""

    def __init__(
        self,
        entity_id: UUID,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if actual_version is not None:
            message = (
                f"Entity {entity_id} has been modified by another request: "
                f"expected version {expected_version}, found version {actual_version}"
            )
        else:
            message = (
                f"Entity {entity_id} has been modified by another request: "
                f"expected version {expected_version}"
            )
        super().__init__(message)


class UniquenessViolationError(SessionLockError):
    """
    Raised when a write would duplicate a unique value.

    Attributes:
        field: Name of the unique field (e.g. 'privy_id', 'wallet_address')
        value: The value that collided
    """

    def __init__(self, field: str, value: Any = None) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Duplicate value for unique field '{field}': {value!r}")


class EntityNotFoundError(SessionLockError):
    """Raised when a target entity does not exist."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


__all__ = [
    "SessionLockError",
    "LockAcquisitionError",
    "LockNotHeldError",
    "OptimisticConflictError",
    "UniquenessViolationError",
    "EntityNotFoundError",
]
