"""
Typed operation results returned across the core boundary.

Services never let domain errors escape as exceptions: a caller gets an
OperationResult and maps it deterministically, e.g. to an HTTP status.
Lock acquisition failures are the exception and still raise
LockAcquisitionError.

Example:
    >>> result = await users.update_with_version(user_id, patch, expected_version=3)
    >>> if result.success:
    ...     return 200, result.value
    >>> return result.http_status, {"error": result.message}
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from sessionlock.exceptions import (
    EntityNotFoundError,
    OptimisticConflictError,
    SessionLockError,
    UniquenessViolationError,
)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Domain error categories a caller must handle."""

    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNIQUENESS_VIOLATION = "uniqueness_violation"


_HTTP_STATUS = {
    None: 200,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNIQUENESS_VIOLATION: 409,
}


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of a core operation.

    Attributes:
        value: The resulting entity when successful
        error: Error category, None on success
        message: Human-readable description of the error
        field: Offending field for uniqueness violations
        cause: The domain exception the error was built from
    """

    value: T | None = None
    error: ErrorKind | None = None
    message: str | None = None
    field: str | None = None
    cause: SessionLockError | None = dataclasses.field(default=None, repr=False, compare=False)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def http_status(self) -> int:
        """Status code an HTTP-facing caller should answer with."""
        return _HTTP_STATUS[self.error]

    @classmethod
    def ok(cls, value: T) -> OperationResult[T]:
        return cls(value=value)

    @classmethod
    def failed(cls, error: SessionLockError) -> OperationResult[T]:
        """
        Build a failed result from a domain exception.

        Raises:
            TypeError: If the exception has no result mapping (e.g. a lock failure)
        """
        if isinstance(error, OptimisticConflictError):
            kind = ErrorKind.CONFLICT
            message = "Modified by another request. Please refresh and retry."
            return cls(error=kind, message=message, cause=error)
        if isinstance(error, EntityNotFoundError):
            return cls(error=ErrorKind.NOT_FOUND, message=str(error), cause=error)
        if isinstance(error, UniquenessViolationError):
            return cls(
                error=ErrorKind.UNIQUENESS_VIOLATION,
                message=f"Value for '{error.field}' is already registered",
                field=error.field,
                cause=error,
            )
        raise TypeError(f"{type(error).__name__} cannot be returned as an OperationResult")

    @classmethod
    def conflict(
        cls,
        entity_id: Any,
        expected_version: int,
        actual_version: int | None = None,
    ) -> OperationResult[T]:
        return cls.failed(OptimisticConflictError(entity_id, expected_version, actual_version))

    @classmethod
    def not_found(cls, entity_type: str, entity_id: Any) -> OperationResult[T]:
        return cls.failed(EntityNotFoundError(entity_type, entity_id))

    @classmethod
    def duplicate(cls, field: str, value: Any = None) -> OperationResult[T]:
        return cls.failed(UniquenessViolationError(field, value))

    def unwrap(self) -> T:
        """
        Return the value or raise the domain exception behind the error.

        Raises:
            OptimisticConflictError, EntityNotFoundError, UniquenessViolationError
        """
        if self.error is not None:
            raise self.cause or SessionLockError(self.message)
        return self.value  # type: ignore[return-value]


__all__ = ["ErrorKind", "OperationResult"]
