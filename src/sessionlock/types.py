"""Common type definitions for the sessionlock library."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from uuid import UUID

# Returns the current time as an aware UTC datetime
Clock = Callable[[], datetime]

# Suspends the caller for the given number of seconds
Sleeper = Callable[[float], Awaitable[None]]

# Type aliases for clarity and documentation
UserId = UUID
SessionId = UUID
OwnerToken = str

# Version type for optimistic concurrency
Version = int


def utc_now() -> datetime:
    """Default clock: the current time in UTC."""
    return datetime.now(UTC)
