"""
User records and the inputs that create and change them.

A user is a versioned entity: ``version`` starts at 0 and grows by exactly
one on every successful mutation, which lets a writer detect that the row
changed since it was read.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Column order shared by the SQL stores
USER_COLUMNS = (
    "id",
    "privy_id",
    "email",
    "phone",
    "display_name",
    "profile_picture_url",
    "wallet_address",
    "wallet_registered_at",
    "status",
    "created_at",
    "updated_at",
    "last_active_at",
    "version",
)


class UserStatus(str, Enum):
    """Lifecycle status of a user account."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(BaseModel):
    """
    A user record.

    Attributes:
        id: Primary key
        privy_id: Identity-provider subject; unique across users
        wallet_address: Linked wallet; unique across users when set
        wallet_registered_at: When a wallet was first linked
        status: Account status; deletion is a soft delete
        last_active_at: Last activity ping, written without a version bump
        version: Optimistic concurrency counter
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    privy_id: str
    email: str | None = None
    phone: str | None = None
    display_name: str | None = None
    profile_picture_url: str | None = None
    wallet_address: str | None = None
    wallet_registered_at: datetime | None = None
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime
    updated_at: datetime
    last_active_at: datetime | None = None
    version: int = Field(default=0, ge=0)


class NewUser(BaseModel):
    """Fields supplied when a user is first created."""

    model_config = ConfigDict(extra="forbid")

    privy_id: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    display_name: str | None = None
    profile_picture_url: str | None = None
    wallet_address: str | None = Field(default=None, min_length=1)


class UserPatch(BaseModel):
    """
    A partial update. Only fields set explicitly are applied, so passing
    ``wallet_address=None`` unlinks a wallet while omitting it leaves the
    wallet alone.

    Example:
        >>> UserPatch(display_name="Ada").changes()
        {'display_name': 'Ada'}
    """

    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    phone: str | None = None
    display_name: str | None = None
    profile_picture_url: str | None = None
    wallet_address: str | None = Field(default=None, min_length=1)
    status: UserStatus | None = None

    def changes(self) -> dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        if "status" in changes and changes["status"] is None:
            del changes["status"]
        return changes


class UserPage(BaseModel):
    """One page of users, newest first."""

    users: list[User]
    total: int
    page: int
    limit: int
    total_pages: int


__all__ = ["USER_COLUMNS", "UserStatus", "User", "NewUser", "UserPatch", "UserPage"]
