"""
Session records and the values the session manager returns.

A session row belongs to one (user, device) pair for the life of that
pairing. Logging out and back in flips the same row between Active and
Terminated instead of inserting a new one.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Column order shared by the SQL stores
SESSION_COLUMNS = (
    "id",
    "user_id",
    "device_id",
    "device_name",
    "device_model",
    "platform",
    "os_version",
    "app_version",
    "push_token",
    "push_token_updated_at",
    "ip_address",
    "is_active",
    "idempotency_key",
    "created_at",
    "last_activity_at",
    "expires_at",
    "terminated_at",
    "termination_reason",
)


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"


class SessionState(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"


class TerminationReason(str, Enum):
    """Reasons recorded when a session leaves the Active state."""

    NEW_SESSION_ON_DIFFERENT_DEVICE = "new_session_on_different_device"
    USER_LOGOUT = "user_logout"
    USER_LOGOUT_ALL = "user_logout_all"
    EXPIRED = "expired"
    USER_DELETED = "user_deleted"


def reason_value(reason: TerminationReason | str) -> str:
    """Stored text of a termination reason; callers may pass free-form reasons."""
    return reason.value if isinstance(reason, TerminationReason) else reason


class ReconcileAction(str, Enum):
    CREATED = "created"
    REACTIVATED = "reactivated"


class Session(BaseModel):
    """
    A session row.

    ``is_active``, ``terminated_at`` and ``termination_reason`` change only
    through the session manager's transitions.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    device_id: str
    device_name: str | None = None
    device_model: str | None = None
    platform: Platform
    os_version: str | None = None
    app_version: str | None = None
    push_token: str | None = None
    push_token_updated_at: datetime | None = None
    ip_address: str | None = None
    is_active: bool = True
    idempotency_key: str | None = None
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    terminated_at: datetime | None = None
    termination_reason: str | None = None

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self.is_active else SessionState.TERMINATED

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class DeviceMetadata(BaseModel):
    """
    Device details supplied at login.

    ``platform`` is required. The other fields overwrite stored values only
    when supplied.
    """

    model_config = ConfigDict(extra="forbid")

    platform: Platform
    device_name: str | None = None
    device_model: str | None = None
    os_version: str | None = None
    app_version: str | None = None
    push_token: str | None = None
    ip_address: str | None = None

    def supplied(self) -> dict[str, Any]:
        """Fields that carry a value."""
        return self.model_dump(exclude_none=True)


class SessionUpdate(BaseModel):
    """Partial metadata update for an existing session."""

    model_config = ConfigDict(extra="forbid")

    platform: Platform | None = None
    device_name: str | None = None
    device_model: str | None = None
    os_version: str | None = None
    app_version: str | None = None
    ip_address: str | None = None

    def supplied(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SessionReconciliation(BaseModel):
    """
    Outcome of reconciling a login.

    Attributes:
        session: The Active session for the device
        action: Whether the row was created or reactivated
        terminated_session_ids: Other sessions of the user that were terminated
    """

    session: Session
    action: ReconcileAction
    terminated_session_ids: list[UUID] = Field(default_factory=list)


class TerminationSummary(BaseModel):
    count: int
    session_ids: list[UUID] = Field(default_factory=list)


class SessionStats(BaseModel):
    total_sessions: int
    active_sessions: int
    platform_breakdown: dict[str, int] = Field(default_factory=dict)


__all__ = [
    "SESSION_COLUMNS",
    "Platform",
    "SessionState",
    "TerminationReason",
    "reason_value",
    "ReconcileAction",
    "Session",
    "DeviceMetadata",
    "SessionUpdate",
    "SessionReconciliation",
    "TerminationSummary",
    "SessionStats",
]
