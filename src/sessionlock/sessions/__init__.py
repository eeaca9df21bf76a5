"""
Session reconciliation and lifecycle.

A user keeps at most one Active session across all devices. Logging in
from a device creates or reactivates that device's row and terminates
the user's other Active sessions.

Example:
    >>> from sessionlock.sessions import DeviceMetadata, Platform, SessionManager
    >>>
    >>> manager = SessionManager(lock_manager, InMemorySessionStore())
    >>> session = await manager.get_or_create_session(
    ...     user_id, "iphone-A", DeviceMetadata(platform=Platform.IOS)
    ... )
"""

from sessionlock.sessions.in_memory import InMemorySessionStore
from sessionlock.sessions.interface import SessionStore, SessionTransaction
from sessionlock.sessions.models import (
    DeviceMetadata,
    Platform,
    ReconcileAction,
    Session,
    SessionReconciliation,
    SessionState,
    SessionStats,
    SessionUpdate,
    TerminationReason,
    TerminationSummary,
    reason_value,
)
from sessionlock.sessions.postgresql import PostgreSQLSessionStore
from sessionlock.sessions.service import SessionManager
from sessionlock.sessions.sqlite import SQLiteSessionStore
from sessionlock.sessions.sweeper import ExpirySweeper, SweepReport

__all__ = [
    "DeviceMetadata",
    "Platform",
    "ReconcileAction",
    "Session",
    "SessionReconciliation",
    "SessionState",
    "SessionStats",
    "SessionUpdate",
    "TerminationReason",
    "TerminationSummary",
    "reason_value",
    "SessionStore",
    "SessionTransaction",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "PostgreSQLSessionStore",
    "SessionManager",
    "ExpirySweeper",
    "SweepReport",
]
