"""
sessionlock - Concurrency control for multi-instance Python backends.

This library provides:
- Distributed locks stored in a shared database table, with owner tokens,
  expiry and reaping of locks left by crashed holders
- Optimistic-concurrency updates for versioned user records
- Session reconciliation keeping one Active session per user across devices
- In-memory, SQLite (aiosqlite) and PostgreSQL (SQLAlchemy async) backends
- Typed operation results that map to HTTP status codes
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sessionlock-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Configuration
from sessionlock.config import (
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SESSION_EXPIRY_DAYS,
    LockOptions,
    SessionPolicy,
    UserPolicy,
)

# Exceptions
from sessionlock.exceptions import (
    EntityNotFoundError,
    LockAcquisitionError,
    LockNotHeldError,
    OptimisticConflictError,
    SessionLockError,
    UniquenessViolationError,
)

# Locks
from sessionlock.locks import (
    InMemoryLockStore,
    LockHandle,
    LockManager,
    LockRecord,
    LockStore,
    PostgreSQLLockStore,
    SQLiteLockStore,
    session_lock_key,
    user_lock_key,
    wallet_lock_key,
)

# Storage plumbing
from sessionlock.repositories import SQLiteDatabase

# Results
from sessionlock.results import ErrorKind, OperationResult

# Sessions
from sessionlock.sessions import (
    DeviceMetadata,
    ExpirySweeper,
    InMemorySessionStore,
    Platform,
    PostgreSQLSessionStore,
    ReconcileAction,
    Session,
    SessionManager,
    SessionReconciliation,
    SessionState,
    SessionStats,
    SessionStore,
    SessionUpdate,
    SQLiteSessionStore,
    SweepReport,
    TerminationReason,
    TerminationSummary,
)

# Users
from sessionlock.users import (
    InMemoryUserStore,
    NewUser,
    PostgreSQLUserStore,
    SQLiteUserStore,
    User,
    UserPage,
    UserPatch,
    UserService,
    UserStatus,
    UserStore,
)

__all__ = [
    "__version__",
    # Configuration
    "DEFAULT_LOCK_RETRIES",
    "DEFAULT_LOCK_TIMEOUT",
    "DEFAULT_RETRY_DELAY",
    "DEFAULT_SESSION_EXPIRY_DAYS",
    "LockOptions",
    "SessionPolicy",
    "UserPolicy",
    # Exceptions
    "SessionLockError",
    "LockAcquisitionError",
    "LockNotHeldError",
    "OptimisticConflictError",
    "UniquenessViolationError",
    "EntityNotFoundError",
    # Results
    "ErrorKind",
    "OperationResult",
    # Locks
    "LockRecord",
    "LockStore",
    "LockHandle",
    "LockManager",
    "InMemoryLockStore",
    "SQLiteLockStore",
    "PostgreSQLLockStore",
    "session_lock_key",
    "user_lock_key",
    "wallet_lock_key",
    # Storage
    "SQLiteDatabase",
    # Users
    "NewUser",
    "User",
    "UserPage",
    "UserPatch",
    "UserStatus",
    "UserStore",
    "InMemoryUserStore",
    "SQLiteUserStore",
    "PostgreSQLUserStore",
    "UserService",
    # Sessions
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
    "SessionStore",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "PostgreSQLSessionStore",
    "SessionManager",
    "ExpirySweeper",
    "SweepReport",
]
