"""
Standard span attributes for sessionlock.

Attribute constants shared by the lock manager, the stores and the
services so spans carry consistent names.

Example:
    >>> from sessionlock.observability.attributes import ATTR_LOCK_KEY
    >>>
    >>> with tracer.span("sessionlock.lock.acquire", {ATTR_LOCK_KEY: "user:42"}):
    ...     pass
"""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "sessionlock.lock.key"
"""Lock key being acquired or released (e.g. 'user:<id>')."""

ATTR_LOCK_TIMEOUT = "sessionlock.lock.timeout"
"""Lock lifetime in seconds (float)."""

ATTR_LOCK_RETRIES = "sessionlock.lock.retries"
"""Maximum number of retries allowed for an acquisition (integer)."""

# =============================================================================
# Entity Attributes
# =============================================================================

ATTR_USER_ID = "sessionlock.user.id"
"""User identifier (UUID string)."""

ATTR_EXPECTED_VERSION = "sessionlock.expected_version"
"""Version presented by the caller for optimistic concurrency (integer)."""

# =============================================================================
# Session Attributes
# =============================================================================

ATTR_SESSION_ID = "sessionlock.session.id"
"""Session identifier (UUID string)."""

ATTR_DEVICE_ID = "sessionlock.session.device_id"
"""Client device identifier."""

ATTR_TERMINATION_REASON = "sessionlock.session.termination_reason"
"""Reason tag recorded when a session is terminated."""


__all__ = [
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_LOCK_RETRIES",
    "ATTR_USER_ID",
    "ATTR_EXPECTED_VERSION",
    "ATTR_SESSION_ID",
    "ATTR_DEVICE_ID",
    "ATTR_TERMINATION_REASON",
]
