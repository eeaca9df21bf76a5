"""
Observability utilities for sessionlock.

Tracing is optional: when OpenTelemetry is not installed every component
falls back to a NullTracer and spans cost nothing.

Example:
    >>> from sessionlock.observability import create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("sessionlock.example"):
    ...     pass
"""

from sessionlock.observability.attributes import (
    ATTR_DEVICE_ID,
    ATTR_EXPECTED_VERSION,
    ATTR_LOCK_KEY,
    ATTR_LOCK_RETRIES,
    ATTR_LOCK_TIMEOUT,
    ATTR_SESSION_ID,
    ATTR_TERMINATION_REASON,
    ATTR_USER_ID,
)
from sessionlock.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from sessionlock.observability.tracing import OTEL_AVAILABLE

__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_LOCK_RETRIES",
    "ATTR_USER_ID",
    "ATTR_EXPECTED_VERSION",
    "ATTR_SESSION_ID",
    "ATTR_DEVICE_ID",
    "ATTR_TERMINATION_REASON",
]
