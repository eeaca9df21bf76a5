"""
OpenTelemetry availability detection for sessionlock.

OpenTelemetry is an optional dependency (the ``telemetry`` extra). This
module is the single place that checks whether it is importable.
"""

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace  # noqa: F401

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False


__all__ = ["OTEL_AVAILABLE"]
