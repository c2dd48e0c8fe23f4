"""HTTP middleware: structured request logging and Prometheus metrics."""

from .logging import StructuredLoggingMiddleware
from .telemetry import TelemetryMiddleware

__all__ = ["StructuredLoggingMiddleware", "TelemetryMiddleware"]
