"""Telemetry helpers and metrics."""

from .metrics import (
    COMPLETION_ATTEMPTS,
    COMPLETION_LATENCY,
    ERROR_COUNTER,
    FALLBACK_SWITCHES,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    SUMMARY_GRADES,
    increment_fallback_switch,
    observe_completion,
    observe_request,
    observe_summary_grade,
)

__all__ = [
    "COMPLETION_ATTEMPTS",
    "COMPLETION_LATENCY",
    "ERROR_COUNTER",
    "FALLBACK_SWITCHES",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SUMMARY_GRADES",
    "increment_fallback_switch",
    "observe_completion",
    "observe_request",
    "observe_summary_grade",
]
