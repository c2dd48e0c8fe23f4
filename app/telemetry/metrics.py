"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

COMPLETION_ATTEMPTS = Counter(
    "summary_completion_attempts_total",
    "Completion attempts by model role and outcome",
    ("model_role", "outcome"),
)

COMPLETION_LATENCY = Histogram(
    "summary_completion_duration_seconds",
    "Completion call duration in seconds",
    ("model_role",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0),
)

FALLBACK_SWITCHES = Counter(
    "summary_fallback_switches_total",
    "Number of primary to fallback model switches",
)

SUMMARY_GRADES = Counter(
    "summary_quality_grades_total",
    "Processed summaries by quality grade",
    ("grade",),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def observe_completion(model_role: str, outcome: str, duration_seconds: float) -> None:
    """Record one completion attempt; ``outcome`` is ``success`` or an error kind."""

    COMPLETION_ATTEMPTS.labels(model_role=model_role, outcome=outcome).inc()
    COMPLETION_LATENCY.labels(model_role=model_role).observe(max(duration_seconds, 0))


def increment_fallback_switch() -> None:
    FALLBACK_SWITCHES.inc()


def observe_summary_grade(grade: str) -> None:
    SUMMARY_GRADES.labels(grade=grade or "F").inc()
