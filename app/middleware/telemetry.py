"""Prometheus instrumentation for HTTP requests."""

from __future__ import annotations

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.telemetry import observe_request

UNTRACKED_PATHS = frozenset({"/metrics"})
UNMATCHED_ROUTE = "unmatched"


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Count requests and observe latency per route template."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:  # pragma: no cover
            observe_request(
                request.method,
                self._resolve_route(request),
                500,
                time.perf_counter() - start_time,
            )
            raise

        observe_request(
            request.method,
            self._resolve_route(request),
            response.status_code,
            time.perf_counter() - start_time,
        )
        return response

    @staticmethod
    def _resolve_route(request: Request) -> str:
        """Route template such as ``/summaries/{summary_id}``.

        The router stores the matched route in the shared scope, so this is
        only meaningful once the request has been dispatched. Paths that
        matched nothing share one label to keep label cardinality bounded.
        """

        scope_route: Any = request.scope.get("route")
        path = getattr(scope_route, "path", None)
        return path or UNMATCHED_ROUTE


__all__ = ["TelemetryMiddleware", "UNMATCHED_ROUTE", "UNTRACKED_PATHS"]
