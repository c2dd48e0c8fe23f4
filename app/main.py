"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.settings import settings
from .controllers import summaries
from .database import dispose_engine, init_models
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .services.errors import (
    CompletionTimeoutError,
    FallbackExhaustedError,
    GenerationCancelledError,
    InputValidationError,
    NetworkError,
    RateLimitExceededError,
    ServiceUnavailableError,
    SummaryNotFoundError,
    SummaryPipelineError,
    SummaryStateError,
    TemporaryFailureError,
    TranscriptError,
    TranscriptNotFoundError,
)
from .views.common import HealthResponse

# Checked in order; the first matching class wins.
_ERROR_STATUS: tuple[tuple[type[SummaryPipelineError], int], ...] = (
    (InputValidationError, status.HTTP_400_BAD_REQUEST),
    (TranscriptNotFoundError, status.HTTP_404_NOT_FOUND),
    (SummaryNotFoundError, status.HTTP_404_NOT_FOUND),
    (TranscriptError, status.HTTP_409_CONFLICT),
    (SummaryStateError, status.HTTP_409_CONFLICT),
    (GenerationCancelledError, status.HTTP_408_REQUEST_TIMEOUT),
    (RateLimitExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (CompletionTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TemporaryFailureError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (FallbackExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for_error(exc: SummaryPipelineError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_502_BAD_GATEWAY


def _configure_logging() -> None:
    """Ensure structured middleware logs stream to stdout and file."""

    logging.getLogger().handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=1_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    middleware_logger = logging.getLogger("app.middleware.structured")
    middleware_logger.handlers.clear()
    middleware_stdout = logging.StreamHandler(sys.stdout)
    middleware_stdout.setFormatter(logging.Formatter("%(message)s"))
    middleware_logger.addHandler(middleware_stdout)
    middleware_logger.setLevel(logging.INFO)
    middleware_logger.propagate = False

    pipeline_log_path = Path(settings.pipeline_log_file)
    pipeline_log_path.parent.mkdir(parents=True, exist_ok=True)
    pipeline_handler = RotatingFileHandler(
        pipeline_log_path,
        maxBytes=500_000,
        backupCount=5,
        encoding="utf-8",
    )
    pipeline_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    )
    pipeline_logger = logging.getLogger("app.services.summary_pipeline")
    pipeline_logger.handlers.clear()
    pipeline_logger.addHandler(pipeline_handler)
    pipeline_logger.setLevel(logging.INFO)

    noisy_loggers = [
        "botocore",
        "boto3",
        "urllib3",
        "sqlalchemy.engine",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        description="Meeting transcript summarization API with model fallback",
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.include_router(summaries.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""

        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "status": "operational",
        }

    @app.get("/health", response_model=HealthResponse, include_in_schema=False)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""

        return HealthResponse(
            status="healthy",
            service=settings.app_name,
            version=settings.app_version,
        )

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(SummaryPipelineError)
    async def pipeline_exception_handler(request: Request, exc: SummaryPipelineError):
        payload = exc.to_payload()
        logging.getLogger(__name__).warning(
            "%s %s failed with %s: %s", request.method, request.url.path, payload["code"], exc
        )
        return JSONResponse(
            status_code=status_for_error(exc),
            content={
                "detail": payload["message"],
                "code": payload["code"],
                "suggestions": payload["suggestions"],
                "retryable": payload["retryable"],
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        await init_models()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await dispose_engine()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
