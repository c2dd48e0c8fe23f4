"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse, HealthResponse, PipelineErrorResponse, SuccessResponse
from .summaries import (
    EditSummaryRequest,
    FallbackScenarioResult,
    GenerateSummaryRequest,
    SummaryDetailResponse,
    SummaryEditResponse,
    SummaryFormatResponse,
)

__all__ = [
    "EditSummaryRequest",
    "ErrorResponse",
    "FallbackScenarioResult",
    "GenerateSummaryRequest",
    "HealthResponse",
    "PipelineErrorResponse",
    "SuccessResponse",
    "SummaryDetailResponse",
    "SummaryEditResponse",
    "SummaryFormatResponse",
]
