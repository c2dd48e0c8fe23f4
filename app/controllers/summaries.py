"""Summary generation endpoints and fallback diagnostics."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from app.config.settings import settings
from app.controllers.dependencies import SessionTokenDep, SummaryServiceDep
from app.pipelines.summary import CancellationToken, GenerationOptions
from app.services.response_contract import ProcessedSummary
from app.views.common import PipelineErrorResponse, SuccessResponse
from app.views.summaries import (
    EditSummaryRequest,
    FallbackScenarioResult,
    GenerateSummaryRequest,
    SummaryDetailResponse,
    SummaryEditResponse,
    SummaryFormatResponse,
)

router = APIRouter(prefix="/summaries", tags=["summaries"])

_GENERATION_ERRORS = {
    status.HTTP_400_BAD_REQUEST: {"model": PipelineErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": PipelineErrorResponse},
    status.HTTP_409_CONFLICT: {"model": PipelineErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": PipelineErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": PipelineErrorResponse},
    status.HTTP_504_GATEWAY_TIMEOUT: {"model": PipelineErrorResponse},
}
_EDIT_ERRORS = {
    status.HTTP_404_NOT_FOUND: {"model": PipelineErrorResponse},
    status.HTTP_409_CONFLICT: {"model": PipelineErrorResponse},
}


@router.post("/generate", response_model=ProcessedSummary, responses=_GENERATION_ERRORS)
async def generate_summary(
    payload: GenerateSummaryRequest,
    service: SummaryServiceDep,
    session_token: SessionTokenDep,
) -> ProcessedSummary:
    """Generate a summary for a processed transcript."""

    options = GenerationOptions(
        style=payload.style,
        custom_instructions=payload.custom_instructions,
        urgency=payload.urgency,
        force_model=payload.force_model,
        session_token=session_token,
        meeting_type=payload.meeting_type,
    )
    timeout = payload.timeout_seconds or settings.fallback.generation_timeout_seconds
    cancel_token = CancellationToken(timeout=timeout) if timeout else None
    return await service.generate_summary(
        payload.transcript_id, options, cancel_token=cancel_token
    )


@router.put("/{summary_id}", response_model=SummaryEditResponse, responses=_EDIT_ERRORS)
async def edit_summary(
    summary_id: str,
    payload: EditSummaryRequest,
    service: SummaryServiceDep,
) -> SummaryEditResponse:
    """Replace summary content, keeping the previous version in its history."""

    record = await service.edit_summary(
        summary_id, payload.content, edit_type=payload.edit_type
    )
    return SummaryEditResponse(
        id=record.id,
        transcript_id=record.transcript_id,
        status=record.status,
        style=record.style,
        content=record.content,
        edit_count=len(record.edit_history),
        edit_history=[dict(entry) for entry in record.edit_history],
        updated_at=record.updated_at,
    )


@router.get("/fallback/stats")
async def fallback_statistics(service: SummaryServiceDep) -> dict:
    """Aggregate attempt, retry and switch counters since the last reset."""

    return service.get_fallback_statistics()


@router.post("/fallback/stats/reset", response_model=SuccessResponse)
async def reset_fallback_statistics(service: SummaryServiceDep) -> SuccessResponse:
    return SuccessResponse(
        message="Fallback statistics reset",
        data=service.reset_fallback_statistics(),
    )


@router.get("/fallback/config")
async def fallback_config(service: SummaryServiceDep) -> dict:
    return service.get_fallback_config()


@router.get("/fallback/scenarios", response_model=list[FallbackScenarioResult])
async def fallback_scenarios(service: SummaryServiceDep) -> list[FallbackScenarioResult]:
    """Run model selection over canned contexts without calling any model."""

    return [FallbackScenarioResult(**result) for result in service.test_fallback_scenarios()]


# Plain renderings are served as bodies; structured ones as JSON.
_PLAIN_FORMATS = {
    "text": ("content", "text/plain"),
    "markdown": ("content", "text/markdown"),
    "email": ("body", "text/plain"),
}


@router.get("/{summary_id}", response_model=SummaryDetailResponse, responses=_EDIT_ERRORS)
async def get_summary(summary_id: str, service: SummaryServiceDep) -> SummaryDetailResponse:
    record = await service.get_summary(summary_id)
    metadata = record.metadata
    return SummaryDetailResponse(
        id=record.id,
        transcript_id=record.transcript_id,
        status=record.status,
        style=record.style,
        content=record.content,
        ai_model=record.ai_model,
        cost=record.cost,
        quality=record.quality,
        generation_error=record.generation_error,
        edit_count=len(record.edit_history),
        analysis=metadata.get("analysis") or {},
        quality_assessment=metadata.get("quality_assessment") or {},
        available_formats=sorted(metadata.get("formats") or {}),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.get(
    "/{summary_id}/format/{format_name}",
    response_model=None,
    responses={
        status.HTTP_200_OK: {"model": SummaryFormatResponse},
        status.HTTP_404_NOT_FOUND: {"model": PipelineErrorResponse},
    },
)
async def get_summary_format(
    summary_id: str, format_name: str, service: SummaryServiceDep
) -> Response:
    """One rendering of a summary: ui, api, text, markdown or email."""

    rendering = await service.get_summary_format(summary_id, format_name)
    if format_name in _PLAIN_FORMATS:
        key, media_type = _PLAIN_FORMATS[format_name]
        return PlainTextResponse(rendering.get(key, ""), media_type=media_type)
    return JSONResponse(
        SummaryFormatResponse(format=format_name, data=rendering).model_dump(mode="json")
    )
