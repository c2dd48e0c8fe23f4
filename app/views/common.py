"""Response envelopes shared by every router."""

from typing import List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None


class PipelineErrorResponse(ErrorResponse):
    """Error body for failed generations; never carries internal detail."""

    code: str
    suggestions: List[str] = Field(default_factory=list)
    retryable: bool = False


class SuccessResponse(BaseModel):
    message: str
    data: Optional[dict] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
