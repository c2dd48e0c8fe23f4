"""Schemas for summary generation, editing and fallback diagnostics."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class GenerateSummaryRequest(BaseModel):
    """Request schema for generating a summary from a processed transcript."""

    transcript_id: str = Field(..., description="Identifier of a processed transcript")
    style: str = Field(
        "executive",
        description="One of executive, action-items, technical, detailed or custom",
    )
    custom_instructions: Optional[str] = Field(
        None, description="Free-form guidance appended to the system prompt"
    )
    urgency: Literal["normal", "high"] = "normal"
    force_model: Optional[Literal["primary", "fallback"]] = Field(
        None, description="Bypass model selection and use this model"
    )
    meeting_type: Optional[str] = None
    timeout_seconds: Optional[float] = Field(
        None, gt=0, description="Abort the generation after this many seconds"
    )


class EditSummaryRequest(BaseModel):
    """Request schema for replacing the content of a finished summary."""

    content: str = Field(..., min_length=1)
    edit_type: str = "user_edit"


class SummaryEditResponse(BaseModel):
    id: str
    transcript_id: str
    status: str
    style: str
    content: str
    edit_count: int
    edit_history: List[Dict[str, Any]] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class SummaryDetailResponse(BaseModel):
    """A stored summary with the analysis recorded when it was generated."""

    id: str
    transcript_id: str
    status: str
    style: str
    content: str
    ai_model: Optional[str] = None
    cost: Optional[float] = None
    quality: Optional[int] = None
    generation_error: Optional[str] = None
    edit_count: int = 0
    analysis: Dict[str, Any] = Field(default_factory=dict)
    quality_assessment: Dict[str, Any] = Field(default_factory=dict)
    available_formats: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SummaryFormatResponse(BaseModel):
    format: str
    data: Dict[str, Any]


class FallbackScenarioResult(BaseModel):
    scenario: str
    context: Dict[str, Any]
    decision: Dict[str, Any]
