"""Pydantic models describing a processed summary.

The response processor, the recorder and the HTTP layer all exchange these
schemas so downstream code receives normalized, type-safe objects. Every
field has a default so a degraded result is still structurally complete.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class TextSpan(BaseModel):
    text: str
    position: int = 0


class Heading(TextSpan):
    level: int = 1


class ListItem(TextSpan):
    number: Optional[int] = None


class ActionItem(BaseModel):
    task: str
    owner: Optional[str] = None
    due: Optional[str] = None
    position: int = 0


class Section(BaseModel):
    title: str
    content: str
    position: int = 0
    length: int = 0


class SummaryStructure(BaseModel):
    headings: List[Heading] = Field(default_factory=list)
    bullet_points: List[ListItem] = Field(default_factory=list)
    numbered_items: List[ListItem] = Field(default_factory=list)
    action_items: List[ActionItem] = Field(default_factory=list)
    decisions: List[TextSpan] = Field(default_factory=list)
    insights: List[TextSpan] = Field(default_factory=list)
    dates: List[TextSpan] = Field(default_factory=list)
    times: List[TextSpan] = Field(default_factory=list)
    names: List[TextSpan] = Field(default_factory=list)
    emails: List[TextSpan] = Field(default_factory=list)
    sections: Dict[str, Section] = Field(default_factory=dict)


class ValidationReport(BaseModel):
    is_valid: bool = False
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    content_length: int = 0
    word_count: int = 0
    line_count: int = 0


class Readability(BaseModel):
    score: float = 0.0
    level: str = "unreadable"
    avg_sentence_length: float = 0.0
    avg_syllables_per_word: float = 0.0


class Sentiment(BaseModel):
    positive: float = 0.0
    negative: float = 0.0
    neutral: float = 0.0
    overall: str = "neutral"


class Completeness(BaseModel):
    score: float = 0.0
    present: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)


class Actionability(BaseModel):
    score: float = 0.0
    action_items: int = 0
    decisions: int = 0
    total: int = 0
    level: str = "low"


class Coverage(BaseModel):
    score: float = 0.0
    has_introduction: bool = False
    has_conclusion: bool = False
    has_structure: bool = False
    level: str = "limited"


class Entities(BaseModel):
    people: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)
    times: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    action_owners: List[str] = Field(default_factory=list)
    key_topics: List[str] = Field(default_factory=list)


class ContentAnalysis(BaseModel):
    readability: Readability = Field(default_factory=Readability)
    sentiment: Sentiment = Field(default_factory=Sentiment)
    completeness: Completeness = Field(default_factory=Completeness)
    actionability: Actionability = Field(default_factory=Actionability)
    coverage: Coverage = Field(default_factory=Coverage)
    entities: Entities = Field(default_factory=Entities)


class QualityAssessment(BaseModel):
    score: float = 0.0
    grade: str = "F"
    level: str = "poor"
    issues: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    breakdown: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def clamp_score(cls, values: "QualityAssessment") -> "QualityAssessment":
        values.score = max(0.0, min(1.0, float(values.score)))
        return values

    @property
    def rating(self) -> int:
        """Score mapped onto the 1-5 scale stored with the summary."""

        return max(1, min(5, round(self.score * 5)))


class ModelInfo(BaseModel):
    name: str = "unknown"
    role: str = "primary"
    request_id: Optional[str] = None


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class CostBreakdown(BaseModel):
    total: float = 0.0
    input_cost: float = 0.0
    output_cost: float = 0.0
    currency: str = "USD"


class ProcessingInfo(BaseModel):
    finish_reason: Optional[str] = None
    completion_latency_ms: float = 0.0
    processing_time_ms: float = 0.0
    fallback_triggered: bool = False
    attempt_count: int = 1
    initial_model: Optional[str] = None
    decision_reason: Optional[str] = None
    processed_at: Optional[str] = None
    error: Optional[str] = None


class SummaryMetadata(BaseModel):
    model: ModelInfo = Field(default_factory=ModelInfo)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost: CostBreakdown = Field(default_factory=CostBreakdown)
    processing: ProcessingInfo = Field(default_factory=ProcessingInfo)
    style: str = "executive"
    urgency: str = "normal"
    transcript_id: Optional[str] = None


class ProcessedSummary(BaseModel):
    """Final scored, multi-format summary artifact."""

    success: bool = False
    status: str = "error"
    raw: str = ""
    normalized: str = ""
    structure: SummaryStructure = Field(default_factory=SummaryStructure)
    analysis: ContentAnalysis = Field(default_factory=ContentAnalysis)
    quality: QualityAssessment = Field(default_factory=QualityAssessment)
    formats: Dict[str, Any] = Field(default_factory=dict)
    validation: ValidationReport = Field(default_factory=ValidationReport)
    metadata: SummaryMetadata = Field(default_factory=SummaryMetadata)
    error: Optional[str] = None
    summary_id: Optional[str] = None


__all__ = [
    "TextSpan",
    "Heading",
    "ListItem",
    "ActionItem",
    "Section",
    "SummaryStructure",
    "ValidationReport",
    "Readability",
    "Sentiment",
    "Completeness",
    "Actionability",
    "Coverage",
    "Entities",
    "ContentAnalysis",
    "QualityAssessment",
    "ModelInfo",
    "TokenUsage",
    "CostBreakdown",
    "ProcessingInfo",
    "SummaryMetadata",
    "ProcessedSummary",
]
