"""Typed containers shared across the summary generation pipeline.

These dataclasses live in their own module so the other stages
(``context``, ``orchestrator``, ``persistence``) and the repository can
import them without creating circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from app.services.fallback_engine import ModelDecision
from app.services.llm_client import CompletionResult
from app.services.prompt_builder import estimate_tokens

TRANSCRIPT_STATUSES = ("uploaded", "processing", "processed", "error")
URGENCY_LEVELS = ("normal", "high")


@dataclass(frozen=True)
class TranscriptRecord:
    """Read-only view of an uploaded transcript."""

    id: str
    content: str
    status: str
    original_name: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    session_id: Optional[str] = None

    @property
    def content_length(self) -> int:
        return len(self.content or "")

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.content or "")


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call options; never persisted directly."""

    style: str = "executive"
    custom_instructions: Optional[str] = None
    urgency: str = "normal"
    force_model: Optional[str] = None
    session_token: Optional[str] = None
    meeting_type: Optional[str] = None


@dataclass(frozen=True)
class AttemptRecord:
    attempt: int
    model_role: str
    success: bool
    latency_ms: float
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "model_role": self.model_role,
            "success": self.success,
            "latency_ms": round(self.latency_ms, 2),
            "error_kind": self.error_kind,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class OrchestrationResult:
    """Completion plus which model served it and how many tries it took."""

    completion: CompletionResult
    model_role: str
    initial_decision: ModelDecision
    attempt_count: int
    attempts: tuple[AttemptRecord, ...]

    @property
    def fallback_triggered(self) -> bool:
        return self.model_role != self.initial_decision.model


@dataclass(frozen=True)
class SummaryRecord:
    """Stored summary as seen by the recorder and the edit path."""

    id: str
    transcript_id: str
    status: str
    content: str = ""
    style: str = "executive"
    ai_model: Optional[str] = None
    cost: Optional[float] = None
    quality: Optional[int] = None
    edit_history: tuple[Mapping[str, Any], ...] = ()
    session_id: Optional[str] = None
    generation_error: Optional[str] = None
    # Stored run details: formats, analysis, quality assessment, usage.
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


__all__ = [
    "TRANSCRIPT_STATUSES",
    "URGENCY_LEVELS",
    "TranscriptRecord",
    "GenerationOptions",
    "AttemptRecord",
    "OrchestrationResult",
    "SummaryRecord",
]
