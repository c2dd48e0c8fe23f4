"""Persistence boundary for Stage 05 of the summary pipeline.

``SummaryStore`` is the contract the pipeline consumes from the datastore;
``SummaryRecorder`` holds the recording rules (lifecycle transitions, session
counters, append-only edit history) on top of any store implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from app.config.settings import settings
from app.services.errors import SummaryNotFoundError, SummaryStateError
from app.services.fallback_engine import SessionOutcome
from app.services.response_contract import ProcessedSummary

from .types import SummaryRecord, TranscriptRecord

logger = logging.getLogger("app.services.summary_pipeline")

EDITABLE_STATUSES = ("completed", "edited")


class SummaryStore(ABC):
    """Datastore contract for transcripts, summaries and sessions."""

    @abstractmethod
    async def get_transcript(self, transcript_id: str) -> Optional[TranscriptRecord]:
        ...

    @abstractmethod
    async def find_session(self, session_token: str) -> Optional[str]:
        """Return the session id for ``session_token`` when it exists."""

    @abstractmethod
    async def recent_outcomes(self, session_id: str, limit: int) -> List[SessionOutcome]:
        """Latest finished generations for the session, oldest first."""

    @abstractmethod
    async def create_summary(
        self,
        *,
        transcript_id: str,
        session_id: Optional[str],
        style: str,
        custom_instructions: Optional[str],
        model_id: str,
    ) -> str:
        ...

    @abstractmethod
    async def complete_summary(self, summary_id: str, values: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    async def fail_summary(
        self,
        summary_id: str,
        error: str,
        metadata: Mapping[str, Any],
        *,
        ai_model: Optional[str] = None,
    ) -> None:
        """Mark the summary as ``error``; ``ai_model`` is the last model tried."""

    @abstractmethod
    async def record_session_usage(
        self,
        session_id: str,
        *,
        summary_id: str,
        transcript_id: str,
        cost: float,
    ) -> None:
        ...

    @abstractmethod
    async def get_summary(self, summary_id: str) -> Optional[SummaryRecord]:
        ...

    @abstractmethod
    async def save_edit(
        self,
        summary_id: str,
        *,
        content: str,
        edit_history: List[Mapping[str, Any]],
    ) -> SummaryRecord:
        ...


class SummaryRecorder:
    """Write generation results and user edits through a ``SummaryStore``."""

    def __init__(self, store: SummaryStore) -> None:
        self.store = store

    async def start(
        self,
        transcript: TranscriptRecord,
        *,
        session_id: Optional[str],
        style: str,
        custom_instructions: Optional[str],
        model_id: str,
    ) -> str:
        summary_id = await self.store.create_summary(
            transcript_id=transcript.id,
            session_id=session_id,
            style=style,
            custom_instructions=custom_instructions,
            model_id=model_id,
        )
        logger.info("Summary %s created for transcript %s", summary_id, transcript.id)
        return summary_id

    async def finish(
        self,
        summary_id: str,
        processed: ProcessedSummary,
        *,
        total_time_ms: float,
        session_id: Optional[str],
        transcript_id: str,
    ) -> None:
        """Store content, usage, cost and structured metadata for the run."""

        metadata = processed.metadata
        structure = processed.structure
        values = {
            "content": processed.normalized or processed.raw,
            "status": "completed" if processed.success else "error",
            "ai_model": metadata.model.name,
            "processing_time": int(round(total_time_ms)),
            "token_usage": metadata.usage.model_dump(),
            "cost": metadata.cost.total,
            "quality": processed.quality.rating,
            "generation_error": processed.error,
            "metadata": {
                "request_id": metadata.model.request_id,
                "model_role": metadata.model.role,
                "finish_reason": metadata.processing.finish_reason,
                "fallback_triggered": metadata.processing.fallback_triggered,
                "attempt_count": metadata.processing.attempt_count,
                "decision_reason": metadata.processing.decision_reason,
                "completed_at": datetime.now(timezone.utc).isoformat(),
                "response_processing": {
                    "quality_grade": processed.quality.grade,
                    "quality_score": processed.quality.score,
                    "readability_score": processed.analysis.readability.score,
                    "completeness_score": processed.analysis.completeness.score,
                    "action_items_count": len(structure.action_items),
                    "decisions_count": len(structure.decisions),
                    "processing_time_ms": metadata.processing.processing_time_ms,
                    "validation_errors": list(processed.validation.errors),
                    "validation_warnings": list(processed.validation.warnings),
                },
                "structured_data": {
                    "headings": [heading.model_dump() for heading in structure.headings],
                    "action_items": [item.model_dump() for item in structure.action_items],
                    "decisions": [decision.model_dump() for decision in structure.decisions],
                    "insights": [insight.model_dump() for insight in structure.insights],
                },
                "analysis": processed.analysis.model_dump(mode="json"),
                "quality_assessment": processed.quality.model_dump(mode="json"),
                "formats": processed.formats,
            },
        }
        await self.store.complete_summary(summary_id, values)
        if session_id:
            await self.store.record_session_usage(
                session_id,
                summary_id=summary_id,
                transcript_id=transcript_id,
                cost=metadata.cost.total,
            )
        logger.info(
            "Summary %s stored status=%s cost=%.6f grade=%s",
            summary_id,
            values["status"],
            metadata.cost.total,
            processed.quality.grade,
        )

    async def fail(
        self,
        summary_id: str,
        error: BaseException,
        payload: Mapping[str, Any],
        *,
        model_role: Optional[str] = None,
    ) -> None:
        """Mark the run as failed against the model that was tried last."""

        ai_model = settings.model_for(model_role).model_id if model_role else None
        await self.store.fail_summary(
            summary_id,
            str(error),
            {
                "error_code": payload.get("code"),
                "failed_at": datetime.now(timezone.utc).isoformat(),
                "attempts": payload.get("attempts"),
                "model_role": model_role,
            },
            ai_model=ai_model,
        )
        logger.warning("Summary %s marked as error: %s", summary_id, error)

    async def edit(
        self, summary_id: str, content: str, *, edit_type: str = "user_edit"
    ) -> SummaryRecord:
        """Replace the content of a finished summary, keeping prior versions."""

        record = await self.store.get_summary(summary_id)
        if record is None:
            raise SummaryNotFoundError(f"Summary {summary_id} not found")
        if record.status not in EDITABLE_STATUSES:
            raise SummaryStateError(
                f"Summary {summary_id} is {record.status}; only completed summaries can be edited"
            )

        history = [dict(entry) for entry in record.edit_history]
        history.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "previous_content": record.content,
                "edit_type": edit_type,
            }
        )
        updated = await self.store.save_edit(summary_id, content=content, edit_history=history)
        logger.info("Summary %s edited (%s versions kept)", summary_id, len(history))
        return updated


__all__ = ["EDITABLE_STATUSES", "SummaryRecorder", "SummaryStore"]
