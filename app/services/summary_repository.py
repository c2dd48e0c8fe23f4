"""SQLAlchemy-backed ``SummaryStore`` for transcripts, summaries and sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select

from app.config.settings import settings
from app.database import session_scope
from app.models import MeetingTranscript, Summary, UserSession
from app.models.user_session import default_statistics
from app.pipelines.summary.persistence import SummaryStore
from app.pipelines.summary.types import SummaryRecord, TranscriptRecord
from app.services.errors import SummaryNotFoundError
from app.services.fallback_engine import FALLBACK, PRIMARY, SessionOutcome

logger = logging.getLogger(__name__)

_FINISHED_STATUSES = ("completed", "error", "edited")


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    """Return ``value`` as a UUID, or ``None`` when it is not one."""

    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


def _model_role(ai_model: Optional[str]) -> str:
    return FALLBACK if ai_model == settings.fallback_model.model_id else PRIMARY


def _to_summary_record(row: Summary) -> SummaryRecord:
    return SummaryRecord(
        id=str(row.id),
        transcript_id=str(row.transcript_id),
        status=row.status,
        content=row.content or "",
        style=row.summary_style,
        ai_model=row.ai_model,
        cost=float(row.cost) if row.cost is not None else None,
        quality=row.quality,
        edit_history=tuple(row.edit_history or ()),
        session_id=str(row.session_id) if row.session_id else None,
        generation_error=row.generation_error,
        metadata=dict(row.metadata_ or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemySummaryStore(SummaryStore):
    """Each call runs in its own ``session_scope`` unit of work."""

    def __init__(self, scope=session_scope) -> None:
        self._scope = scope

    async def get_transcript(self, transcript_id: str) -> Optional[TranscriptRecord]:
        key = _parse_uuid(transcript_id)
        if key is None:
            return None
        async with self._scope() as session:
            row = await session.get(MeetingTranscript, key)
            if row is None:
                return None
            return TranscriptRecord(
                id=str(row.id),
                content=row.content or "",
                status=row.status,
                original_name=row.original_name,
                metadata=dict(row.metadata_ or {}),
                created_at=row.created_at,
                session_id=str(row.session_id) if row.session_id else None,
            )

    async def find_session(self, session_token: str) -> Optional[str]:
        async with self._scope() as session:
            result = await session.execute(
                select(UserSession.id).where(
                    UserSession.session_token == session_token,
                    UserSession.is_active.is_(True),
                )
            )
            session_id = result.scalar_one_or_none()
            return str(session_id) if session_id else None

    async def recent_outcomes(self, session_id: str, limit: int) -> List[SessionOutcome]:
        key = _parse_uuid(session_id)
        if key is None:
            return []
        async with self._scope() as session:
            result = await session.execute(
                select(Summary.ai_model, Summary.status, Summary.processing_time)
                .where(Summary.session_id == key, Summary.status.in_(_FINISHED_STATUSES))
                .order_by(Summary.created_at.desc())
                .limit(limit)
            )
            rows = result.all()

        outcomes = [
            SessionOutcome(
                model_role=_model_role(ai_model),
                succeeded=status != "error",
                processing_time_ms=float(processing_time or 0),
            )
            for ai_model, status, processing_time in rows
        ]
        outcomes.reverse()
        return outcomes

    async def create_summary(
        self,
        *,
        transcript_id: str,
        session_id: Optional[str],
        style: str,
        custom_instructions: Optional[str],
        model_id: str,
    ) -> str:
        async with self._scope() as session:
            row = Summary(
                transcript_id=_parse_uuid(transcript_id),
                session_id=_parse_uuid(session_id),
                summary_style=style,
                custom_instructions=custom_instructions,
                ai_model=model_id,
                status="generating",
                content="",
            )
            session.add(row)
            await session.flush()
            return str(row.id)

    async def _load_summary(self, session, summary_id: str) -> Summary:
        key = _parse_uuid(summary_id)
        row = await session.get(Summary, key) if key is not None else None
        if row is None:
            raise SummaryNotFoundError(f"Summary {summary_id} not found")
        return row

    async def complete_summary(self, summary_id: str, values: Mapping[str, Any]) -> None:
        async with self._scope() as session:
            row = await self._load_summary(session, summary_id)
            row.content = values["content"]
            row.status = values["status"]
            row.ai_model = values["ai_model"]
            row.processing_time = values.get("processing_time")
            row.token_usage = dict(values.get("token_usage") or {})
            row.cost = values.get("cost")
            row.quality = values.get("quality")
            row.generation_error = values.get("generation_error")
            row.metadata_ = {**(row.metadata_ or {}), **dict(values.get("metadata") or {})}

    async def fail_summary(
        self,
        summary_id: str,
        error: str,
        metadata: Mapping[str, Any],
        *,
        ai_model: Optional[str] = None,
    ) -> None:
        async with self._scope() as session:
            row = await self._load_summary(session, summary_id)
            row.status = "error"
            if ai_model:
                row.ai_model = ai_model
            row.generation_error = error
            row.metadata_ = {**(row.metadata_ or {}), **dict(metadata)}

    async def record_session_usage(
        self,
        session_id: str,
        *,
        summary_id: str,
        transcript_id: str,
        cost: float,
    ) -> None:
        key = _parse_uuid(session_id)
        if key is None:
            return
        async with self._scope() as session:
            row = await session.get(UserSession, key)
            if row is None:
                logger.warning("Session %s vanished before usage could be recorded", session_id)
                return
            statistics = {**default_statistics(), **(row.statistics or {})}
            statistics["summaries_generated"] = int(statistics["summaries_generated"]) + 1
            statistics["total_cost"] = float(statistics["total_cost"]) + float(cost or 0.0)
            row.statistics = statistics
            row.workflow_state = "summary"
            row.current_summary_id = _parse_uuid(summary_id)
            row.current_transcript_id = _parse_uuid(transcript_id)
            row.last_activity = datetime.now(timezone.utc)

    async def get_summary(self, summary_id: str) -> Optional[SummaryRecord]:
        key = _parse_uuid(summary_id)
        if key is None:
            return None
        async with self._scope() as session:
            row = await session.get(Summary, key)
            return _to_summary_record(row) if row is not None else None

    async def save_edit(
        self,
        summary_id: str,
        *,
        content: str,
        edit_history: List[Mapping[str, Any]],
    ) -> SummaryRecord:
        async with self._scope() as session:
            row = await self._load_summary(session, summary_id)
            row.content = content
            row.status = "edited"
            row.edit_history = [dict(entry) for entry in edit_history]
            await session.flush()
            await session.refresh(row)
            return _to_summary_record(row)


__all__ = ["SqlAlchemySummaryStore"]
