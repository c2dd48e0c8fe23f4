"""SQLAlchemy model for anonymous workflow sessions."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, String
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.models.base import Base, utc_now

WORKFLOW_STATES = ("upload", "instructions", "processing", "summary", "email", "completed")


def default_statistics() -> dict:
    return {
        "transcripts_processed": 0,
        "summaries_generated": 0,
        "emails_sent": 0,
        "total_cost": 0.0,
    }


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    session_token = Column(String(255), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_activity = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    workflow_state = Column(
        Enum(*WORKFLOW_STATES, name="workflow_state"),
        nullable=False,
        default="upload",
        index=True,
    )
    current_transcript_id = Column(UUID(as_uuid=True), nullable=True)
    current_summary_id = Column(UUID(as_uuid=True), nullable=True)
    statistics = Column(JSONB, nullable=False, default=default_statistics)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
