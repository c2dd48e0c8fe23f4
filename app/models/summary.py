"""SQLAlchemy model for generated summaries."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.models.base import Base, utc_now

SUMMARY_STATUSES = ("generating", "completed", "error", "edited")


class Summary(Base):
    __tablename__ = "summaries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    transcript_id = Column(
        ForeignKey("meeting_transcripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    content = Column(Text, nullable=False, default="")
    summary_style = Column(
        Enum(
            "executive",
            "action-items",
            "technical",
            "detailed",
            "custom",
            name="summary_style",
        ),
        nullable=False,
        default="executive",
    )
    custom_instructions = Column(Text, nullable=True)
    ai_model = Column(String(100), nullable=False)
    processing_time = Column(Integer, nullable=True)
    token_usage = Column(JSONB, nullable=False, default=dict)
    cost = Column(Numeric(10, 6), nullable=True)
    status = Column(
        Enum(*SUMMARY_STATUSES, name="summary_status"),
        nullable=False,
        default="generating",
        index=True,
    )
    generation_error = Column(Text, nullable=True)
    edit_history = Column(JSONB, nullable=False, default=list)
    quality = Column(Integer, nullable=True)
    metadata_ = Column("metadata", JSONB, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    transcript = relationship("MeetingTranscript", backref="summaries")
