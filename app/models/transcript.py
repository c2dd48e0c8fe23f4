"""SQLAlchemy model for uploaded meeting transcripts."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.models.base import Base, utc_now


class MeetingTranscript(Base):
    __tablename__ = "meeting_transcripts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    content = Column(Text, nullable=True)
    content_length = Column(Integer, nullable=True)
    token_count = Column(Integer, nullable=True)
    status = Column(
        Enum("uploaded", "processing", "processed", "error", name="transcript_status"),
        nullable=False,
        default="uploaded",
        index=True,
    )
    processing_error = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONB, nullable=False, default=dict)
    session_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
