"""SQLAlchemy models for the summary backend."""

from .base import Base
from .summary import SUMMARY_STATUSES, Summary  # noqa: F401
from .transcript import MeetingTranscript  # noqa: F401
from .user_session import WORKFLOW_STATES, UserSession  # noqa: F401

__all__ = [
    "Base",
    "MeetingTranscript",
    "Summary",
    "SUMMARY_STATUSES",
    "UserSession",
    "WORKFLOW_STATES",
]
