"""Declarative base shared by every SQLAlchemy model."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    """Timezone-aware current time used for column defaults."""
    return datetime.now(timezone.utc)


__all__ = ["Base", "utc_now"]
