"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header

from app.services.summary_service import SummaryService, get_summary_service


async def get_session_token(
    x_session_token: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Anonymous workflow session token, when the client sends one."""

    return x_session_token or None


SummaryServiceDep = Annotated[SummaryService, Depends(get_summary_service)]
SessionTokenDep = Annotated[Optional[str], Depends(get_session_token)]


__all__ = ["get_session_token", "SummaryServiceDep", "SessionTokenDep"]
