"""Decision inputs for Stage 02 of the summary pipeline.

Session history is a soft signal only: any failure while reading it is
logged and treated as "no history" so the generation itself proceeds.
"""

from __future__ import annotations

import logging
from typing import Optional

from app.config.settings import settings
from app.services.fallback_engine import DecisionContext, SessionOutcome
from app.services.prompt_builder import PromptPackage

from .persistence import SummaryStore
from .types import GenerationOptions

logger = logging.getLogger("app.services.summary_pipeline")


async def resolve_session(store: SummaryStore, session_token: Optional[str]) -> Optional[str]:
    if not session_token:
        return None
    try:
        return await store.find_session(session_token)
    except Exception as exc:
        logger.warning("Session lookup failed; continuing without session: %s", exc)
        return None


async def load_session_history(
    store: SummaryStore, session_id: Optional[str]
) -> tuple[SessionOutcome, ...]:
    """Recent outcomes for the session, or an empty tuple when unavailable."""

    if not session_id:
        return ()
    try:
        outcomes = await store.recent_outcomes(
            session_id, settings.fallback.history_lookup_limit
        )
    except Exception as exc:
        logger.warning("Session history unavailable for %s: %s", session_id, exc)
        return ()
    return tuple(outcomes)


def estimate_primary_cost(package: PromptPackage) -> float:
    """Worst-case primary cost: full input plus the whole output budget."""

    return settings.primary_model.cost(
        package.estimated_input_tokens, package.max_output_tokens
    )


def build_decision_context(
    package: PromptPackage,
    options: GenerationOptions,
    history: tuple[SessionOutcome, ...] = (),
) -> DecisionContext:
    return DecisionContext(
        style=options.style,
        estimated_tokens=package.estimated_input_tokens,
        estimated_cost=estimate_primary_cost(package),
        urgency=options.urgency,
        user_preference=options.force_model,
        session_history=history,
    )


__all__ = [
    "resolve_session",
    "load_session_history",
    "estimate_primary_cost",
    "build_decision_context",
]
