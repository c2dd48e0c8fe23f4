"""High-level orchestration map for the summary generation pipeline.

``app.services.summary_service.SummaryService`` drives the asynchronous
choreography; this module documents the canonical execution order so team
members can navigate the codebase more easily:

1. ``prompt_builder`` - validate the request and assemble the prompt package.
2. ``context`` - resolve the caller's session and its recent outcomes.
3. ``fallback_engine`` - choose the primary or fallback model for the run.
4. ``orchestrator`` - invoke the model, retrying and switching on failure.
5. ``response_processor`` - normalize, analyze, grade and render the output.
6. ``persistence`` - store the summary, its metadata and session counters.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the summary pipeline."""

    order: int
    name: str
    module: str
    summary: str


class SummaryPipeline:
    """Utility wrapper for documenting the `/summaries/generate` flow."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Prompt Assembly",
            "app.services.prompt_builder",
            "Sanitize instructions, format the transcript and check the context window.",
        ),
        PipelineStage(
            2,
            "Session Context",
            "app.pipelines.summary.context",
            "Resolve the session token and load recent generation outcomes.",
        ),
        PipelineStage(
            3,
            "Model Selection",
            "app.services.fallback_engine",
            "Pick primary or fallback from style, size, cost, urgency and history.",
        ),
        PipelineStage(
            4,
            "Completion",
            "app.pipelines.summary.orchestrator",
            "Call Bedrock with bounded retries, backoff and a one-way fallback switch.",
        ),
        PipelineStage(
            5,
            "Response Processing",
            "app.services.response_processor",
            "Validate, extract structure, score quality and build delivery formats.",
        ),
        PipelineStage(
            6,
            "Recording",
            "app.pipelines.summary.persistence",
            "Persist content, usage, cost and metadata; update session statistics.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["SummaryPipeline", "PipelineStage"]
