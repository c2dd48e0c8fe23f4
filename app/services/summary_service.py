"""End-to-end summary generation built from the pipeline stages.

``SummaryService.generate_summary`` is the single entry point used by the
HTTP layer. It validates the transcript, builds the prompt, chooses a
model, runs the orchestrated completion, post-processes the response and
records the outcome. Failures after the summary record exists mark it as
``error`` before the exception propagates.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from app.config.settings import settings
from app.pipelines.summary.context import (
    build_decision_context,
    load_session_history,
    resolve_session,
)
from app.pipelines.summary.orchestrator import CancellationToken, FallbackOrchestrator
from app.pipelines.summary.persistence import SummaryRecorder, SummaryStore
from app.pipelines.summary.types import GenerationOptions, SummaryRecord
from app.services.errors import (
    CompletionError,
    FallbackExhaustedError,
    SummaryFormatNotFoundError,
    SummaryNotFoundError,
    SummaryPipelineError,
    TranscriptError,
    TranscriptNotFoundError,
    user_facing_error,
)
from app.services.fallback_engine import FallbackDecisionEngine
from app.services.fallback_stats import FallbackStatistics
from app.services.llm_client import CompletionClient
from app.services.prompt_builder import build_prompt, prompt_stats
from app.services.response_contract import ProcessedSummary
from app.services.response_processor import ProcessingContext, ResponseProcessor
from app.telemetry import observe_summary_grade

logger = logging.getLogger("app.services.summary_pipeline")


class SummaryService:
    """Wire the pipeline stages around one store and one completion client."""

    def __init__(
        self,
        store: SummaryStore,
        client: CompletionClient,
        *,
        engine: FallbackDecisionEngine | None = None,
        stats: FallbackStatistics | None = None,
        processor: ResponseProcessor | None = None,
        orchestrator: FallbackOrchestrator | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.engine = engine or FallbackDecisionEngine()
        self.stats = stats or FallbackStatistics()
        self.processor = processor or ResponseProcessor()
        self.orchestrator = orchestrator or FallbackOrchestrator(
            client, self.engine, self.stats
        )
        self.recorder = SummaryRecorder(store)

    async def generate_summary(
        self,
        transcript_id: str,
        options: GenerationOptions | None = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ProcessedSummary:
        options = options or GenerationOptions()
        started = time.perf_counter()

        transcript = await self.store.get_transcript(transcript_id)
        if transcript is None:
            raise TranscriptNotFoundError(f"Transcript {transcript_id} not found")
        if transcript.status != "processed":
            raise TranscriptError(
                f"Transcript {transcript_id} is {transcript.status}; it must be processed first"
            )
        if not transcript.content.strip():
            raise TranscriptError(f"Transcript {transcript_id} has no content")

        package = build_prompt(
            transcript.content,
            style=options.style,
            custom_instructions=options.custom_instructions,
            metadata=transcript.metadata,
            meeting_type=options.meeting_type,
        )
        for warning in package.warnings:
            logger.warning("Prompt for transcript %s: %s", transcript_id, warning)
        logger.info("Prompt ready for transcript %s: %s", transcript_id, prompt_stats(package))

        session_id = await resolve_session(self.store, options.session_token)
        history = await load_session_history(self.store, session_id)
        decision = self.engine.select_model(
            build_decision_context(package, options, history)
        )
        logger.info(
            "Model decision for transcript %s: %s (%s, confidence=%.2f)",
            transcript_id,
            decision.model,
            decision.reason,
            decision.confidence,
        )

        summary_id = await self.recorder.start(
            transcript,
            session_id=session_id,
            style=options.style,
            custom_instructions=options.custom_instructions,
            model_id=settings.model_for(decision.model).model_id,
        )

        try:
            outcome = await self.orchestrator.run(
                package, decision, cancel_token=cancel_token
            )
            processed = self.processor.process(
                outcome.completion.content,
                ProcessingContext(
                    style=options.style,
                    completion=outcome.completion,
                    model_role=outcome.model_role,
                    fallback_triggered=outcome.fallback_triggered,
                    attempt_count=outcome.attempt_count,
                    initial_model=decision.model,
                    decision_reason=decision.reason,
                    urgency=options.urgency,
                    transcript_id=transcript.id,
                ),
            )
            total_time_ms = (time.perf_counter() - started) * 1000
            await self.recorder.finish(
                summary_id,
                processed,
                total_time_ms=total_time_ms,
                session_id=session_id,
                transcript_id=transcript.id,
            )
        except SummaryPipelineError as exc:
            await self._mark_failed(summary_id, exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected failure generating summary %s", summary_id)
            await self._mark_failed(summary_id, exc)
            raise

        observe_summary_grade(processed.quality.grade)
        processed.summary_id = summary_id
        logger.info(
            "Summary %s ready in %.0fms model=%s fallback=%s grade=%s",
            summary_id,
            total_time_ms,
            outcome.model_role,
            outcome.fallback_triggered,
            processed.quality.grade,
        )
        return processed

    async def _mark_failed(self, summary_id: str, exc: BaseException) -> None:
        try:
            await self.recorder.fail(
                summary_id,
                exc,
                user_facing_error(exc) | _attempts(exc),
                model_role=_last_model_role(exc),
            )
        except Exception as store_exc:  # pragma: no cover
            logger.error("Could not mark summary %s as failed: %s", summary_id, store_exc)

    async def edit_summary(
        self, summary_id: str, content: str, *, edit_type: str = "user_edit"
    ) -> SummaryRecord:
        return await self.recorder.edit(summary_id, content, edit_type=edit_type)

    async def get_summary(self, summary_id: str) -> SummaryRecord:
        record = await self.store.get_summary(summary_id)
        if record is None:
            raise SummaryNotFoundError(f"Summary {summary_id} not found")
        return record

    async def get_summary_format(self, summary_id: str, format_name: str) -> Any:
        """One stored rendering of a summary.

        Edited summaries no longer match the renderings stored at generation
        time, so their formats are rebuilt from the current content.
        """

        record = await self.get_summary(summary_id)
        formats = record.metadata.get("formats") or {}
        if record.status == "edited":
            formats = self.processor.process(
                record.content, ProcessingContext(style=record.style)
            ).formats
        if format_name not in formats:
            raise SummaryFormatNotFoundError(
                f"Format {format_name!r} not available for summary {summary_id}; "
                f"available: {', '.join(sorted(formats)) or 'none'}"
            )
        return formats[format_name]

    def get_fallback_statistics(self) -> dict[str, Any]:
        return self.stats.snapshot().as_dict()

    def reset_fallback_statistics(self) -> dict[str, Any]:
        self.stats.reset()
        logger.info("Fallback statistics reset")
        return self.stats.snapshot().as_dict()

    def get_fallback_config(self) -> dict[str, Any]:
        return self.engine.config_summary()

    def test_fallback_scenarios(self) -> list[dict[str, Any]]:
        return self.engine.dry_run()


def _attempts(exc: BaseException) -> dict[str, Any]:
    attempts = getattr(exc, "attempts", None)
    return {"attempts": attempts} if attempts is not None else {}


def _last_model_role(exc: BaseException) -> Optional[str]:
    """Role of the model whose call failed last, when the error names one."""

    if isinstance(exc, FallbackExhaustedError):
        exc = exc.last_error
    if isinstance(exc, CompletionError):
        return exc.model_role
    return None


_DEFAULT_SERVICE: SummaryService | None = None


def get_summary_service() -> SummaryService:
    """Return a lazily-instantiated summary service singleton."""

    global _DEFAULT_SERVICE
    if _DEFAULT_SERVICE is None:
        from app.services.llm_client import BedrockCompletionClient
        from app.services.summary_repository import SqlAlchemySummaryStore

        _DEFAULT_SERVICE = SummaryService(SqlAlchemySummaryStore(), BedrockCompletionClient())
    return _DEFAULT_SERVICE


__all__ = ["SummaryService", "get_summary_service"]
