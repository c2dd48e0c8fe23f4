"""Retry/fallback execution loop for summary completions (Stage 03).

Each run walks an explicit state machine::

    IDLE -> ATTEMPTING -> SUCCESS
                       -> SWITCHING_MODEL -> ATTEMPTING   (primary failed, retryable)
                       -> RETRYING -> ATTEMPTING          (fallback failed, retryable)
                       -> FAILED                          (non-retryable or out of attempts)

Attempts are counted across both models combined and never exceed
``max_retries``. The switch from primary to fallback happens at most once;
further failures on the fallback model back off exponentially. The network
call and the backoff sleep are the only suspension points and both abort as
soon as the caller's ``CancellationToken`` fires.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.config.settings import settings
from app.services.errors import (
    CompletionError,
    FallbackExhaustedError,
    GenerationCancelledError,
)
from app.services.fallback_engine import FALLBACK, PRIMARY, FallbackDecisionEngine, ModelDecision
from app.services.fallback_stats import FallbackStatistics
from app.services.llm_client import CompletionClient, translate_error
from app.services.prompt_builder import PromptPackage
from app.telemetry import increment_fallback_switch, observe_completion

from .types import AttemptRecord, OrchestrationResult

logger = logging.getLogger("app.services.summary_pipeline")

T = TypeVar("T")


class OrchestratorState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    RETRYING = "retrying"
    SWITCHING_MODEL = "switching_model"
    FAILED = "failed"


TERMINAL_STATES = frozenset({OrchestratorState.SUCCESS, OrchestratorState.FAILED})


class CancellationToken:
    """Caller-owned cancel switch with an optional deadline in seconds."""

    def __init__(self, timeout: float | None = None) -> None:
        self._event = asyncio.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise GenerationCancelledError("Summary generation was cancelled")

    async def wait(self) -> None:
        """Return once ``cancel()`` is called or the deadline passes."""

        remaining = self.remaining()
        if remaining is None:
            await self._event.wait()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            return


def _truncate(value: str, max_length: int = 200) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


class FallbackOrchestrator:
    """Drive completion attempts across the primary and fallback models."""

    def __init__(
        self,
        client: CompletionClient,
        engine: FallbackDecisionEngine,
        stats: FallbackStatistics,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.engine = engine
        self.stats = stats
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.engine.config.max_retries

    async def run(
        self,
        package: PromptPackage,
        decision: ModelDecision,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> OrchestrationResult:
        state = OrchestratorState.IDLE
        model_role = decision.model
        attempts: list[AttemptRecord] = []
        attempt = 0

        while True:
            if cancel_token is not None and cancel_token.cancelled:
                self._finish(attempt, state, OrchestratorState.FAILED)
                raise GenerationCancelledError(
                    f"Summary generation was cancelled before attempt {attempt + 1}"
                )

            attempt += 1
            state = self._transition(state, OrchestratorState.ATTEMPTING, attempt, model_role)
            model = settings.model_for(model_role)
            started = time.perf_counter()
            try:
                completion = await self._guard(
                    self.client.complete(
                        package.messages,
                        model_id=model.model_id,
                        max_tokens=package.max_output_tokens,
                        temperature=package.temperature,
                        model_role=model_role,
                    ),
                    cancel_token,
                )
            except GenerationCancelledError:
                logger.warning(
                    "Attempt %s on %s cancelled in flight", attempt, model_role
                )
                self._finish(attempt, state, OrchestratorState.FAILED)
                raise
            except CompletionError as exc:
                error = translate_error(exc, model_role)
            except Exception as exc:  # pragma: no cover - client contract breach
                error = translate_error(exc, model_role)
            else:
                latency_ms = (time.perf_counter() - started) * 1000
                attempts.append(AttemptRecord(attempt, model_role, True, latency_ms))
                self.stats.record_attempt(model_role, success=True, latency_ms=latency_ms)
                observe_completion(model_role, "success", latency_ms / 1000)
                self._finish(attempt, state, OrchestratorState.SUCCESS)
                logger.info(
                    "Completion served by %s (%s) attempt=%s latency_ms=%.0f tokens=%s",
                    model_role,
                    completion.model_id,
                    attempt,
                    latency_ms,
                    completion.total_tokens,
                )
                return OrchestrationResult(
                    completion=completion,
                    model_role=model_role,
                    initial_decision=decision,
                    attempt_count=attempt,
                    attempts=tuple(attempts),
                )

            latency_ms = (time.perf_counter() - started) * 1000
            attempts.append(
                AttemptRecord(
                    attempt,
                    model_role,
                    False,
                    latency_ms,
                    error_kind=error.kind.value,
                    error_message=_truncate(str(error)),
                )
            )
            self.stats.record_attempt(model_role, success=False, latency_ms=latency_ms)
            observe_completion(model_role, error.kind.value, latency_ms / 1000)
            logger.warning(
                "Attempt %s/%s on %s failed kind=%s: %s",
                attempt,
                self.max_attempts,
                model_role,
                error.kind.value,
                _truncate(str(error)),
            )

            if not self.engine.is_retryable(error):
                self._finish(attempt, state, OrchestratorState.FAILED)
                raise error
            if attempt >= self.max_attempts:
                self._finish(attempt, state, OrchestratorState.FAILED)
                raise FallbackExhaustedError(error, attempt) from error

            if model_role == PRIMARY:
                state = self._transition(
                    state, OrchestratorState.SWITCHING_MODEL, attempt, model_role
                )
                model_role = FALLBACK
                self.stats.record_switch()
                increment_fallback_switch()
                logger.info("Switching to fallback model after %s", error.kind.value)
                continue

            state = self._transition(state, OrchestratorState.RETRYING, attempt, model_role)
            delay = self.engine.retry_delay(attempt)
            logger.info("Retrying %s in %.2fs", model_role, delay)
            try:
                await self._guard(self._sleep(delay), cancel_token)
            except GenerationCancelledError:
                self._finish(attempt, state, OrchestratorState.FAILED)
                raise

    async def _guard(
        self,
        awaitable: Awaitable[T],
        cancel_token: Optional[CancellationToken],
    ) -> T:
        """Await ``awaitable`` unless the token fires first."""

        if cancel_token is None:
            return await awaitable

        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {work, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            watcher.cancel()
            raise

        if work in done:
            watcher.cancel()
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise GenerationCancelledError("Summary generation was cancelled")

    def _transition(
        self,
        current: OrchestratorState,
        target: OrchestratorState,
        attempt: int,
        model_role: str,
    ) -> OrchestratorState:
        logger.debug(
            "Orchestrator %s -> %s attempt=%s model=%s",
            current.value,
            target.value,
            attempt,
            model_role,
        )
        return target

    def _finish(
        self,
        attempt: int,
        current: OrchestratorState,
        terminal: OrchestratorState,
    ) -> None:
        self._transition(current, terminal, attempt, "-")
        self.stats.record_run(attempt)


__all__ = [
    "CancellationToken",
    "FallbackOrchestrator",
    "OrchestratorState",
    "TERMINAL_STATES",
]
