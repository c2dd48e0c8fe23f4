"""Retry and fallback loop: attempt bounds, switching, backoff, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from app.config.settings import FallbackConfig, settings
from app.pipelines.summary.orchestrator import CancellationToken, FallbackOrchestrator
from app.services.errors import (
    AuthenticationError,
    FallbackExhaustedError,
    GenerationCancelledError,
    RateLimitExceededError,
    ServiceUnavailableError,
)
from app.services.fallback_engine import FALLBACK, PRIMARY, FallbackDecisionEngine, ModelDecision
from app.services.fallback_stats import FallbackStatistics
from app.services.prompt_builder import build_prompt

from conftest import SAMPLE_TRANSCRIPT, ScriptedClient, make_completion

PRIMARY_DECISION = ModelDecision(PRIMARY, "default", 0.5)
FALLBACK_DECISION = ModelDecision(FALLBACK, "style_optimization", 0.7)


@pytest.fixture
def package():
    return build_prompt(SAMPLE_TRANSCRIPT, style="executive")


@pytest.fixture
def engine():
    return FallbackDecisionEngine(
        FallbackConfig(max_retries=3, retry_delay_ms=200, backoff_multiplier=2.0)
    )


@pytest.fixture
def stats():
    return FallbackStatistics(latency_window=10)


def _orchestrator(client, engine, stats, sleep):
    return FallbackOrchestrator(client, engine, stats, sleep=sleep)


@pytest.mark.asyncio
async def test_first_attempt_success(package, engine, stats, recording_sleep):
    client = ScriptedClient(make_completion())

    result = await _orchestrator(client, engine, stats, recording_sleep).run(
        package, PRIMARY_DECISION
    )

    assert result.model_role == PRIMARY
    assert result.attempt_count == 1
    assert result.fallback_triggered is False
    assert client.calls[0]["model_id"] == settings.primary_model.model_id
    assert recording_sleep.delays == []
    assert stats.snapshot().per_model["primary"].successes == 1


@pytest.mark.asyncio
async def test_primary_unavailable_switches_to_fallback(package, engine, stats, recording_sleep):
    client = ScriptedClient(
        ServiceUnavailableError("503 from primary"),
        make_completion(model_id=settings.fallback_model.model_id),
    )

    result = await _orchestrator(client, engine, stats, recording_sleep).run(
        package, PRIMARY_DECISION
    )

    assert result.model_role == FALLBACK
    assert result.attempt_count == 2
    assert result.fallback_triggered is True
    assert [call["model_role"] for call in client.calls] == [PRIMARY, FALLBACK]
    assert client.calls[1]["model_id"] == settings.fallback_model.model_id
    assert recording_sleep.delays == []
    assert [attempt.success for attempt in result.attempts] == [False, True]
    assert result.attempts[0].error_kind == "SERVICE_UNAVAILABLE"

    snapshot = stats.snapshot()
    assert snapshot.fallback_switches == 1
    assert snapshot.total_retries == 1
    assert snapshot.per_model["primary"].failures == 1
    assert snapshot.per_model["fallback"].successes == 1


@pytest.mark.asyncio
async def test_attempts_never_exceed_max_retries(package, engine, stats, recording_sleep):
    client = ScriptedClient(RateLimitExceededError("throttled"))

    with pytest.raises(FallbackExhaustedError) as excinfo:
        await _orchestrator(client, engine, stats, recording_sleep).run(
            package, PRIMARY_DECISION
        )

    assert len(client.calls) == engine.config.max_retries
    assert excinfo.value.attempts == engine.config.max_retries
    assert isinstance(excinfo.value.last_error, RateLimitExceededError)
    assert [call["model_role"] for call in client.calls] == [PRIMARY, FALLBACK, FALLBACK]
    # The switch itself is immediate; only the retry on fallback backs off.
    assert recording_sleep.delays == [engine.retry_delay(2)]
    assert stats.snapshot().fallback_switches == 1


@pytest.mark.asyncio
async def test_non_retryable_error_stops_after_one_attempt(package, engine, stats, recording_sleep):
    client = ScriptedClient(AuthenticationError("access denied"), make_completion())

    with pytest.raises(AuthenticationError):
        await _orchestrator(client, engine, stats, recording_sleep).run(
            package, PRIMARY_DECISION
        )

    assert len(client.calls) == 1
    assert recording_sleep.delays == []
    assert stats.snapshot().fallback_switches == 0


@pytest.mark.asyncio
async def test_fallback_decision_retries_with_exponential_backoff(
    package, engine, stats, recording_sleep
):
    client = ScriptedClient(
        ServiceUnavailableError("busy"),
        ServiceUnavailableError("busy"),
        make_completion(),
    )

    result = await _orchestrator(client, engine, stats, recording_sleep).run(
        package, FALLBACK_DECISION
    )

    assert result.model_role == FALLBACK
    assert result.attempt_count == 3
    assert result.fallback_triggered is False
    assert {call["model_role"] for call in client.calls} == {FALLBACK}
    assert recording_sleep.delays == [0.2, 0.4]
    assert stats.snapshot().fallback_switches == 0


@pytest.mark.asyncio
async def test_single_attempt_budget_never_switches(package, stats, recording_sleep):
    engine = FallbackDecisionEngine(FallbackConfig(max_retries=1))
    client = ScriptedClient(ServiceUnavailableError("busy"))

    with pytest.raises(FallbackExhaustedError):
        await _orchestrator(client, engine, stats, recording_sleep).run(
            package, PRIMARY_DECISION
        )

    assert len(client.calls) == 1
    assert stats.snapshot().fallback_switches == 0


@pytest.mark.asyncio
async def test_cancelled_before_start_makes_no_calls(package, engine, stats, recording_sleep):
    client = ScriptedClient(make_completion())
    token = CancellationToken()
    token.cancel()

    with pytest.raises(GenerationCancelledError):
        await _orchestrator(client, engine, stats, recording_sleep).run(
            package, PRIMARY_DECISION, cancel_token=token
        )

    assert client.calls == []


@pytest.mark.asyncio
async def test_deadline_aborts_in_flight_call(package, engine, stats):
    async def hang():
        await asyncio.sleep(30)
        return make_completion()

    client = ScriptedClient(hang)
    token = CancellationToken(timeout=0.05)

    with pytest.raises(GenerationCancelledError):
        await asyncio.wait_for(
            FallbackOrchestrator(client, engine, stats).run(
                package, PRIMARY_DECISION, cancel_token=token
            ),
            timeout=5,
        )

    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_cancel_during_backoff(package, stats):
    engine = FallbackDecisionEngine(FallbackConfig(max_retries=3, retry_delay_ms=30_000))
    client = ScriptedClient(ServiceUnavailableError("busy"))
    token = CancellationToken()

    async def cancel_soon():
        await asyncio.sleep(0.05)
        token.cancel()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(GenerationCancelledError):
        await asyncio.wait_for(
            FallbackOrchestrator(client, engine, stats).run(
                package, FALLBACK_DECISION, cancel_token=token
            ),
            timeout=5,
        )
    await canceller

    assert len(client.calls) == 1
