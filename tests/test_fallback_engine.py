"""Model selection rules, strategies, history analysis and retry policy."""

from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from app.config.settings import FallbackConfig
from app.pipelines.summary.context import build_decision_context
from app.pipelines.summary.types import GenerationOptions
from app.services.errors import (
    AuthenticationError,
    RateLimitExceededError,
    ServiceUnavailableError,
)
from app.services.fallback_engine import (
    FALLBACK,
    PRIMARY,
    DecisionContext,
    FallbackDecisionEngine,
    SessionOutcome,
)
from app.services.prompt_builder import build_prompt


def _context(**overrides) -> DecisionContext:
    values = {"style": "executive", "estimated_tokens": 2_000, "estimated_cost": 0.01}
    values.update(overrides)
    return DecisionContext(**values)


@pytest.fixture
def engine() -> FallbackDecisionEngine:
    return FallbackDecisionEngine(FallbackConfig(strategy="smart"))


def test_same_context_always_yields_same_decision(engine):
    context = _context(style="action-items", urgency="high")

    decisions = {engine.select_model(context) for _ in range(5)}

    assert len(decisions) == 1


def test_user_preference_wins_over_everything(engine):
    decision = engine.select_model(
        _context(style="technical", estimated_tokens=50_000, user_preference=FALLBACK)
    )

    assert decision.model == FALLBACK
    assert decision.reason == "user_preference"
    assert decision.confidence == 1.0


def test_complex_content_goes_to_primary_regardless_of_cost(engine):
    decision = engine.select_model(
        _context(style="action-items", estimated_tokens=15_000, estimated_cost=0.5, urgency="high")
    )

    assert decision.model == PRIMARY
    assert decision.reason == "complex_content"
    assert decision.confidence == 0.9


@pytest.mark.parametrize("style", ["technical", "detailed"])
def test_smart_strategy_requires_primary_for_deep_styles(engine, style):
    decision = engine.select_model(_context(style=style, estimated_cost=1.0))

    assert decision.model == PRIMARY
    assert decision.reason == "strategy_primary_required"


def test_cost_threshold_moves_to_fallback(engine):
    decision = engine.select_model(_context(estimated_cost=0.08))

    assert decision.model == FALLBACK
    assert decision.reason == "cost_optimization"
    assert "cost_threshold_exceeded" in decision.fallback_reasons


def test_style_preference_moves_to_fallback(engine):
    decision = engine.select_model(_context(style="action-items"))

    assert decision.model == FALLBACK
    assert decision.reason == "style_optimization"
    assert decision.confidence == 0.7


def test_high_urgency_prefers_latency(engine):
    decision = engine.select_model(_context(urgency="high"))

    assert decision.model == FALLBACK
    assert decision.reason == "latency_optimization"
    assert decision.confidence == 0.8


def test_default_is_primary(engine):
    decision = engine.select_model(_context())

    assert decision.model == PRIMARY
    assert decision.reason == "default"
    assert decision.confidence == 0.5
    assert decision.fallback_reasons == ()


def test_quality_strategy_keeps_primary_for_every_style():
    engine = FallbackDecisionEngine(FallbackConfig(strategy="quality"))

    for style in ("executive", "action-items", "technical", "detailed"):
        assert engine.select_model(_context(style=style, urgency="high")).model == PRIMARY


@pytest.mark.parametrize("strategy", ["cost", "speed"])
def test_cost_and_speed_strategies_use_fallback(strategy):
    engine = FallbackDecisionEngine(FallbackConfig(strategy=strategy))

    decision = engine.select_model(_context(style="technical"))

    assert decision.model == FALLBACK
    assert decision.reason == "strategy_fallback_suitable"


def test_custom_style_falls_through_to_general_rules():
    engine = FallbackDecisionEngine(FallbackConfig(strategy="cost"))

    decision = engine.select_model(_context(style="custom", estimated_cost=0.2))

    assert decision.model == FALLBACK
    assert decision.reason == "cost_optimization"


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError):
        FallbackDecisionEngine(FallbackConfig(strategy="cheapest"))


def test_history_needs_minimum_samples(engine):
    history = (SessionOutcome(FALLBACK, True), SessionOutcome(PRIMARY, False))

    assert engine.analyze_session_history(history) is None


def test_history_window_below_threshold_does_not_suggest(engine):
    history = (
        SessionOutcome(PRIMARY, False, 40_000),
        SessionOutcome(FALLBACK, True, 4_000),
        SessionOutcome(FALLBACK, True, 4_000),
        SessionOutcome(FALLBACK, True, 4_000),
        SessionOutcome(FALLBACK, True, 4_000),
    )

    analysis = engine.analyze_session_history(history)

    assert analysis is not None
    assert analysis.fallback_success_rate == pytest.approx(0.8)
    assert analysis.primary_failure_rate == pytest.approx(0.2)
    assert analysis.suggest_fallback is False


def test_history_only_considers_latest_window(engine):
    old_failures = tuple(SessionOutcome(PRIMARY, False, 1_000) for _ in range(5))
    recent = tuple(SessionOutcome(PRIMARY, True, 1_000) for _ in range(5))

    analysis = engine.analyze_session_history(old_failures + recent)

    assert analysis.primary_failure_rate == 0.0


def test_slow_primary_history_moves_to_fallback():
    engine = FallbackDecisionEngine(
        FallbackConfig(strategy="smart", history_window=10, history_min_samples=3)
    )
    history = (SessionOutcome(PRIMARY, True, 310_000),) + tuple(
        SessionOutcome(FALLBACK, True, 2_000) for _ in range(9)
    )

    analysis = engine.analyze_session_history(history)
    decision = engine.select_model(_context(session_history=history))

    assert analysis.suggest_fallback is True
    assert analysis.avg_primary_time_ms == pytest.approx(31_000)
    assert decision.model == FALLBACK
    assert decision.reason == "historical_performance"
    assert decision.confidence == pytest.approx(0.7)
    assert "session_history" in decision.fallback_reasons


def test_retryable_classification(engine):
    assert engine.is_retryable(RateLimitExceededError("slow down"))
    assert engine.is_retryable(ServiceUnavailableError("503"))
    assert not engine.is_retryable(AuthenticationError("denied"))
    throttled = ClientError(
        {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}}, "Converse"
    )
    assert engine.is_retryable(throttled)


def test_retry_delay_grows_and_is_capped():
    engine = FallbackDecisionEngine(
        FallbackConfig(retry_delay_ms=1000, backoff_multiplier=2.0, max_retry_delay_ms=3000)
    )

    assert engine.retry_delay(1) == 1.0
    assert engine.retry_delay(2) == 2.0
    assert engine.retry_delay(3) == 3.0
    assert engine.retry_delay(10) == 3.0


def test_dry_run_covers_canned_scenarios(engine):
    results = {result["scenario"]: result["decision"] for result in engine.dry_run()}

    assert results["High Cost Scenario"]["model"] == PRIMARY
    assert results["High Urgency Scenario"]["model"] == FALLBACK
    assert results["Simple Summary Scenario"]["model"] == FALLBACK
    assert results["Complex Technical Scenario"]["reason"] == "complex_content"


def test_config_summary_exposes_thresholds(engine):
    summary = engine.config_summary()

    assert summary["strategy"] == "smart"
    assert summary["retry_config"]["max_retries"] == engine.config.max_retries
    assert "RATE_LIMIT_EXCEEDED" in summary["retry_config"]["retryable_errors"]


def _long_technical_transcript(length: int = 45_000) -> str:
    lines = [
        "Dana: The ingest service drops requests when the Kafka consumer lag passes 30s.",
        "Eli: We should shard the partition map and move retries behind the queue.",
        "Dana: Agreed, and the schema migration has to land before the cache rewrite.",
    ]
    text = ""
    while len(text) < length:
        text += "\n".join(lines) + "\n"
    return text[:length]


def test_long_technical_transcript_goes_to_primary(engine):
    transcript = _long_technical_transcript()
    options = GenerationOptions(style="technical")

    package = build_prompt(transcript, style="technical")
    decision = engine.select_model(build_decision_context(package, options))

    assert len(transcript) == 45_000
    assert package.estimated_input_tokens > engine.config.complex_summary_tokens
    assert decision.model == PRIMARY
    assert decision.reason == "complex_content"


def test_short_standup_for_executives_goes_to_primary(engine):
    transcript = (
        "Alice: Yesterday I finished the billing export.\n"
        "Bob: Today I am pairing with Carol on the login bug.\n"
        "Carol: No blockers, the release branch is green.\n"
    )
    options = GenerationOptions(style="executive")

    package = build_prompt(transcript, style="executive")
    decision = engine.select_model(build_decision_context(package, options))

    assert decision.model == PRIMARY
    assert "cost_threshold_exceeded" not in decision.fallback_reasons
