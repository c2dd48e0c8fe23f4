"""Model selection between the primary and fallback completion backends.

``FallbackDecisionEngine.select_model`` is a pure function of its
``DecisionContext``: the same context always yields the same decision. The
strategies are plain data in ``STRATEGIES``; adding one means adding a table
entry, not touching the decision order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from app.config.settings import FallbackConfig, settings
from app.services.errors import CompletionError
from app.services.llm_client import classify_error

logger = logging.getLogger(__name__)

PRIMARY = "primary"
FALLBACK = "fallback"
MODEL_ROLES = (PRIMARY, FALLBACK)

_ALL_STYLES = ("executive", "action-items", "technical", "detailed")


@dataclass(frozen=True)
class FallbackStrategy:
    description: str
    use_primary_for: tuple[str, ...] = ()
    use_fallback_for: tuple[str, ...] = ()
    consider_cost: bool = False
    consider_latency: bool = False
    consider_quality: bool = False


STRATEGIES: dict[str, FallbackStrategy] = {
    "smart": FallbackStrategy(
        description="Intelligent selection based on content and requirements",
        use_primary_for=("technical", "detailed"),
        consider_cost=True,
        consider_latency=True,
        consider_quality=True,
    ),
    "cost": FallbackStrategy(
        description="Prioritize cost savings",
        use_fallback_for=_ALL_STYLES,
        consider_cost=True,
    ),
    "speed": FallbackStrategy(
        description="Prioritize response time",
        use_fallback_for=_ALL_STYLES,
        consider_latency=True,
    ),
    "quality": FallbackStrategy(
        description="Prioritize output quality",
        use_primary_for=_ALL_STYLES,
        consider_quality=True,
    ),
}


@dataclass(frozen=True)
class SessionOutcome:
    """One prior generation in the caller's session."""

    model_role: str
    succeeded: bool
    processing_time_ms: float = 0.0


@dataclass(frozen=True)
class DecisionContext:
    style: str
    estimated_tokens: int
    estimated_cost: float
    urgency: str = "normal"
    user_preference: str | None = None
    session_history: tuple[SessionOutcome, ...] = ()


@dataclass(frozen=True)
class ModelDecision:
    """Chosen model with an advisory confidence score (not a probability)."""

    model: str
    reason: str
    confidence: float
    fallback_reasons: tuple[str, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "reason": self.reason,
            "confidence": self.confidence,
            "fallback_reasons": list(self.fallback_reasons),
        }


@dataclass(frozen=True)
class HistoryAnalysis:
    suggest_fallback: bool
    fallback_success_rate: float
    primary_failure_rate: float
    avg_fallback_time_ms: float
    avg_primary_time_ms: float


# Canned contexts used by the diagnostics endpoint.
DRY_RUN_SCENARIOS: tuple[tuple[str, DecisionContext], ...] = (
    (
        "High Cost Scenario",
        DecisionContext(style="detailed", estimated_tokens=25_000, estimated_cost=0.08),
    ),
    (
        "High Urgency Scenario",
        DecisionContext(
            style="executive", estimated_tokens=5_000, estimated_cost=0.01, urgency="high"
        ),
    ),
    (
        "Simple Summary Scenario",
        DecisionContext(style="action-items", estimated_tokens=3_000, estimated_cost=0.005),
    ),
    (
        "Complex Technical Scenario",
        DecisionContext(style="technical", estimated_tokens=45_000, estimated_cost=0.12),
    ),
)


class FallbackDecisionEngine:
    """Decide which model serves a request and how failures are retried."""

    def __init__(
        self,
        config: FallbackConfig | None = None,
        strategies: dict[str, FallbackStrategy] | None = None,
    ) -> None:
        self.config = config or settings.fallback
        self.strategies = strategies or STRATEGIES
        if self.config.strategy not in self.strategies:
            raise ValueError(f"Unknown fallback strategy: {self.config.strategy!r}")
        self.strategy_name = self.config.strategy
        self.strategy = self.strategies[self.strategy_name]

    def select_model(self, context: DecisionContext) -> ModelDecision:
        config = self.config
        strategy = self.strategy

        if context.user_preference in MODEL_ROLES:
            return ModelDecision(context.user_preference, "user_preference", 1.0)

        if context.estimated_tokens > config.complex_summary_tokens:
            return ModelDecision(PRIMARY, "complex_content", 0.9)

        if context.style in strategy.use_primary_for:
            return ModelDecision(PRIMARY, "strategy_primary_required", 0.9)
        if context.style in strategy.use_fallback_for:
            return ModelDecision(FALLBACK, "strategy_fallback_suitable", 0.8)

        model, reason, confidence = PRIMARY, "default", 0.5
        reasons: list[str] = []

        if strategy.consider_cost and context.estimated_cost > config.max_primary_cost:
            reasons.append("cost_threshold_exceeded")
            model, reason, confidence = FALLBACK, "cost_optimization", 0.8

        if context.style in config.fallback_preferred_styles:
            reasons.append("style_suitable_for_fallback")
            if model == PRIMARY:
                model, reason, confidence = FALLBACK, "style_optimization", 0.7

        if context.urgency == "high" and strategy.consider_latency:
            reasons.append("high_urgency")
            model, reason, confidence = FALLBACK, "latency_optimization", 0.8

        analysis = self.analyze_session_history(context.session_history)
        if analysis is not None and analysis.suggest_fallback:
            reasons.append("session_history")
            model, reason = FALLBACK, "historical_performance"
            confidence = min(confidence + 0.2, 1.0)

        return ModelDecision(model, reason, round(confidence, 4), tuple(reasons))

    def analyze_session_history(
        self, history: Sequence[SessionOutcome]
    ) -> HistoryAnalysis | None:
        """Summarize the last few outcomes; ``None`` when there are too few."""

        if len(history) < self.config.history_min_samples:
            return None

        recent = list(history)[-self.config.history_window:]
        total = len(recent)
        fallback_successes = primary_failures = 0
        fallback_time = primary_time = 0.0
        for outcome in recent:
            if outcome.model_role == FALLBACK:
                fallback_successes += int(outcome.succeeded)
                fallback_time += outcome.processing_time_ms
            else:
                primary_failures += int(not outcome.succeeded)
                primary_time += outcome.processing_time_ms

        fallback_success_rate = fallback_successes / total
        primary_failure_rate = primary_failures / total
        avg_primary_time = primary_time / total
        suggest = fallback_success_rate > 0.8 and (
            primary_failure_rate > 0.3
            or avg_primary_time > self.config.max_primary_latency_ms
        )
        return HistoryAnalysis(
            suggest_fallback=suggest,
            fallback_success_rate=fallback_success_rate,
            primary_failure_rate=primary_failure_rate,
            avg_fallback_time_ms=fallback_time / total,
            avg_primary_time_ms=avg_primary_time,
        )

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, CompletionError):
            code = error.kind.value
        else:
            code = classify_error(error).value
        return code in self.config.retryable_errors

    def retry_delay(self, attempt: int) -> float:
        """Backoff delay in seconds before retry number ``attempt``."""

        delay_ms = self.config.retry_delay_ms * (
            self.config.backoff_multiplier ** max(attempt - 1, 0)
        )
        return min(delay_ms, self.config.max_retry_delay_ms) / 1000

    def config_summary(self) -> dict[str, Any]:
        config = self.config
        return {
            "strategy": self.strategy_name,
            "strategy_description": self.strategy.description,
            "cost_thresholds": {
                "max_primary_cost": config.max_primary_cost,
                "max_fallback_cost": config.max_fallback_cost,
            },
            "latency_thresholds": {
                "max_primary_latency_ms": config.max_primary_latency_ms,
                "max_fallback_latency_ms": config.max_fallback_latency_ms,
            },
            "token_thresholds": {
                "large_summary_tokens": config.large_summary_tokens,
                "complex_summary_tokens": config.complex_summary_tokens,
            },
            "retry_config": {
                "max_retries": config.max_retries,
                "retry_delay_ms": config.retry_delay_ms,
                "backoff_multiplier": config.backoff_multiplier,
                "max_retry_delay_ms": config.max_retry_delay_ms,
                "retryable_errors": list(config.retryable_errors),
            },
            "fallback_preferred_styles": list(config.fallback_preferred_styles),
        }

    def dry_run(
        self,
        scenarios: Iterable[tuple[str, DecisionContext]] = DRY_RUN_SCENARIOS,
    ) -> list[dict[str, Any]]:
        """Run the decision algorithm over canned contexts for diagnostics."""

        results = []
        for name, context in scenarios:
            decision = self.select_model(context)
            results.append(
                {
                    "scenario": name,
                    "context": {
                        "style": context.style,
                        "estimated_tokens": context.estimated_tokens,
                        "estimated_cost": context.estimated_cost,
                        "urgency": context.urgency,
                    },
                    "decision": decision.as_dict(),
                }
            )
        return results


__all__ = [
    "PRIMARY",
    "FALLBACK",
    "MODEL_ROLES",
    "FallbackStrategy",
    "STRATEGIES",
    "SessionOutcome",
    "DecisionContext",
    "ModelDecision",
    "HistoryAnalysis",
    "DRY_RUN_SCENARIOS",
    "FallbackDecisionEngine",
]
