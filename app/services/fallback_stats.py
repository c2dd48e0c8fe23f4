"""Process-wide attempt counters shared by every orchestration run.

One ``FallbackStatistics`` instance is created by the service layer and passed
into the orchestrator. All mutation happens under a single lock; readers get
an immutable snapshot. Counters only reset through ``reset()``.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any

from app.config.settings import settings

_ROLES = ("primary", "fallback")


@dataclass(frozen=True)
class ModelStats:
    attempts: int
    successes: int
    failures: int
    success_rate: float
    avg_latency_ms: float


@dataclass(frozen=True)
class StatisticsSnapshot:
    per_model: dict[str, ModelStats]
    total_attempts: int
    total_retries: int
    fallback_switches: int
    fallback_utilization_rate: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "per_model": {
                role: {
                    "attempts": stats.attempts,
                    "successes": stats.successes,
                    "failures": stats.failures,
                    "success_rate": stats.success_rate,
                    "avg_latency_ms": stats.avg_latency_ms,
                }
                for role, stats in self.per_model.items()
            },
            "total_attempts": self.total_attempts,
            "total_retries": self.total_retries,
            "fallback_switches": self.fallback_switches,
            "fallback_utilization_rate": self.fallback_utilization_rate,
        }


class FallbackStatistics:
    """Lock-protected per-model attempt/success counters with rolling latency."""

    def __init__(self, latency_window: int | None = None) -> None:
        self._latency_window = latency_window or settings.fallback.latency_window
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._attempts = {role: 0 for role in _ROLES}
        self._successes = {role: 0 for role in _ROLES}
        self._latencies = {role: deque(maxlen=self._latency_window) for role in _ROLES}
        self._total_retries = 0
        self._fallback_switches = 0

    def record_attempt(self, model_role: str, *, success: bool, latency_ms: float) -> None:
        with self._lock:
            self._attempts[model_role] += 1
            if success:
                self._successes[model_role] += 1
                self._latencies[model_role].append(latency_ms)

    def record_switch(self) -> None:
        with self._lock:
            self._fallback_switches += 1

    def record_run(self, attempt_count: int) -> None:
        """Account the retries of one finished run (attempts beyond the first)."""

        with self._lock:
            self._total_retries += max(attempt_count - 1, 0)

    def snapshot(self) -> StatisticsSnapshot:
        with self._lock:
            per_model = {}
            for role in _ROLES:
                attempts = self._attempts[role]
                successes = self._successes[role]
                latencies = self._latencies[role]
                per_model[role] = ModelStats(
                    attempts=attempts,
                    successes=successes,
                    failures=attempts - successes,
                    success_rate=round(successes / attempts, 4) if attempts else 0.0,
                    avg_latency_ms=(
                        round(sum(latencies) / len(latencies), 2) if latencies else 0.0
                    ),
                )
            total = sum(self._attempts.values())
            return StatisticsSnapshot(
                per_model=per_model,
                total_attempts=total,
                total_retries=self._total_retries,
                fallback_switches=self._fallback_switches,
                fallback_utilization_rate=(
                    round(self._attempts["fallback"] / total, 4) if total else 0.0
                ),
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()


__all__ = ["FallbackStatistics", "ModelStats", "StatisticsSnapshot"]
