"""Process-wide attempt counters."""

from __future__ import annotations

import threading

from app.services.fallback_stats import FallbackStatistics


def test_snapshot_aggregates_attempts_and_switches():
    stats = FallbackStatistics(latency_window=3)
    stats.record_attempt("primary", success=False, latency_ms=500)
    stats.record_switch()
    stats.record_attempt("fallback", success=True, latency_ms=200)
    stats.record_run(2)

    snapshot = stats.snapshot()

    assert snapshot.total_attempts == 2
    assert snapshot.total_retries == 1
    assert snapshot.fallback_switches == 1
    assert snapshot.fallback_utilization_rate == 0.5
    assert snapshot.per_model["primary"].failures == 1
    assert snapshot.per_model["fallback"].avg_latency_ms == 200


def test_latency_average_uses_rolling_window():
    stats = FallbackStatistics(latency_window=2)
    for latency in (100, 200, 400):
        stats.record_attempt("primary", success=True, latency_ms=latency)

    assert stats.snapshot().per_model["primary"].avg_latency_ms == 300


def test_reset_clears_everything():
    stats = FallbackStatistics()
    stats.record_attempt("primary", success=True, latency_ms=10)
    stats.record_switch()

    stats.reset()

    assert stats.snapshot().as_dict()["total_attempts"] == 0
    assert stats.snapshot().fallback_switches == 0


def test_concurrent_updates_are_not_lost():
    stats = FallbackStatistics()

    def work():
        for _ in range(500):
            stats.record_attempt("fallback", success=True, latency_ms=1)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert stats.snapshot().per_model["fallback"].attempts == 2000
