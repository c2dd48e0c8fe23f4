"""HTTP surface for summary generation and fallback diagnostics."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from app.config.settings import FallbackConfig
from app.main import app
from app.pipelines.summary.orchestrator import FallbackOrchestrator
from app.services.errors import AuthenticationError, RateLimitExceededError
from app.services.fallback_engine import FallbackDecisionEngine
from app.services.fallback_stats import FallbackStatistics
from app.services.summary_service import SummaryService, get_summary_service

from conftest import InMemorySummaryStore, RecordingSleep, ScriptedClient, make_completion


class Harness:
    def __init__(self) -> None:
        self.store = InMemorySummaryStore()
        self.client = ScriptedClient(make_completion())
        engine = FallbackDecisionEngine(FallbackConfig(retry_delay_ms=10))
        stats = FallbackStatistics(latency_window=10)
        self.service = SummaryService(
            self.store,
            self.client,
            engine=engine,
            stats=stats,
            orchestrator=FallbackOrchestrator(self.client, engine, stats, sleep=RecordingSleep()),
        )

    def script(self, *steps) -> None:
        self.client.steps = list(steps)


@pytest.fixture
def harness():
    harness = Harness()
    app.dependency_overrides[get_summary_service] = lambda: harness.service
    yield harness
    app.dependency_overrides.clear()


@pytest.fixture
def http() -> TestClient:
    return TestClient(app)


def test_generate_returns_processed_summary(harness, http):
    transcript_id = harness.store.add_transcript()

    response = http.post(
        "/summaries/generate",
        json={"transcript_id": transcript_id, "style": "executive"},
        headers={"X-Session-Token": "unknown-token"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["summary_id"] in harness.store.summaries
    assert set(payload["formats"]) == {"ui", "api", "text", "markdown", "email"}
    assert payload["metadata"]["model"]["role"] == "primary"


def test_unknown_style_is_a_bad_request(harness, http):
    transcript_id = harness.store.add_transcript()

    response = http.post(
        "/summaries/generate", json={"transcript_id": transcript_id, "style": "sonnet"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["suggestions"]


def test_missing_transcript_is_not_found(harness, http):
    response = http.post("/summaries/generate", json={"transcript_id": "nope"})

    assert response.status_code == 404
    assert response.json()["code"] == "TRANSCRIPT_NOT_FOUND"


def test_unprocessed_transcript_conflicts(harness, http):
    transcript_id = harness.store.add_transcript(status="processing")

    response = http.post("/summaries/generate", json={"transcript_id": transcript_id})

    assert response.status_code == 409


def test_exhausted_retries_are_reported_without_internals(harness, http):
    transcript_id = harness.store.add_transcript()
    harness.script(RateLimitExceededError("ThrottlingException: account 1234 over quota"))

    response = http.post("/summaries/generate", json={"transcript_id": transcript_id})

    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "GENERATION_FAILED"
    assert "1234" not in response.text
    assert body["retryable"] is True


def test_non_retryable_upstream_error_is_bad_gateway(harness, http):
    transcript_id = harness.store.add_transcript()
    harness.script(AuthenticationError("bad credentials"))

    response = http.post("/summaries/generate", json={"transcript_id": transcript_id})

    assert response.status_code == 502
    assert response.json()["code"] == "AUTHENTICATION_ERROR"
    assert len(harness.client.calls) == 1


def test_edit_summary_round_trip(harness, http):
    transcript_id = harness.store.add_transcript()
    generated = http.post("/summaries/generate", json={"transcript_id": transcript_id}).json()

    response = http.put(
        f"/summaries/{generated['summary_id']}", json={"content": "Rewritten by hand"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "edited"
    assert body["content"] == "Rewritten by hand"
    assert body["edit_count"] == 1


def test_edit_unknown_summary_is_not_found(harness, http):
    response = http.put("/summaries/does-not-exist", json={"content": "x"})

    assert response.status_code == 404
    assert response.json()["code"] == "SUMMARY_NOT_FOUND"


def test_fallback_diagnostics_endpoints(harness, http):
    transcript_id = harness.store.add_transcript()
    http.post("/summaries/generate", json={"transcript_id": transcript_id})

    stats = http.get("/summaries/fallback/stats").json()
    assert stats["total_attempts"] == 1

    config = http.get("/summaries/fallback/config").json()
    assert config["strategy"] == harness.service.engine.strategy_name

    scenarios = http.get("/summaries/fallback/scenarios").json()
    assert [item["scenario"] for item in scenarios][0] == "High Cost Scenario"

    reset = http.post("/summaries/fallback/stats/reset").json()
    assert reset["data"]["total_attempts"] == 0


def test_health_and_metrics(http):
    assert http.get("/health").json()["status"] == "healthy"
    metrics = http.get("/metrics")
    assert metrics.status_code == 200
    assert "summary_fallback_switches_total" in metrics.text


def test_request_metrics_use_route_templates(harness, http):
    labels = {"method": "PUT", "route": "/summaries/{summary_id}", "status": "404"}
    before = REGISTRY.get_sample_value("http_requests_total", labels) or 0.0

    http.put("/summaries/abc-123", json={"content": "x"})

    assert REGISTRY.get_sample_value("http_requests_total", labels) == before + 1
    assert 'route="/summaries/abc-123"' not in http.get("/metrics").text


def test_get_summary_lists_stored_formats(harness, http):
    transcript_id = harness.store.add_transcript()
    generated = http.post("/summaries/generate", json={"transcript_id": transcript_id}).json()

    response = http.get(f"/summaries/{generated['summary_id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["available_formats"] == ["api", "email", "markdown", "text", "ui"]
    assert body["quality_assessment"]["grade"] == generated["quality"]["grade"]
    assert "sentiment" in body["analysis"]


def test_summary_formats_are_served_by_media_type(harness, http):
    transcript_id = harness.store.add_transcript()
    generated = http.post("/summaries/generate", json={"transcript_id": transcript_id}).json()
    base = f"/summaries/{generated['summary_id']}/format"

    markdown = http.get(f"{base}/markdown")
    text = http.get(f"{base}/text")
    ui = http.get(f"{base}/ui")

    assert markdown.status_code == 200
    assert markdown.headers["content-type"].startswith("text/markdown")
    assert markdown.text == generated["formats"]["markdown"]["content"]
    assert text.headers["content-type"].startswith("text/plain")
    assert text.text == generated["formats"]["text"]["content"]
    assert ui.json() == {"format": "ui", "data": generated["formats"]["ui"]}


def test_unknown_summary_format_is_not_found(harness, http):
    transcript_id = harness.store.add_transcript()
    generated = http.post("/summaries/generate", json={"transcript_id": transcript_id}).json()

    response = http.get(f"/summaries/{generated['summary_id']}/format/pdf")
    missing = http.get("/summaries/does-not-exist")

    assert response.status_code == 404
    assert response.json()["code"] == "FORMAT_NOT_AVAILABLE"
    assert missing.status_code == 404
    assert missing.json()["code"] == "SUMMARY_NOT_FOUND"
