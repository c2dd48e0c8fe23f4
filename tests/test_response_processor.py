"""Response post-processing: validation, extraction, scoring and formats."""

from __future__ import annotations

import time

import pytest

from app.config.settings import settings
from app.services.extractors import ExtractorSet
from app.services.formats import render_text, strip_inline, strip_markup
from app.services.response_processor import (
    ProcessingContext,
    ResponseProcessor,
    grade_for,
    normalize_text,
)

from conftest import SAMPLE_SUMMARY, make_completion


@pytest.fixture
def processor() -> ResponseProcessor:
    return ResponseProcessor()


def _context(**overrides) -> ProcessingContext:
    values = {"style": "executive", "completion": make_completion()}
    values.update(overrides)
    return ProcessingContext(**values)


@pytest.mark.parametrize("raw", [None, "", "   \n\t  ", 42])
def test_invalid_input_degrades_instead_of_raising(processor, raw):
    result = processor.process(raw, _context())

    assert result.success is False
    assert result.status == "error"
    assert result.quality.grade == "F"
    assert result.quality.issues
    assert result.error


def test_refusal_is_reported_as_invalid(processor):
    result = processor.process(
        "I cannot summarize this transcript because it appears to be incomplete or garbled.",
        _context(),
    )

    assert result.success is False
    assert any("refusal" in issue for issue in result.quality.issues)


def test_very_long_content_is_only_a_warning(processor):
    raw = "## Meeting Summary\n" + "The team reviewed progress. " * 2_200

    result = processor.process(raw, _context())

    assert len(raw) > settings.response.max_length
    assert result.success is True
    assert any("very long" in warning for warning in result.validation.warnings)


def test_structure_is_extracted(processor):
    result = processor.process(SAMPLE_SUMMARY, _context())

    structure = result.structure
    assert [heading.text for heading in structure.headings] == [
        "Executive Summary",
        "Key Decisions",
        "Next Steps for Leadership",
    ]

    owners = {item.owner: item for item in structure.action_items if item.owner}
    assert owners["Alice Johnson"].task == "Finalize the vendor contract"
    assert owners["Alice Johnson"].due == "Friday"
    assert "Bob Smith" in owners
    assert any(
        item.task.startswith("Send the updated roadmap") for item in structure.action_items
    )

    decision_texts = [decision.text for decision in structure.decisions]
    assert "The team decided to ship the mobile app on October 15." in decision_texts
    assert "Budget for the beta program was approved." in decision_texts
    assert any("onboarding" in insight.text for insight in structure.insights)
    assert "Alice Johnson" in result.analysis.entities.action_owners


def test_quality_is_scored_and_graded(processor):
    result = processor.process(SAMPLE_SUMMARY, _context())

    assert result.success is True
    assert 0.0 <= result.quality.score <= 1.0
    assert result.quality.grade == grade_for(result.quality.score)
    assert 1 <= result.quality.rating <= 5
    assert set(result.quality.breakdown) == {
        "readability",
        "completeness",
        "structure",
        "actionability",
        "coverage",
    }


def test_action_items_style_without_actions_is_flagged(processor):
    raw = (
        "## Meeting Overview\n"
        "The group talked through the quarterly numbers and general market conditions "
        "without settling anything specific."
    )

    result = processor.process(raw, _context(style="action-items"))

    assert "Missing action items for action-items style" in result.quality.issues


@pytest.mark.parametrize(
    "raw",
    [
        SAMPLE_SUMMARY,
        SAMPLE_SUMMARY + "\n- ****a**** decided on the plan for the team\n",
        SAMPLE_SUMMARY + "\n- ***Carol*** owns *the* rollout **plan\n",
    ],
)
def test_text_and_markdown_carry_the_same_words(processor, raw):
    result = processor.process(raw, _context())

    text_words = strip_markup(result.formats["text"]["content"]).split()
    markdown_words = strip_markup(result.formats["markdown"]["content"]).split()
    assert text_words == markdown_words
    assert "**" not in result.formats["text"]["content"]
    assert result.formats["markdown"]["content"].startswith("## Executive Summary")


def test_label_headings_render_consistently(processor):
    raw = (
        "Meeting summary for the infrastructure sync.\n\n"
        "Action Items:\n"
        "- Review the database migration plan\n"
        "- Schedule the load test for next week\n"
    )

    result = processor.process(raw, _context())

    assert "Action Items" in [heading.text for heading in result.structure.headings]
    assert "## Action Items" in result.formats["markdown"]["content"]
    assert strip_markup(result.formats["text"]["content"]).split() == strip_markup(
        result.formats["markdown"]["content"]
    ).split()


def test_email_format_appends_action_items(processor):
    result = processor.process(SAMPLE_SUMMARY, _context())

    email = result.formats["email"]
    assert email["subject"].startswith("Executive Summary - executive Summary")
    assert "--- ACTION ITEMS ---" in email["body"]
    assert "(Owner: Alice Johnson)" in email["body"]


def test_cost_uses_serving_model_rates(processor):
    completion = make_completion(model_id=settings.fallback_model.model_id)

    result = processor.process(
        SAMPLE_SUMMARY,
        _context(completion=completion, model_role="fallback", fallback_triggered=True),
    )

    metadata = result.metadata
    assert metadata.model.role == "fallback"
    assert metadata.cost.total == pytest.approx(settings.fallback_model.cost(1200, 300))
    assert metadata.processing.fallback_triggered is True
    assert metadata.usage.total_tokens == 1500


def test_normalize_text_repairs_encoding_and_bullets():
    raw = "Team’s update\r\n* first item\r\n\r\n\r\n\r\n• second item\x07"

    normalized = normalize_text(raw)

    assert normalized == "Team's update\n- first item\n\n- second item"


def test_normalize_text_fixes_mojibake():
    assert normalize_text("Itâ€™s done") == "It's done"


@pytest.mark.parametrize(
    ("score", "grade"),
    [(0.95, "A"), (0.85, "B"), (0.75, "C"), (0.65, "D"), (0.2, "F")],
)
def test_grade_boundaries(score, grade):
    assert grade_for(score) == grade


@pytest.mark.parametrize(
    "raw",
    [
        "## Meeting Summary\n" + "*a " * 20_000,
        "## Meeting Summary\n" + "[a " * 20_000,
        "## Meeting Summary\nThe team met." + " " * 60_000 + "x\n",
    ],
)
def test_unbalanced_markup_on_one_long_line_stays_fast(processor, raw):
    started = time.perf_counter()
    result = processor.process(raw, _context())
    elapsed = time.perf_counter() - started

    assert result.status in ("completed", "error")
    assert elapsed < 5.0


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("****a**** decided", "a decided"),
        ("**Alice Johnson**: ship it", "Alice Johnson: ship it"),
        ("*italic* and `code` and [link](http://x)", "italic and code and link"),
        ("keep 2 * 3 and a*b", "keep 2 * 3 and a*b"),
        ("[[nested](a)](b)", "nested"),
    ],
)
def test_strip_inline_is_idempotent(line, expected):
    stripped = strip_inline(line)

    assert stripped == expected
    assert strip_inline(stripped) == stripped


def test_rendered_text_has_no_emphasis_markers(processor):
    raw = SAMPLE_SUMMARY + "\n- ****a**** decided on the plan for the team\n"

    result = processor.process(raw, _context())

    assert render_text(result.normalized, result.structure) == result.formats["text"]["content"]
    assert "*" not in result.formats["text"]["content"]


class _BrokenSentiment:
    def analyze(self, content):
        raise RuntimeError("sentiment model unavailable")


def test_analysis_failure_degrades_to_failing_grade():
    processor = ResponseProcessor(extractors=ExtractorSet(sentiment=_BrokenSentiment()))

    result = processor.process(SAMPLE_SUMMARY, _context())

    assert result.success is False
    assert result.quality.grade == "F"
    assert any("sentiment model unavailable" in issue for issue in result.quality.issues)
