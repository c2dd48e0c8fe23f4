"""Validate, normalize, analyze and render model output.

``ResponseProcessor.process`` never raises. Invalid input (``None``, empty or
whitespace-only text, refusals) and any internal failure produce a degraded
``ProcessedSummary`` with an ``F`` grade and the reason in
``quality.issues``; a model response was already obtained, so processing
problems must not abort generation.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from app.config.settings import ResponseConfig, settings
from app.services.extractors import ExtractorSet
from app.services.formats import build_formats, strip_markup
from app.services.llm_client import CompletionResult
from app.services.response_contract import (
    Actionability,
    Completeness,
    ContentAnalysis,
    CostBreakdown,
    Coverage,
    Entities,
    ModelInfo,
    ProcessedSummary,
    ProcessingInfo,
    QualityAssessment,
    Readability,
    SummaryMetadata,
    SummaryStructure,
    TokenUsage,
    ValidationReport,
)

logger = logging.getLogger("app.services.summary_pipeline")

STYLE_REQUIREMENTS: dict[str, dict[str, Any]] = {
    "executive": {"sections": ("summary", "key", "decision", "next"), "length": (200, 800)},
    "action-items": {"sections": ("action", "task", "owner", "due"), "length": (150, 1000)},
    "technical": {"sections": ("technical", "implementation", "decision"), "length": (300, 1200)},
    "detailed": {"sections": ("discussion", "outcome", "next"), "length": (500, 2000)},
}

QUALITY_WEIGHTS = {
    "readability": 0.2,
    "completeness": 0.25,
    "structure": 0.2,
    "actionability": 0.2,
    "coverage": 0.15,
}

_REFUSAL_PATTERNS = (
    re.compile(r"^\s*(?:I cannot|I can't|I'm unable|I am unable)", re.IGNORECASE),
    re.compile(r"^\s*(?:As an AI|I am an AI)", re.IGNORECASE),
    re.compile(r"^\s*(?:Sorry, I cannot|I apologi[sz]e)", re.IGNORECASE),
    re.compile(r"\[(?:ERROR|FAILED)\]", re.IGNORECASE),
    re.compile(r"^\s*The transcript appears to be", re.IGNORECASE),
)
_PLACEHOLDERS = {"no content", "empty", "n/a", "none"}

# Mis-decoded UTF-8 punctuation, longest sequences first.
_MOJIBAKE = (
    ("â€™", "'"),
    ("â€˜", "'"),
    ("â€œ", '"'),
    ("â€\u009d", '"'),
    ("â€”", "\N{EM DASH}"),
    ("â€“", "\N{EN DASH}"),
    ("â€¦", "..."),
    ("â€", '"'),
    ("Â ", " "),
    ("Â", ""),
)
_TYPOGRAPHIC = str.maketrans(
    {
        "\N{NO-BREAK SPACE}": " ",
        "‘": "'",
        "’": "'",
        "“": '"',
        "”": '"',
    }
)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class ProcessingContext:
    """What the processor needs to know about the generation it scores."""

    style: str = "executive"
    completion: Optional[CompletionResult] = None
    model_role: str = "primary"
    fallback_triggered: bool = False
    attempt_count: int = 1
    initial_model: Optional[str] = None
    decision_reason: Optional[str] = None
    urgency: str = "normal"
    transcript_id: Optional[str] = None


def normalize_text(content: Optional[str]) -> str:
    """Fix mojibake, strip control characters, tidy whitespace and bullets."""

    if not content or not isinstance(content, str):
        return ""

    text = content
    for broken, fixed in _MOJIBAKE:
        text = text.replace(broken, fixed)
    text = text.translate(_TYPOGRAPHIC)

    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", "    ")
    text = _CONTROL_CHARS.sub("", text)
    text = "\n".join(line.rstrip(" ") for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"(?<=\S) {2,}", " ", text)
    text = text.strip()

    text = re.sub(r"([.!?])[ ]*\n[ ]*([a-z])", r"\1 \2", text)
    text = re.sub(r"^[ \t]*[-•*][ \t]+", "- ", text, flags=re.MULTILINE)
    return text


def count_syllables(word: str) -> int:
    word = re.sub(r"[^a-z]", "", word.lower())
    if len(word) <= 3:
        return 1
    count = len(re.findall(r"[aeiouy]+", word)) or 1
    if word.endswith("e"):
        count -= 1
    if word.endswith("le") and len(word) > 2:
        count += 1
    return max(1, count)


def calculate_readability(content: str) -> Readability:
    """Simplified Flesch reading ease, clamped to 0-100."""

    plain = strip_markup(content)
    sentences = [s for s in re.split(r"[.!?]+", plain) if s.strip()]
    words = plain.split()
    if not sentences or not words:
        return Readability()

    avg_sentence = len(words) / len(sentences)
    avg_syllables = sum(count_syllables(word) for word in words) / len(words)
    score = 206.835 - 1.015 * avg_sentence - 84.6 * avg_syllables
    if score >= 90:
        level = "very easy"
    elif score >= 80:
        level = "easy"
    elif score >= 70:
        level = "fairly easy"
    elif score >= 60:
        level = "standard"
    elif score >= 50:
        level = "fairly difficult"
    elif score >= 30:
        level = "difficult"
    else:
        level = "very difficult"
    return Readability(
        score=round(max(0.0, min(100.0, score)), 2),
        level=level,
        avg_sentence_length=round(avg_sentence, 2),
        avg_syllables_per_word=round(avg_syllables, 2),
    )


def assess_completeness(content: str, structure: SummaryStructure, style: str) -> Completeness:
    requirements = STYLE_REQUIREMENTS.get(style)
    if requirements is None:
        return Completeness(score=0.5)

    lowered = content.lower()
    heading_text = " ".join(heading.text.lower() for heading in structure.headings)
    present = [
        section
        for section in requirements["sections"]
        if section in lowered or section in heading_text
    ]
    missing = [section for section in requirements["sections"] if section not in present]
    return Completeness(
        score=round(len(present) / len(requirements["sections"]), 4),
        present=present,
        missing=missing,
    )


def assess_actionability(structure: SummaryStructure) -> Actionability:
    actions = len(structure.action_items)
    decisions = len(structure.decisions)
    total = actions + decisions
    if total >= 5:
        score = 1.0
    elif total >= 3:
        score = 0.8
    elif total >= 1:
        score = 0.6
    else:
        score = 0.3
    level = "high" if score >= 0.8 else "medium" if score >= 0.6 else "low"
    return Actionability(
        score=score, action_items=actions, decisions=decisions, total=total, level=level
    )


def assess_coverage(content: str, structure: SummaryStructure) -> Coverage:
    plain = strip_markup(content)
    first_line = plain.split("\n", 1)[0] if plain else ""
    has_introduction = bool(
        re.search(r"\b(?:meeting|summary|overview|context)\b", first_line, re.IGNORECASE)
    )
    has_conclusion = bool(
        re.search(r"\b(?:conclusion|next steps|action|follow[- ]?up)", plain, re.IGNORECASE)
    )
    has_structure = bool(
        structure.headings or structure.bullet_points or structure.numbered_items
    )
    score = 0.3 * has_introduction + 0.3 * has_conclusion + 0.4 * has_structure
    level = "comprehensive" if score >= 0.8 else "adequate" if score >= 0.5 else "limited"
    return Coverage(
        score=round(score, 2),
        has_introduction=has_introduction,
        has_conclusion=has_conclusion,
        has_structure=has_structure,
        level=level,
    )


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))


def extract_entities(structure: SummaryStructure) -> Entities:
    owners = _unique([item.owner or "" for item in structure.action_items])
    return Entities(
        people=_unique([name.text for name in structure.names] + owners),
        dates=_unique([span.text for span in structure.dates]),
        times=_unique([span.text for span in structure.times]),
        emails=_unique([span.text for span in structure.emails]),
        action_owners=owners,
        key_topics=[heading.text for heading in structure.headings],
    )


def grade_for(score: float) -> str:
    if score >= 0.9:
        return "A"
    if score >= 0.8:
        return "B"
    if score >= 0.7:
        return "C"
    if score >= 0.6:
        return "D"
    return "F"


def assess_quality(
    content: str,
    structure: SummaryStructure,
    analysis: ContentAnalysis,
    style: str,
) -> QualityAssessment:
    """Weighted score over the five analysis dimensions plus issue lists."""

    issues: list[str] = []
    strengths: list[str] = []

    readability = analysis.readability.score / 100
    if readability >= 0.6:
        strengths.append("Good readability")
    else:
        issues.append("Poor readability")

    completeness = analysis.completeness.score
    if completeness >= 0.8:
        strengths.append("Complete coverage of expected sections")
    elif analysis.completeness.missing:
        issues.append(f"Missing sections: {', '.join(analysis.completeness.missing)}")

    structure_score = (
        0.4 * bool(structure.headings)
        + 0.3 * bool(structure.bullet_points or structure.numbered_items)
        + 0.3 * bool(structure.action_items)
    )
    if structure_score >= 0.7:
        strengths.append("Well structured")
    else:
        issues.append("Poor structure")

    actionability = analysis.actionability.score
    if actionability >= 0.6:
        strengths.append("Actionable content")
    else:
        issues.append("Limited actionable items")
    if style == "action-items" and not structure.action_items:
        issues.append("Missing action items for action-items style")

    coverage = analysis.coverage.score
    if coverage >= 0.7:
        strengths.append("Comprehensive coverage")
    else:
        issues.append("Limited coverage")

    requirements = STYLE_REQUIREMENTS.get(style)
    if requirements is not None and len(content) < requirements["length"][0]:
        issues.append(f"Too short for {style} style")

    parts = {
        "readability": readability,
        "completeness": completeness,
        "structure": structure_score,
        "actionability": actionability,
        "coverage": coverage,
    }
    score = sum(parts[name] * weight for name, weight in QUALITY_WEIGHTS.items())
    level = (
        "excellent" if score >= 0.8 else "good" if score >= 0.6 else "fair" if score >= 0.4 else "poor"
    )
    return QualityAssessment(
        score=round(score, 2),
        grade=grade_for(score),
        level=level,
        issues=issues,
        strengths=strengths,
        breakdown={name: round(value * 100) for name, value in parts.items()},
    )


def build_metadata(context: ProcessingContext, processing_time_ms: float = 0.0) -> SummaryMetadata:
    """Model, usage and cost for the model that actually served the call."""

    completion = context.completion
    model = settings.model_for(context.model_role)
    input_tokens = completion.input_tokens if completion else 0
    output_tokens = completion.output_tokens if completion else 0
    input_cost = input_tokens / 1000 * model.input_cost_per_1k
    output_cost = output_tokens / 1000 * model.output_cost_per_1k
    return SummaryMetadata(
        model=ModelInfo(
            name=completion.model_id if completion else model.model_id,
            role=context.model_role,
            request_id=completion.request_id if completion else None,
        ),
        usage=TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=completion.total_tokens if completion else 0,
        ),
        cost=CostBreakdown(
            total=round(input_cost + output_cost, 8),
            input_cost=round(input_cost, 8),
            output_cost=round(output_cost, 8),
        ),
        processing=ProcessingInfo(
            finish_reason=completion.finish_reason if completion else None,
            completion_latency_ms=round(completion.latency_ms, 2) if completion else 0.0,
            processing_time_ms=round(processing_time_ms, 2),
            fallback_triggered=context.fallback_triggered,
            attempt_count=context.attempt_count,
            initial_model=context.initial_model,
            decision_reason=context.decision_reason,
            processed_at=datetime.now(timezone.utc).isoformat(),
        ),
        style=context.style,
        urgency=context.urgency,
        transcript_id=context.transcript_id,
    )


class ResponseProcessor:
    """Turn one raw completion into a scored, multi-format ``ProcessedSummary``."""

    def __init__(
        self,
        extractors: ExtractorSet | None = None,
        config: ResponseConfig | None = None,
    ) -> None:
        self.extractors = extractors or ExtractorSet()
        self.config = config or settings.response

    def validate(self, content: Any, context: ProcessingContext) -> ValidationReport:
        """Report problems with the raw content; never raises."""

        if content is None or not isinstance(content, str):
            return ValidationReport(errors=["Response content is missing or not a string"])
        if not content.strip():
            return ValidationReport(
                errors=["Response content is empty"],
                content_length=len(content),
                line_count=content.count("\n") + 1,
            )

        errors: list[str] = []
        warnings: list[str] = []
        length = len(content)
        word_count = len(content.split())
        config = self.config

        if length < config.min_length:
            errors.append(f"Content too short: {length} chars (min: {config.min_length})")
        if length > config.max_length:
            warnings.append(
                f"Content very long: {length} chars (max recommended: {config.max_length})"
            )
        if word_count < config.min_words:
            errors.append(f"Too few words: {word_count} (min: {config.min_words})")
        if word_count > config.max_words:
            warnings.append(
                f"High word count: {word_count} (max recommended: {config.max_words})"
            )

        if any(pattern.search(content) for pattern in _REFUSAL_PATTERNS):
            errors.append("Content looks like a refusal or error marker")
        if content.strip().lower() in _PLACEHOLDERS:
            errors.append("Content appears to be empty or placeholder")

        requirements = STYLE_REQUIREMENTS.get(context.style)
        if requirements is not None:
            minimum, maximum = requirements["length"]
            if length < minimum:
                warnings.append(f"Content shorter than preferred for {context.style} style")
            elif length > maximum:
                warnings.append(f"Content longer than preferred for {context.style} style")

        completion = context.completion
        if completion is not None:
            if completion.total_tokens <= 0:
                warnings.append("Invalid or missing token usage information")
            if completion.output_tokens <= 10:
                warnings.append("Very low completion token count; response may be truncated")
            if completion.finish_reason == "max_tokens":
                warnings.append("Response stopped at the output token limit")

        return ValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            content_length=length,
            word_count=word_count,
            line_count=content.count("\n") + 1,
        )

    def analyze(
        self, content: str, structure: SummaryStructure, context: ProcessingContext
    ) -> ContentAnalysis:
        return ContentAnalysis(
            readability=calculate_readability(content),
            sentiment=self.extractors.sentiment.analyze(content),
            completeness=assess_completeness(content, structure, context.style),
            actionability=assess_actionability(structure),
            coverage=assess_coverage(content, structure),
            entities=extract_entities(structure),
        )

    def process(
        self, raw_content: Any, context: ProcessingContext | None = None
    ) -> ProcessedSummary:
        started = time.perf_counter()
        context = context or ProcessingContext()
        raw_text = raw_content if isinstance(raw_content, str) else ""

        try:
            validation = self.validate(raw_content, context)
            if not validation.is_valid:
                reason = "Response validation failed: " + ", ".join(validation.errors)
                logger.warning("%s", reason)
                return self._degraded(raw_text, context, started, reason, validation)

            normalized = normalize_text(raw_text)
            structure = self.extractors.extract_structure(normalized)
            analysis = self.analyze(normalized, structure, context)
            quality = assess_quality(normalized, structure, analysis, context.style)
            metadata = build_metadata(context, self._elapsed_ms(started))
            formats = build_formats(normalized, structure, metadata, quality)
        except Exception as exc:
            logger.exception("Response processing failed")
            return self._degraded(raw_text, context, started, f"Response processing failed: {exc}")

        logger.info(
            "Processed summary style=%s grade=%s score=%.2f actions=%s decisions=%s",
            context.style,
            quality.grade,
            quality.score,
            len(structure.action_items),
            len(structure.decisions),
        )
        return ProcessedSummary(
            success=True,
            status="completed",
            raw=raw_text,
            normalized=normalized,
            structure=structure,
            analysis=analysis,
            quality=quality,
            formats=formats,
            validation=validation,
            metadata=metadata,
        )

    def _degraded(
        self,
        raw_text: str,
        context: ProcessingContext,
        started: float,
        reason: str,
        validation: ValidationReport | None = None,
    ) -> ProcessedSummary:
        try:
            metadata = build_metadata(context, self._elapsed_ms(started))
        except Exception:  # pragma: no cover
            metadata = SummaryMetadata(style=context.style)
        metadata.processing.error = reason

        if validation is None:
            validation = ValidationReport(errors=[reason])
        issues = list(validation.errors) or [reason]
        return ProcessedSummary(
            success=False,
            status="error",
            raw=raw_text,
            normalized=normalize_text(raw_text),
            quality=QualityAssessment(score=0.0, grade="F", issues=issues),
            validation=validation,
            metadata=metadata,
            error=reason,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000


__all__ = [
    "STYLE_REQUIREMENTS",
    "QUALITY_WEIGHTS",
    "ProcessingContext",
    "ResponseProcessor",
    "normalize_text",
    "count_syllables",
    "calculate_readability",
    "assess_completeness",
    "assess_actionability",
    "assess_coverage",
    "extract_entities",
    "assess_quality",
    "grade_for",
    "build_metadata",
]
