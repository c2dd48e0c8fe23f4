"""Render a normalized summary into the delivery formats.

Every renderer reads the canonical normalized text and the extracted
structure and returns new objects; nothing here mutates its inputs. The
``text`` and ``markdown`` renderings share heading detection, so stripping
markup from either yields the same word sequence.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Iterator

from app.services.response_contract import (
    Heading,
    QualityAssessment,
    SummaryMetadata,
    SummaryStructure,
)

BULLET_LINE = re.compile(r"^\s*[-•*]\s+(.*)$")
NUMBERED_LINE = re.compile(r"^\s*(\d+)[.)]\s+(.*)$")
RULE_LINE = re.compile(r"^\s*([-*_])(?:\s*\1){2,}\s*$")
ATX_HEADING = re.compile(r"^\s*#{1,6}\s+")
QUOTE_PREFIX = re.compile(r"^\s*>\s?")

# A run of asterisks that opens or closes a word is an emphasis delimiter,
# paired or not; runs inside a word ("a*b") or between spaces ("2 * 3") stay.
_EMPHASIS_RUN = re.compile(r"(?<![\w*])\*+(?![\s*])|(?<![\s*])\*+(?![\w*])")
_BOLD_UNDERSCORE = re.compile(r"__([^_\n]+)__")
_CODE = re.compile(r"`([^`]*)`")
_LINK = re.compile(r"\[([^\[\]\n]*)\]\([^()\n]*\)")

WORDS_PER_MINUTE = 200


def iter_lines(content: str) -> Iterator[tuple[int, str]]:
    """Yield ``(offset, line)`` pairs for every line of ``content``."""

    offset = 0
    for line in content.split("\n"):
        yield offset, line
        offset += len(line) + 1


def strip_inline(text: str) -> str:
    """Remove inline markdown (bold, italic, code spans, links).

    Links and code spans can wrap each other, so passes repeat until the text
    stops changing. The result is idempotent, so
    ``strip_inline(strip_inline(x)) == strip_inline(x)``.
    """

    while True:
        stripped = _LINK.sub(r"\1", text)
        stripped = _CODE.sub(r"\1", stripped)
        stripped = _EMPHASIS_RUN.sub("", stripped)
        stripped = _BOLD_UNDERSCORE.sub(r"\1", stripped)
        if stripped == text:
            return stripped
        text = stripped


def strip_markup(text: str) -> str:
    """Drop markdown tokens and list glyphs, keeping only visible words."""

    lines = []
    for _, line in iter_lines(text or ""):
        if RULE_LINE.match(line):
            continue
        line = QUOTE_PREFIX.sub("", line)
        line = ATX_HEADING.sub("", line)
        bullet = BULLET_LINE.match(line)
        if bullet:
            line = bullet.group(1)
        else:
            numbered = NUMBERED_LINE.match(line)
            if numbered:
                line = numbered.group(2)
        lines.append(strip_inline(line).strip())
    return "\n".join(line for line in lines if line)


def _headings_by_offset(structure: SummaryStructure) -> dict[int, Heading]:
    return {heading.position: heading for heading in structure.headings}


def render_text(content: str, structure: SummaryStructure) -> str:
    """Plain text: headings as bare lines, ``•`` bullets, no inline markup."""

    headings = _headings_by_offset(structure)
    lines = []
    for offset, line in iter_lines(content):
        heading = headings.get(offset)
        if heading is not None:
            lines.append(strip_inline(heading.text))
            continue
        if RULE_LINE.match(line):
            lines.append("")
            continue
        bullet = BULLET_LINE.match(line)
        if bullet:
            lines.append("• " + strip_inline(bullet.group(1)))
            continue
        numbered = NUMBERED_LINE.match(line)
        if numbered:
            lines.append(f"{numbered.group(1)}. {strip_inline(numbered.group(2))}")
            continue
        lines.append(strip_inline(line))
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def render_markdown(content: str, structure: SummaryStructure) -> str:
    """Markdown with every detected heading written as an ATX heading."""

    headings = _headings_by_offset(structure)
    lines = []
    for offset, line in iter_lines(content):
        heading = headings.get(offset)
        if heading is not None:
            lines.append(f"{'#' * min(max(heading.level, 1), 6)} {heading.text}")
        else:
            lines.append(line)
    return "\n".join(lines)


def table_of_contents(structure: SummaryStructure) -> list[dict[str, Any]]:
    return [
        {
            "title": heading.text,
            "level": heading.level,
            "anchor": re.sub(r"[^\w-]", "", re.sub(r"\s+", "-", heading.text.lower())),
        }
        for heading in structure.headings
    ]


def summary_title(content: str, structure: SummaryStructure) -> str:
    if structure.headings:
        return strip_inline(structure.headings[0].text)
    first_sentence = re.split(r"[.!?]", strip_markup(content), maxsplit=1)[0].strip()
    if first_sentence and len(first_sentence) < 100:
        return first_sentence
    return "Meeting Summary"


def highlights(structure: SummaryStructure, limit: int = 6) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = [
        {"type": "insight", "text": insight.text} for insight in structure.insights
    ]
    items.extend(
        {"type": "decision", "text": decision.text} for decision in structure.decisions[:3]
    )
    items.extend(
        {"type": "action", "text": item.task, "owner": item.owner, "due": item.due}
        for item in structure.action_items[:3]
    )
    return items[:limit]


def email_subject(structure: SummaryStructure, style: str) -> str:
    date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    if structure.headings:
        return f"{strip_inline(structure.headings[0].text)} - {style} Summary ({date})"
    return f"Meeting Summary - {style} ({date})"


def email_body(content: str, structure: SummaryStructure) -> str:
    body = render_text(content, structure)
    if structure.action_items:
        lines = ["", "", "--- ACTION ITEMS ---"]
        for index, item in enumerate(structure.action_items, start=1):
            line = f"{index}. {item.task}"
            if item.owner:
                line += f" (Owner: {item.owner})"
            if item.due:
                line += f" (Due: {item.due})"
            lines.append(line)
        body += "\n".join(lines)
    return body


def build_formats(
    content: str,
    structure: SummaryStructure,
    metadata: SummaryMetadata,
    quality: QualityAssessment,
) -> dict[str, Any]:
    """Return the ``ui``, ``api``, ``text``, ``markdown`` and ``email`` renderings."""

    plain = render_text(content, structure)
    word_count = len(strip_markup(content).split())
    return {
        "ui": {
            "title": summary_title(content, structure),
            "summary": content,
            "highlights": highlights(structure),
            "action_items": [item.model_dump() for item in structure.action_items],
            "decisions": [decision.text for decision in structure.decisions],
            "key_insights": [insight.text for insight in structure.insights],
            "metadata": {
                "model": metadata.model.name,
                "cost": f"${metadata.cost.total:.6f}",
                "tokens": metadata.usage.total_tokens,
                "quality": quality.grade,
                "processing_time": f"{metadata.processing.completion_latency_ms:.0f}ms",
            },
        },
        "api": {
            "content": content,
            "counts": {
                "headings": len(structure.headings),
                "bullet_points": len(structure.bullet_points),
                "action_items": len(structure.action_items),
                "decisions": len(structure.decisions),
            },
            "sections": {
                key: section.model_dump() for key, section in structure.sections.items()
            },
        },
        "text": {
            "content": plain,
            "word_count": word_count,
            "reading_time_minutes": math.ceil(word_count / WORDS_PER_MINUTE),
        },
        "markdown": {
            "content": render_markdown(content, structure),
            "toc": table_of_contents(structure),
        },
        "email": {
            "subject": email_subject(structure, metadata.style),
            "body": email_body(content, structure),
        },
    }


__all__ = [
    "BULLET_LINE",
    "NUMBERED_LINE",
    "iter_lines",
    "strip_inline",
    "strip_markup",
    "render_text",
    "render_markdown",
    "table_of_contents",
    "summary_title",
    "highlights",
    "email_subject",
    "email_body",
    "build_formats",
]
