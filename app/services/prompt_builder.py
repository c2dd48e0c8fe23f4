"""Helpers to construct system/user prompts for meeting summarization.

Given a transcript, a summary style and optional custom instructions, we emit:
* A system prompt with the summarizer persona, the fixed section template for
  the style, meeting-type focus and a sanitized custom-instructions block.
* A user prompt containing meeting metadata followed by the transcript.

Token counts are estimated from character length (``chars_per_token``,
4 by default). The estimate drifts from any real tokenizer, which is why the
context check keeps a safety margin below the model window.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from app.config.settings import settings
from app.services.errors import InputValidationError

SUMMARY_STYLES = ("executive", "action-items", "technical", "detailed", "custom")

BASE_SYSTEM_PROMPT = (
    "You are an expert meeting summarizer with exceptional ability to extract key "
    "information, decisions, and action items from meeting transcripts. Your summaries "
    "are clear, concise, and actionable.\n\n"
    "CORE PRINCIPLES:\n"
    "- Focus on outcomes, decisions, and next steps\n"
    "- Maintain professional tone and clarity\n"
    "- Preserve important context and nuances\n"
    "- Organize information logically\n"
    "- Use bullet points for better readability"
)

# Each style has a fixed set of required output sections.
STYLE_TEMPLATES: dict[str, dict[str, Any]] = {
    "executive": {
        "name": "Executive Summary",
        "focus": (
            "Strategic decisions and their business impact",
            "Key outcomes and deliverables",
            "Resource requirements and budget implications",
            "Critical risks and mitigation strategies",
            "Next steps requiring leadership attention",
        ),
        "sections": (
            "Executive Summary",
            "Key Decisions",
            "Strategic Outcomes",
            "Resource Requirements",
            "Next Steps for Leadership",
        ),
        "max_output_tokens": 1500,
        "temperature": 0.1,
    },
    "action-items": {
        "name": "Action Items & Decisions",
        "focus": (
            "Specific tasks with clear owners",
            "Deadlines and priority levels",
            "Dependencies between tasks",
            "Follow-up requirements",
            "Decision points needing resolution",
        ),
        "sections": (
            "Immediate Actions",
            "Short-term Actions",
            "Decisions Made",
            "Pending Decisions",
            "Follow-up Required",
        ),
        "max_output_tokens": 2000,
        "temperature": 0.05,
    },
    "technical": {
        "name": "Technical Summary",
        "focus": (
            "Technical decisions and architectural choices",
            "Implementation approaches and methodologies",
            "System requirements and specifications",
            "Technical risks and mitigation strategies",
            "Development timelines and milestones",
        ),
        "sections": (
            "Technical Decisions",
            "Architecture & Implementation",
            "System Requirements",
            "Technical Risks",
            "Development Timeline",
        ),
        "max_output_tokens": 2500,
        "temperature": 0.1,
    },
    "detailed": {
        "name": "Detailed Overview",
        "focus": (
            "Complete context and background information",
            "All discussion points and perspectives shared",
            "Detailed decision-making process",
            "Full scope of topics covered",
            "Comprehensive next steps and follow-ups",
        ),
        "sections": (
            "Meeting Context",
            "Discussion Summary",
            "Decision-Making Process",
            "Complete Action Items",
            "Follow-up Items",
        ),
        "max_output_tokens": 3000,
        "temperature": 0.15,
    },
    "custom": {
        "name": "Custom Summary",
        "focus": (),
        "sections": (),
        "max_output_tokens": 2000,
        "temperature": 0.1,
    },
}

MEETING_TYPE_FOCUS: dict[str, tuple[str, ...]] = {
    "standup": (
        "What was accomplished since last meeting",
        "What will be worked on next",
        "Any blockers or impediments",
        "Keep summary brief and action-oriented",
    ),
    "retrospective": (
        "What went well (continue doing)",
        "What didn't go well (stop doing)",
        "What could be improved (start doing)",
        "Action items for process improvement",
    ),
    "planning": (
        "Goals and objectives defined",
        "Resource allocation decisions",
        "Timeline and milestone planning",
        "Risk assessment and mitigation",
    ),
    "review": (
        "Performance against goals",
        "Key metrics and outcomes",
        "Lessons learned",
        "Approval decisions made",
    ),
}

CLOSING_GUIDELINES = (
    "IMPORTANT GUIDELINES:\n"
    "- If the transcript is incomplete or unclear, note this in your summary\n"
    "- Preserve exact quotes for important decisions or commitments\n"
    "- Use markdown headings (##) and bullet points for organization\n"
    "- Format action items as: - **Owner:** task (Due: date)\n"
    "- Maintain confidentiality and professional discretion"
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INJECTION_PATTERNS = (
    re.compile(
        r"\b(?:ignore|disregard|forget|override)\b[^.\n]{0,40}?"
        r"\b(?:previous|prior|above|earlier|all|system)\b[^.\n]{0,20}?"
        r"\b(?:instructions?|prompts?|rules?|directions?)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\byou\s+are\s+now\b", re.IGNORECASE),
    re.compile(r"\bnew\s+instructions?\s*:", re.IGNORECASE),
    re.compile(r"<\|?\s*/?\s*(?:im_start|im_end|system|assistant|user)\s*\|?>", re.IGNORECASE),
    re.compile(r"\[/?(?:INST|SYS)\]", re.IGNORECASE),
    re.compile(r"^\s*#{1,6}\s*(?:system|assistant|user)\b.*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*(?:system|assistant|user)\s*:", re.IGNORECASE | re.MULTILINE),
)


@dataclass(frozen=True)
class PromptMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class PromptPackage:
    """Role-tagged messages plus the limits used for one completion call."""

    messages: tuple[PromptMessage, ...]
    estimated_input_tokens: int
    max_output_tokens: int
    temperature: float
    style: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def system_prompt(self) -> str:
        return next((m.content for m in self.messages if m.role == "system"), "")

    @property
    def user_prompt(self) -> str:
        return next((m.content for m in self.messages if m.role == "user"), "")


def estimate_tokens(text: str) -> int:
    """Approximate token count: ``ceil(len(text) / chars_per_token)``."""

    if not text:
        return 0
    return math.ceil(len(text) / settings.prompt.chars_per_token)


def context_window_limit() -> int:
    """Token budget both models can serve, minus the safety margin."""

    window = min(
        settings.primary_model.context_window,
        settings.fallback_model.context_window,
    )
    return max(window - settings.prompt.context_safety_margin_tokens, 0)


def sanitize_custom_instructions(text: str | None) -> tuple[str, list[str]]:
    """Strip role markers and override phrases from user instructions.

    Returns the cleaned text and the list of fragments that were removed.
    """

    if not text or not text.strip():
        return "", []

    limit = settings.prompt.max_custom_instructions_chars
    if len(text) > limit:
        raise InputValidationError(
            f"Custom instructions exceed {limit} characters ({len(text)})."
        )

    cleaned = _CONTROL_CHARS.sub("", text)
    removed: list[str] = []
    for pattern in _INJECTION_PATTERNS:
        removed.extend(match.group(0).strip() for match in pattern.finditer(cleaned))
        cleaned = pattern.sub("", cleaned)

    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()
    return cleaned, [fragment for fragment in removed if fragment]


def build_system_prompt(
    style: str,
    custom_instructions: str = "",
    meeting_type: str | None = None,
) -> str:
    template = STYLE_TEMPLATES[style]
    parts = [BASE_SYSTEM_PROMPT]

    if template["focus"]:
        focus = "\n".join(f"- {item}" for item in template["focus"])
        sections = "\n".join(f"## {section}" for section in template["sections"])
        parts.append(
            f"{template['name'].upper()} STYLE:\n"
            f"Focus on:\n{focus}\n\n"
            f"Structure the summary with exactly these sections:\n{sections}"
        )

    if meeting_type and meeting_type in MEETING_TYPE_FOCUS:
        focus = "\n".join(f"- {item}" for item in MEETING_TYPE_FOCUS[meeting_type])
        parts.append(f"{meeting_type.upper()} MEETING FOCUS:\n{focus}")

    if custom_instructions:
        parts.append(
            "CUSTOM INSTRUCTIONS:\n"
            f"{custom_instructions}\n\n"
            "Incorporate these requirements while maintaining the core principles above."
        )

    parts.append(CLOSING_GUIDELINES)
    return "\n\n".join(parts)


def format_transcript(transcript: str, metadata: Mapping[str, Any] | None = None) -> str:
    """Prefix the transcript with a short metadata header when available."""

    header_lines: list[str] = []
    if metadata:
        labels = (
            ("date", "Date"),
            ("attendees", "Attendees"),
            ("duration", "Duration"),
            ("meeting_type", "Type"),
            ("filename", "File"),
        )
        for key, label in labels:
            value = metadata.get(key)
            if value:
                if isinstance(value, (list, tuple)):
                    value = ", ".join(str(item) for item in value)
                header_lines.append(f"{label}: {value}")

    content = ""
    if header_lines:
        content += "MEETING METADATA:\n" + "\n".join(header_lines) + "\n\n"
    content += "MEETING TRANSCRIPT:\n" + transcript.strip()
    return content


def build_prompt(
    transcript: str,
    *,
    style: str = "executive",
    custom_instructions: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    meeting_type: str | None = None,
) -> PromptPackage:
    """Compose the system/user messages for the requested summary style."""

    if not transcript or not transcript.strip():
        raise InputValidationError("Transcript is empty; nothing to summarize.")
    if style not in STYLE_TEMPLATES:
        raise InputValidationError(f"Unknown summary style: {style!r}")

    clean_instructions, removed = sanitize_custom_instructions(custom_instructions)
    warnings: list[str] = []
    if removed:
        warnings.append(
            f"Removed {len(removed)} disallowed fragment(s) from custom instructions"
        )

    meeting_type = meeting_type or (metadata or {}).get("meeting_type")
    system_prompt = build_system_prompt(style, clean_instructions, meeting_type)
    user_prompt = format_transcript(transcript, metadata)

    template = STYLE_TEMPLATES[style]
    max_output_tokens = min(
        template["max_output_tokens"],
        settings.primary_model.max_output_tokens,
        settings.fallback_model.max_output_tokens,
    )
    estimated_input = estimate_tokens(system_prompt) + estimate_tokens(user_prompt)

    limit = context_window_limit()
    if estimated_input + max_output_tokens > limit:
        raise InputValidationError(
            f"Estimated tokens ({estimated_input} input + {max_output_tokens} output) "
            f"exceed the context window ({limit})."
        )
    if estimated_input + max_output_tokens > limit * 0.9:
        warnings.append("Prompt is close to the context window limit")

    return PromptPackage(
        messages=(
            PromptMessage(role="system", content=system_prompt),
            PromptMessage(role="user", content=user_prompt),
        ),
        estimated_input_tokens=estimated_input,
        max_output_tokens=max_output_tokens,
        temperature=template["temperature"],
        style=style,
        warnings=tuple(warnings),
    )


def prompt_stats(package: PromptPackage) -> dict[str, Any]:
    """Token split, utilization and primary-model cost estimate for logging."""

    window = context_window_limit() or 1
    primary = settings.primary_model
    return {
        "total_estimated_tokens": package.estimated_input_tokens,
        "system_prompt_tokens": estimate_tokens(package.system_prompt),
        "user_prompt_tokens": estimate_tokens(package.user_prompt),
        "max_output_tokens": package.max_output_tokens,
        "context_utilization": round(
            (package.estimated_input_tokens + package.max_output_tokens) / window * 100, 1
        ),
        "estimated_cost": primary.cost(
            package.estimated_input_tokens, package.max_output_tokens
        ),
    }


__all__ = [
    "SUMMARY_STYLES",
    "STYLE_TEMPLATES",
    "MEETING_TYPE_FOCUS",
    "PromptMessage",
    "PromptPackage",
    "estimate_tokens",
    "context_window_limit",
    "sanitize_custom_instructions",
    "build_system_prompt",
    "format_transcript",
    "build_prompt",
    "prompt_stats",
]
