"""Pattern-based extractors that turn summary text into structure.

Each extractor sits behind a small protocol so a different implementation
(for instance a statistical classifier) can replace one of them without
touching the response processor. All extractors read the normalized text
and report offsets relative to it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence

from app.services.formats import BULLET_LINE, NUMBERED_LINE, iter_lines, strip_inline
from app.services.response_contract import (
    ActionItem,
    Heading,
    ListItem,
    Section,
    Sentiment,
    SummaryStructure,
    TextSpan,
)

_ATX_HEADING = re.compile(r"^\s*(#{1,6})\s+(.+?)\s*#*\s*$")
_LABEL_HEADING = re.compile(r"^\s*([A-Z][^.!?:\n]{1,80}):\s*$")
_BOLD_HEADING = re.compile(r"^\s*\*\*([^*]{2,80}?):?\*\*:?\s*$")

_BOLD_OWNER = re.compile(r"^\*\*(?P<owner>[^*:]{2,40}?):?\*\*:?\s*(?P<task>.+)$")
_PAREN_OWNER = re.compile(
    r"^(?P<task>.+?)\s*\((?:owner|assigned to|assignee|responsible)\s*:\s*(?P<owner>[^)]+)\)",
    re.IGNORECASE,
)
_DASH_OWNER = re.compile(
    r"^(?P<task>.+?)\s+[-|]\s+(?:owner|assigned to|assignee)\s*:\s*(?P<owner>.+?)"
    r"(?:\s+[-|]\s+(?:due|deadline|by)\s*:\s*(?P<due>.+))?$",
    re.IGNORECASE,
)
_DUE = re.compile(
    r"\s*[(\[]?\s*\b(?:due|deadline|by)\s*[:\-]\s*(?P<due>[^)\]]+?)\s*[)\]]?\s*$",
    re.IGNORECASE,
)

IMPERATIVE_VERBS = frozenset(
    {
        "add", "align", "analyze", "approve", "arrange", "assign", "book", "build",
        "call", "check", "circulate", "collect", "complete", "confirm", "contact",
        "coordinate", "create", "deliver", "deploy", "design", "document", "draft",
        "email", "escalate", "evaluate", "finalize", "fix", "follow", "gather",
        "implement", "investigate", "launch", "migrate", "monitor", "notify",
        "organize", "plan", "prepare", "present", "prioritize", "publish",
        "reach", "research", "resolve", "review", "schedule", "send", "set",
        "share", "submit", "test", "update", "upload", "validate", "verify", "write",
    }
)

# Bold labels that introduce content rather than name an owner.
_NON_OWNER_LABELS = frozenset(
    {
        "action", "background", "context", "deadline", "decision", "due", "highlight",
        "impact", "insight", "key", "next steps", "note", "outcome", "owner",
        "priority", "result", "risk", "status", "summary", "takeaway", "update",
    }
)

_DECISION_WORDS = re.compile(
    r"\b(?:decided|decision|agreed|approved|resolved|concluded|chose|selected)\b",
    re.IGNORECASE,
)
_DECISION_HEADING = re.compile(r"\bdecisions?\b", re.IGNORECASE)
_PENDING_HEADING = re.compile(r"\bpending\b", re.IGNORECASE)
_INSIGHT_LABEL = re.compile(
    r"^(?:key (?:insight|point|takeaway)s?|important|insight|takeaway|highlight)s?\s*:\s*(?P<text>.+)$",
    re.IGNORECASE,
)
_INSIGHT_HEADING = re.compile(r"\b(?:insights?|takeaways?|highlights?|key points?)\b", re.IGNORECASE)

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_DATE = re.compile(
    r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?\b"
    r"|\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"
    r"|\b\d{4}-\d{1,2}-\d{1,2}\b",
    re.IGNORECASE,
)
_TIME = re.compile(r"\b\d{1,2}:\d{2}(?:\s*[ap]m)?\b", re.IGNORECASE)
_NAME = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+\b")
_NAME_STOPWORDS = frozenset(
    {
        "Action", "Items", "Item", "Next", "Steps", "Key", "Decisions", "Executive",
        "Summary", "Meeting", "Technical", "Follow", "Up", "Detailed", "Overview",
        "Immediate", "Actions", "Pending", "Strategic", "Outcomes", "Resource",
        "Requirements", "System", "Development", "Timeline", "Discussion", "Complete",
    }
)


@dataclass(frozen=True)
class _Line:
    offset: int
    text: str
    heading: Optional[str]
    list_text: Optional[str]
    number: Optional[int]


def _scan(content: str, headings: Sequence[Heading]) -> list[_Line]:
    """Annotate each line with its enclosing heading and list payload."""

    by_offset = {heading.position: heading for heading in headings}
    current: Optional[str] = None
    lines = []
    for offset, line in iter_lines(content):
        heading = by_offset.get(offset)
        if heading is not None:
            current = heading.text
            lines.append(_Line(offset, line, current, None, None))
            continue
        list_text: Optional[str] = None
        number: Optional[int] = None
        bullet = BULLET_LINE.match(line)
        if bullet:
            list_text = bullet.group(1).strip()
        else:
            numbered = NUMBERED_LINE.match(line)
            if numbered:
                number = int(numbered.group(1))
                list_text = numbered.group(2).strip()
        lines.append(_Line(offset, line, current, list_text or None, number))
    return lines


class HeadingExtractorProtocol(Protocol):
    def extract(self, content: str) -> list[Heading]:
        ...


class LineExtractor(Protocol):
    """Extractor that works on heading-annotated lines."""

    def extract(self, content: str, headings: Sequence[Heading]) -> list:
        ...


class SentimentAnalyzer(Protocol):
    def analyze(self, content: str) -> Sentiment:
        ...


class HeadingExtractor:
    """ATX headings, bold-only lines and ``Label:`` lines that open a list."""

    def extract(self, content: str) -> list[Heading]:
        headings: list[Heading] = []
        lines = list(iter_lines(content))
        for index, (offset, line) in enumerate(lines):
            atx = _ATX_HEADING.match(line)
            if atx:
                headings.append(
                    Heading(text=atx.group(2).strip(), level=len(atx.group(1)), position=offset)
                )
                continue
            bold = _BOLD_HEADING.match(line)
            if bold:
                headings.append(Heading(text=bold.group(1).strip(), level=2, position=offset))
                continue
            label = _LABEL_HEADING.match(line)
            if label and index + 1 < len(lines):
                following = lines[index + 1][1]
                if BULLET_LINE.match(following) or NUMBERED_LINE.match(following):
                    headings.append(
                        Heading(text=label.group(1).strip(), level=2, position=offset)
                    )
        return headings


class ListExtractor:
    """Bullet and numbered list items."""

    def extract(
        self, content: str, headings: Sequence[Heading]
    ) -> tuple[list[ListItem], list[ListItem]]:
        bullets: list[ListItem] = []
        numbered: list[ListItem] = []
        for line in _scan(content, headings):
            if line.list_text is None:
                continue
            item = ListItem(text=strip_inline(line.list_text), position=line.offset, number=line.number)
            (numbered if line.number is not None else bullets).append(item)
        return bullets, numbered


def _split_due(task: str) -> tuple[str, Optional[str]]:
    match = _DUE.search(task)
    if not match or match.start() == 0:
        return task.strip(), None
    return task[: match.start()].strip(" -,;"), match.group("due").strip()


def _looks_like_owner(label: str) -> bool:
    label = label.strip()
    if label.lower() in _NON_OWNER_LABELS or len(label.split()) > 4:
        return False
    return label[:1].isupper()


class ActionItemExtractor:
    """List items carrying an owner/task pattern or opening with an imperative verb."""

    def __init__(self, verbs: Iterable[str] = IMPERATIVE_VERBS) -> None:
        self.verbs = frozenset(verb.lower() for verb in verbs)

    def extract(self, content: str, headings: Sequence[Heading]) -> list[ActionItem]:
        items: list[ActionItem] = []
        for line in _scan(content, headings):
            if line.list_text is None:
                continue
            item = self.parse(line.list_text)
            if item is not None:
                items.append(item.model_copy(update={"position": line.offset}))
        return items

    def parse(self, text: str) -> Optional[ActionItem]:
        bold = _BOLD_OWNER.match(text)
        if bold and _looks_like_owner(bold.group("owner")):
            task, due = _split_due(strip_inline(bold.group("task")))
            return ActionItem(task=task, owner=bold.group("owner").strip(), due=due)

        plain = strip_inline(text)
        dashed = _DASH_OWNER.match(plain)
        if dashed:
            due = dashed.group("due")
            return ActionItem(
                task=dashed.group("task").strip(),
                owner=dashed.group("owner").strip(),
                due=due.strip() if due else None,
            )

        paren = _PAREN_OWNER.match(plain)
        if paren:
            remainder = plain[paren.end():]
            task, due = _split_due(paren.group("task") + remainder)
            return ActionItem(task=task, owner=paren.group("owner").strip(), due=due)

        words = plain.split(maxsplit=1)
        if words and words[0].lower().strip(":,") in self.verbs:
            task, due = _split_due(plain)
            return ActionItem(task=task, due=due)
        return None


class DecisionExtractor:
    """Lines stating a decision, plus list items under a decisions heading."""

    def extract(self, content: str, headings: Sequence[Heading]) -> list[TextSpan]:
        decisions: list[TextSpan] = []
        heading_offsets = {heading.position for heading in headings}
        for line in _scan(content, headings):
            if line.offset in heading_offsets:
                continue
            under_heading = (
                line.list_text is not None
                and line.heading is not None
                and _DECISION_HEADING.search(line.heading)
                and not _PENDING_HEADING.search(line.heading)
            )
            text = strip_inline(line.list_text or line.text).strip()
            if text and (under_heading or _DECISION_WORDS.search(text)):
                decisions.append(TextSpan(text=text, position=line.offset))
        return decisions


class InsightExtractor:
    """``Key insight:`` style lines and items under an insights heading."""

    def extract(self, content: str, headings: Sequence[Heading]) -> list[TextSpan]:
        insights: list[TextSpan] = []
        heading_offsets = {heading.position for heading in headings}
        for line in _scan(content, headings):
            if line.offset in heading_offsets:
                continue
            text = strip_inline(line.list_text or line.text).strip()
            labelled = _INSIGHT_LABEL.match(text)
            if labelled:
                insights.append(TextSpan(text=labelled.group("text").strip(), position=line.offset))
            elif (
                line.list_text is not None
                and line.heading is not None
                and _INSIGHT_HEADING.search(line.heading)
            ):
                insights.append(TextSpan(text=text, position=line.offset))
        return insights


class PatternExtractor:
    """Every match of a single regular expression."""

    def __init__(self, pattern: re.Pattern[str]) -> None:
        self.pattern = pattern

    def extract(self, content: str, headings: Sequence[Heading] = ()) -> list[TextSpan]:
        return [
            TextSpan(text=match.group(0), position=match.start())
            for match in self.pattern.finditer(content)
        ]


class EmailExtractor(PatternExtractor):
    def __init__(self) -> None:
        super().__init__(_EMAIL)


class DateExtractor(PatternExtractor):
    def __init__(self) -> None:
        super().__init__(_DATE)


class TimeExtractor(PatternExtractor):
    def __init__(self) -> None:
        super().__init__(_TIME)


class NameExtractor:
    """Capitalized multi-word sequences outside headings, minus section words."""

    def extract(self, content: str, headings: Sequence[Heading]) -> list[TextSpan]:
        heading_offsets = {heading.position for heading in headings}
        names: list[TextSpan] = []
        for line in _scan(content, headings):
            if line.offset in heading_offsets:
                continue
            for match in _NAME.finditer(strip_inline(line.text)):
                words = match.group(0).split()
                if any(word in _NAME_STOPWORDS for word in words):
                    continue
                if 2 < len(match.group(0)) < 50:
                    names.append(TextSpan(text=match.group(0), position=line.offset))
        return names


class KeywordSentimentAnalyzer:
    """Share of positive, negative and neutral keywords, in percent."""

    POSITIVE = ("success", "complete", "achieve", "good", "great", "excellent", "positive", "progress", "improve")
    NEGATIVE = ("fail", "problem", "issue", "concern", "delay", "block", "risk", "challenge", "difficult")
    NEUTRAL = ("discuss", "review", "plan", "consider", "analyze", "evaluate", "assess")

    def analyze(self, content: str) -> Sentiment:
        positive = negative = neutral = 0
        for word in content.lower().split():
            if any(keyword in word for keyword in self.POSITIVE):
                positive += 1
            elif any(keyword in word for keyword in self.NEGATIVE):
                negative += 1
            elif any(keyword in word for keyword in self.NEUTRAL):
                neutral += 1

        total = positive + negative + neutral
        if positive > negative:
            overall = "positive"
        elif negative > positive:
            overall = "negative"
        else:
            overall = "neutral"
        if not total:
            return Sentiment(overall=overall)
        return Sentiment(
            positive=round(positive / total * 100, 1),
            negative=round(negative / total * 100, 1),
            neutral=round(neutral / total * 100, 1),
            overall=overall,
        )


@dataclass
class ExtractorSet:
    """The extractors used by one response processor."""

    headings: HeadingExtractorProtocol = field(default_factory=HeadingExtractor)
    lists: ListExtractor = field(default_factory=ListExtractor)
    action_items: LineExtractor = field(default_factory=ActionItemExtractor)
    decisions: LineExtractor = field(default_factory=DecisionExtractor)
    insights: LineExtractor = field(default_factory=InsightExtractor)
    emails: LineExtractor = field(default_factory=EmailExtractor)
    dates: LineExtractor = field(default_factory=DateExtractor)
    times: LineExtractor = field(default_factory=TimeExtractor)
    names: LineExtractor = field(default_factory=NameExtractor)
    sentiment: SentimentAnalyzer = field(default_factory=KeywordSentimentAnalyzer)

    def extract_structure(self, content: str) -> SummaryStructure:
        headings = self.headings.extract(content)
        bullets, numbered = self.lists.extract(content, headings)
        return SummaryStructure(
            headings=headings,
            bullet_points=bullets,
            numbered_items=numbered,
            action_items=self.action_items.extract(content, headings),
            decisions=self.decisions.extract(content, headings),
            insights=self.insights.extract(content, headings),
            dates=self.dates.extract(content, headings),
            times=self.times.extract(content, headings),
            names=self.names.extract(content, headings),
            emails=self.emails.extract(content, headings),
            sections=build_sections(content, headings),
        )


def build_sections(content: str, headings: Sequence[Heading]) -> dict[str, Section]:
    """Text between consecutive headings, keyed by lowercase heading text."""

    sections: dict[str, Section] = {}
    lines = dict(iter_lines(content))
    for index, heading in enumerate(headings):
        start = heading.position + len(lines.get(heading.position, ""))
        end = headings[index + 1].position if index + 1 < len(headings) else len(content)
        body = content[start:end].strip()
        sections[heading.text.lower()] = Section(
            title=heading.text,
            content=body,
            position=heading.position,
            length=len(body),
        )
    return sections


__all__ = [
    "IMPERATIVE_VERBS",
    "HeadingExtractor",
    "ListExtractor",
    "ActionItemExtractor",
    "DecisionExtractor",
    "InsightExtractor",
    "PatternExtractor",
    "EmailExtractor",
    "DateExtractor",
    "TimeExtractor",
    "NameExtractor",
    "KeywordSentimentAnalyzer",
    "ExtractorSet",
    "build_sections",
]
