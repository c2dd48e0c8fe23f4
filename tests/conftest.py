"""Shared fakes for the summary pipeline tests."""

from __future__ import annotations

import sys
import uuid
from pathlib import Path
from typing import Any, List, Mapping, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.pipelines.summary.persistence import SummaryStore  # noqa: E402
from app.pipelines.summary.types import SummaryRecord, TranscriptRecord  # noqa: E402
from app.services.fallback_engine import SessionOutcome  # noqa: E402
from app.services.llm_client import CompletionResult  # noqa: E402

SAMPLE_SUMMARY = """## Executive Summary
The meeting reviewed the Q3 launch plan and agreed on the release scope.

## Key Decisions
- The team decided to ship the mobile app on October 15.
- Budget for the beta program was approved.

## Next Steps for Leadership
- **Alice Johnson:** Finalize the vendor contract (Due: Friday)
- **Bob Smith:** Schedule the launch review with marketing
- Send the updated roadmap to all stakeholders

Key insight: Customer onboarding time is the main risk for adoption.
"""

SAMPLE_TRANSCRIPT = (
    "Alice: Let's review the Q3 launch plan.\n"
    "Bob: Marketing needs the final scope by Friday.\n"
    "Alice: We agreed to ship the mobile app on October 15.\n"
)


def make_completion(
    content: str = SAMPLE_SUMMARY,
    *,
    model_id: str = "primary-model",
    input_tokens: int = 1200,
    output_tokens: int = 300,
) -> CompletionResult:
    return CompletionResult(
        content=content,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
        model_id=model_id,
        request_id="req-123",
        finish_reason="end_turn",
        latency_ms=850.0,
    )


class ScriptedClient:
    """Completion client that replays a script of results and exceptions."""

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, messages, *, model_id, max_tokens, temperature, model_role=None):
        self.calls.append(
            {
                "model_id": model_id,
                "model_role": model_role,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": list(messages),
            }
        )
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return await step()
        return step


class InMemorySummaryStore(SummaryStore):
    def __init__(self) -> None:
        self.transcripts: dict[str, TranscriptRecord] = {}
        self.summaries: dict[str, dict[str, Any]] = {}
        self.sessions: dict[str, str] = {}
        self.session_usage: list[dict[str, Any]] = []
        self.outcomes: dict[str, list[SessionOutcome]] = {}
        self.fail_history_lookup = False

    def add_transcript(
        self,
        content: str = SAMPLE_TRANSCRIPT,
        *,
        status: str = "processed",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        transcript_id = str(uuid.uuid4())
        self.transcripts[transcript_id] = TranscriptRecord(
            id=transcript_id,
            content=content,
            status=status,
            original_name="meeting.txt",
            metadata=dict(metadata or {}),
        )
        return transcript_id

    def add_session(self, token: str) -> str:
        session_id = str(uuid.uuid4())
        self.sessions[token] = session_id
        return session_id

    async def get_transcript(self, transcript_id: str) -> Optional[TranscriptRecord]:
        return self.transcripts.get(transcript_id)

    async def find_session(self, session_token: str) -> Optional[str]:
        return self.sessions.get(session_token)

    async def recent_outcomes(self, session_id: str, limit: int) -> List[SessionOutcome]:
        if self.fail_history_lookup:
            raise RuntimeError("database unavailable")
        return list(self.outcomes.get(session_id, []))[-limit:]

    async def create_summary(self, *, transcript_id, session_id, style, custom_instructions, model_id):
        summary_id = str(uuid.uuid4())
        self.summaries[summary_id] = {
            "transcript_id": transcript_id,
            "session_id": session_id,
            "style": style,
            "custom_instructions": custom_instructions,
            "ai_model": model_id,
            "status": "generating",
            "content": "",
            "edit_history": [],
            "metadata": {},
        }
        return summary_id

    async def complete_summary(self, summary_id: str, values: Mapping[str, Any]) -> None:
        self.summaries[summary_id].update(values)

    async def fail_summary(self, summary_id, error, metadata, *, ai_model=None):
        row = self.summaries[summary_id]
        row["status"] = "error"
        if ai_model:
            row["ai_model"] = ai_model
        row["generation_error"] = error
        row["metadata"] = {**row["metadata"], **dict(metadata)}

    async def record_session_usage(self, session_id, *, summary_id, transcript_id, cost):
        self.session_usage.append(
            {
                "session_id": session_id,
                "summary_id": summary_id,
                "transcript_id": transcript_id,
                "cost": cost,
            }
        )

    async def get_summary(self, summary_id: str) -> Optional[SummaryRecord]:
        row = self.summaries.get(summary_id)
        if row is None:
            return None
        return SummaryRecord(
            id=summary_id,
            transcript_id=row["transcript_id"],
            status=row["status"],
            content=row["content"],
            style=row["style"],
            ai_model=row["ai_model"],
            cost=row.get("cost"),
            quality=row.get("quality"),
            edit_history=tuple(row["edit_history"]),
            session_id=row["session_id"],
            generation_error=row.get("generation_error"),
            metadata=dict(row["metadata"]),
        )

    async def save_edit(self, summary_id, *, content, edit_history):
        row = self.summaries[summary_id]
        row["content"] = content
        row["status"] = "edited"
        row["edit_history"] = [dict(entry) for entry in edit_history]
        return await self.get_summary(summary_id)


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def store() -> InMemorySummaryStore:
    return InMemorySummaryStore()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
