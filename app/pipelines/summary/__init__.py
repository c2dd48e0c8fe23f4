"""Summary generation pipeline package.

Modules are organised by the order in which `/summaries/generate` executes:

1. `context` - resolve the session and build the model decision inputs.
2. `orchestrator` - run the completion with retries and fallback.
3. `persistence` - the datastore contract and the result recorder.
4. `flow` - human-readable description of the end-to-end stages.
"""

from .context import (
    build_decision_context,
    estimate_primary_cost,
    load_session_history,
    resolve_session,
)
from .flow import PipelineStage, SummaryPipeline
from .orchestrator import (
    CancellationToken,
    FallbackOrchestrator,
    OrchestratorState,
)
from .persistence import EDITABLE_STATUSES, SummaryRecorder, SummaryStore
from .types import (
    AttemptRecord,
    GenerationOptions,
    OrchestrationResult,
    SummaryRecord,
    TranscriptRecord,
)

__all__ = [
    "AttemptRecord",
    "CancellationToken",
    "EDITABLE_STATUSES",
    "FallbackOrchestrator",
    "GenerationOptions",
    "OrchestrationResult",
    "OrchestratorState",
    "PipelineStage",
    "SummaryPipeline",
    "SummaryRecord",
    "SummaryRecorder",
    "SummaryStore",
    "TranscriptRecord",
    "build_decision_context",
    "estimate_primary_cost",
    "load_session_history",
    "resolve_session",
]
