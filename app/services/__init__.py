"""Service layer helpers for the completion backends and model selection."""

from .errors import (
    CompletionError,
    ErrorKind,
    FallbackExhaustedError,
    GenerationCancelledError,
    InputValidationError,
    SummaryPipelineError,
)
from .fallback_engine import FallbackDecisionEngine, ModelDecision
from .llm_client import BedrockCompletionClient, CompletionResult

__all__ = [
    "BedrockCompletionClient",
    "CompletionError",
    "CompletionResult",
    "ErrorKind",
    "FallbackDecisionEngine",
    "FallbackExhaustedError",
    "GenerationCancelledError",
    "InputValidationError",
    "ModelDecision",
    "SummaryPipelineError",
]
