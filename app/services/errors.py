"""Error taxonomy for the summarization pipeline.

Every error raised by the pipeline carries a stable ``code`` plus a user-safe
message and suggestions. Internal detail stays in ``str(exc)`` and the logs;
``to_payload()`` is what the HTTP layer hands back to callers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure classes produced when calling the completion service."""

    RATE_LIMIT = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    NETWORK = "NETWORK_ERROR"
    TEMPORARY_FAILURE = "TEMPORARY_FAILURE"
    AUTH = "AUTHENTICATION_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


# code -> (message, suggestions)
USER_MESSAGES: dict[str, tuple[str, tuple[str, ...]]] = {
    "VALIDATION_ERROR": (
        "Invalid input data",
        (
            "Check your transcript content",
            "Shorten the custom instructions",
            "Use a shorter transcript if it is very long",
        ),
    ),
    "TRANSCRIPT_ERROR": (
        "The transcript is not available for summarization",
        (
            "Make sure the upload finished processing",
            "Upload the transcript again",
        ),
    ),
    "TRANSCRIPT_NOT_FOUND": (
        "Transcript not found",
        ("Check the transcript identifier",),
    ),
    "RATE_LIMIT_EXCEEDED": (
        "Too many requests",
        (
            "Wait a few minutes before trying again",
            "Batch your requests to avoid hitting limits",
        ),
    ),
    "SERVICE_UNAVAILABLE": (
        "AI service temporarily unavailable",
        (
            "Try again in a few minutes",
            "Use a different summary style if available",
        ),
    ),
    "TIMEOUT": (
        "Request timed out",
        (
            "Try with a shorter transcript",
            "Use a faster summary style (executive)",
        ),
    ),
    "NETWORK_ERROR": (
        "Network connection issue",
        (
            "Try again in a few moments",
            "Contact your administrator if issues persist",
        ),
    ),
    "TEMPORARY_FAILURE": (
        "AI service hit a temporary problem",
        ("Try again in a few moments",),
    ),
    "AUTHENTICATION_ERROR": (
        "The AI service rejected our credentials",
        (
            "Contact your administrator",
            "Verify the model access configuration",
        ),
    ),
    "MALFORMED_REQUEST": (
        "The AI service rejected the request",
        (
            "Check your custom instructions",
            "Try a different summary style",
        ),
    ),
    "EMPTY_RESPONSE": (
        "The AI service returned an empty summary",
        ("Try generating the summary again",),
    ),
    "GENERATION_FAILED": (
        "Summary generation failed",
        (
            "Try generating the summary again",
            "Contact support if the issue persists",
        ),
    ),
    "CANCELLED": (
        "Summary generation was cancelled",
        ("Start the generation again when ready",),
    ),
    "SUMMARY_NOT_FOUND": (
        "Summary not found",
        ("Check the summary identifier",),
    ),
    "FORMAT_NOT_AVAILABLE": (
        "That summary format is not available",
        ("Request one of: ui, api, text, markdown, email",),
    ),
    "SUMMARY_STATE_ERROR": (
        "This summary cannot be edited right now",
        ("Wait until generation completes",),
    ),
    "UNKNOWN_ERROR": (
        "An unexpected error occurred",
        (
            "Try your request again",
            "Contact support if the issue persists",
        ),
    ),
}


class SummaryPipelineError(RuntimeError):
    """Base class for every error surfaced by the summarization pipeline."""

    code = "UNKNOWN_ERROR"
    retryable = False

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, USER_MESSAGES["UNKNOWN_ERROR"])[0]

    @property
    def suggestions(self) -> list[str]:
        return list(USER_MESSAGES.get(self.code, USER_MESSAGES["UNKNOWN_ERROR"])[1])

    def to_payload(self) -> dict[str, Any]:
        """User-facing error structure; never includes internal detail."""

        return {
            "code": self.code,
            "message": self.user_message,
            "suggestions": self.suggestions,
            "retryable": self.retryable,
        }


class InputValidationError(SummaryPipelineError):
    """Bad input: empty transcript, oversized instructions, context overflow."""

    code = "VALIDATION_ERROR"


class TranscriptError(SummaryPipelineError):
    """Transcript missing, not processed yet, or empty."""

    code = "TRANSCRIPT_ERROR"


class TranscriptNotFoundError(TranscriptError):
    code = "TRANSCRIPT_NOT_FOUND"


class SummaryNotFoundError(SummaryPipelineError):
    code = "SUMMARY_NOT_FOUND"


class SummaryFormatNotFoundError(SummaryNotFoundError):
    code = "FORMAT_NOT_AVAILABLE"


class SummaryStateError(SummaryPipelineError):
    """Raised when an edit targets a summary that is not completed."""

    code = "SUMMARY_STATE_ERROR"


class GenerationCancelledError(SummaryPipelineError):
    code = "CANCELLED"


class CompletionError(SummaryPipelineError):
    """A single failed call to the completion service."""

    kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        model_role: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.model_role = model_role
        self.status_code = status_code

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind.value


class RateLimitExceededError(CompletionError):
    kind = ErrorKind.RATE_LIMIT
    retryable = True


class ServiceUnavailableError(CompletionError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    retryable = True


class CompletionTimeoutError(CompletionError):
    kind = ErrorKind.TIMEOUT
    retryable = True


class NetworkError(CompletionError):
    kind = ErrorKind.NETWORK
    retryable = True


class TemporaryFailureError(CompletionError):
    kind = ErrorKind.TEMPORARY_FAILURE
    retryable = True


class AuthenticationError(CompletionError):
    kind = ErrorKind.AUTH


class MalformedRequestError(CompletionError):
    kind = ErrorKind.VALIDATION

    @property
    def code(self) -> str:  # type: ignore[override]
        return "MALFORMED_REQUEST"


class UnknownCompletionError(CompletionError):
    kind = ErrorKind.UNKNOWN


class EmptyResponseError(CompletionError):
    """The service answered successfully but without usable content."""

    kind = ErrorKind.SERVICE_UNAVAILABLE
    retryable = True

    @property
    def code(self) -> str:  # type: ignore[override]
        return "EMPTY_RESPONSE"


ERRORS_BY_KIND: dict[ErrorKind, type[CompletionError]] = {
    ErrorKind.RATE_LIMIT: RateLimitExceededError,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailableError,
    ErrorKind.TIMEOUT: CompletionTimeoutError,
    ErrorKind.NETWORK: NetworkError,
    ErrorKind.TEMPORARY_FAILURE: TemporaryFailureError,
    ErrorKind.AUTH: AuthenticationError,
    ErrorKind.VALIDATION: MalformedRequestError,
    ErrorKind.UNKNOWN: UnknownCompletionError,
}


class FallbackExhaustedError(SummaryPipelineError):
    """All attempts failed; names the last cause and the attempt count."""

    code = "GENERATION_FAILED"

    def __init__(self, last_error: CompletionError, attempts: int) -> None:
        super().__init__(
            f"Summary generation failed after {attempts} attempts. "
            f"Last error ({last_error.code}): {last_error}"
        )
        self.last_error = last_error
        self.attempts = attempts

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.last_error.retryable

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["attempts"] = self.attempts
        payload["cause"] = self.last_error.code
        return payload


def user_facing_error(exc: BaseException) -> dict[str, Any]:
    """Map any exception to the stable user-facing payload."""

    if isinstance(exc, SummaryPipelineError):
        return exc.to_payload()
    message, suggestions = USER_MESSAGES["UNKNOWN_ERROR"]
    return {
        "code": "UNKNOWN_ERROR",
        "message": message,
        "suggestions": list(suggestions),
        "retryable": False,
    }


__all__ = [
    "ErrorKind",
    "USER_MESSAGES",
    "SummaryPipelineError",
    "InputValidationError",
    "TranscriptError",
    "TranscriptNotFoundError",
    "SummaryNotFoundError",
    "SummaryFormatNotFoundError",
    "SummaryStateError",
    "GenerationCancelledError",
    "CompletionError",
    "RateLimitExceededError",
    "ServiceUnavailableError",
    "CompletionTimeoutError",
    "NetworkError",
    "TemporaryFailureError",
    "AuthenticationError",
    "MalformedRequestError",
    "UnknownCompletionError",
    "EmptyResponseError",
    "ERRORS_BY_KIND",
    "FallbackExhaustedError",
    "user_facing_error",
]
