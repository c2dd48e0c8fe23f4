"""Thin Bedrock client wrapper for summary completions.

The client performs exactly one ``converse`` call per invocation. Retries,
model switching and backoff belong to the fallback orchestrator, so botocore
retries are disabled and every failure is translated into a
:class:`~app.services.errors.CompletionError` carrying an ``ErrorKind``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)
from fastapi.concurrency import run_in_threadpool

from app.config.settings import settings
from app.services.aws import bedrock_client_config, create_boto3_client
from app.services.errors import (
    ERRORS_BY_KIND,
    CompletionError,
    EmptyResponseError,
    ErrorKind,
)
from app.services.prompt_builder import PromptMessage

logger = logging.getLogger(__name__)

_CODE_KINDS: dict[str, ErrorKind] = {
    "ThrottlingException": ErrorKind.RATE_LIMIT,
    "TooManyRequestsException": ErrorKind.RATE_LIMIT,
    "ServiceQuotaExceededException": ErrorKind.RATE_LIMIT,
    "ServiceUnavailableException": ErrorKind.SERVICE_UNAVAILABLE,
    "InternalServerException": ErrorKind.SERVICE_UNAVAILABLE,
    "ModelNotReadyException": ErrorKind.SERVICE_UNAVAILABLE,
    "ModelStreamErrorException": ErrorKind.TEMPORARY_FAILURE,
    "ModelErrorException": ErrorKind.TEMPORARY_FAILURE,
    "ModelTimeoutException": ErrorKind.TIMEOUT,
    "RequestTimeout": ErrorKind.TIMEOUT,
    "ETIMEDOUT": ErrorKind.TIMEOUT,
    "ECONNRESET": ErrorKind.NETWORK,
    "ECONNREFUSED": ErrorKind.NETWORK,
    "ENOTFOUND": ErrorKind.NETWORK,
    "AccessDeniedException": ErrorKind.AUTH,
    "UnrecognizedClientException": ErrorKind.AUTH,
    "ExpiredTokenException": ErrorKind.AUTH,
    "InvalidSignatureException": ErrorKind.AUTH,
    "ValidationException": ErrorKind.VALIDATION,
    "ResourceNotFoundException": ErrorKind.VALIDATION,
}

_TYPE_KINDS: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (ReadTimeoutError, ErrorKind.TIMEOUT),
    (ConnectTimeoutError, ErrorKind.TIMEOUT),
    (EndpointConnectionError, ErrorKind.NETWORK),
    (NoCredentialsError, ErrorKind.AUTH),
    (TimeoutError, ErrorKind.TIMEOUT),
    (ConnectionError, ErrorKind.NETWORK),
)

# Order matters: the first matching substring wins.
_MESSAGE_KINDS: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("rate limit", "too many requests", "throttl"), ErrorKind.RATE_LIMIT),
    (("timed out", "timeout"), ErrorKind.TIMEOUT),
    (("network", "connection", "dns"), ErrorKind.NETWORK),
    (("unavailable", "overloaded"), ErrorKind.SERVICE_UNAVAILABLE),
    (("temporar",), ErrorKind.TEMPORARY_FAILURE),
    (("unauthorized", "forbidden", "credential", "access denied"), ErrorKind.AUTH),
    (("invalid", "malformed", "validation"), ErrorKind.VALIDATION),
)


@dataclass(frozen=True)
class CompletionResult:
    content: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    model_id: str
    request_id: str | None = None
    finish_reason: str | None = None
    latency_ms: float = 0.0


class CompletionClient(Protocol):
    async def complete(
        self,
        messages: Sequence[PromptMessage],
        *,
        model_id: str,
        max_tokens: int,
        temperature: float,
        model_role: str | None = None,
    ) -> CompletionResult:
        ...


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return int(status) if status else None
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _error_code(exc: BaseException) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    code = getattr(exc, "code", None)
    return code if isinstance(code, str) else None


def _kind_from_status(status: int) -> ErrorKind | None:
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status in (401, 403):
        return ErrorKind.AUTH
    if status == 408:
        return ErrorKind.TIMEOUT
    if status >= 500:
        return ErrorKind.SERVICE_UNAVAILABLE
    if 400 <= status < 500:
        return ErrorKind.VALIDATION
    return None


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a raw transport failure onto the fixed ``ErrorKind`` taxonomy.

    Priority: HTTP status, then service error code or transport exception
    type, then message substrings. Anything else is ``UNKNOWN``.
    """

    if isinstance(exc, CompletionError):
        return exc.kind

    status = _status_code(exc)
    if status is not None:
        kind = _kind_from_status(status)
        if kind is not None:
            return kind

    code = _error_code(exc)
    if code and code in _CODE_KINDS:
        return _CODE_KINDS[code]
    for exc_type, kind in _TYPE_KINDS:
        if isinstance(exc, exc_type):
            return kind

    message = str(exc).lower()
    for needles, kind in _MESSAGE_KINDS:
        if any(needle in message for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def translate_error(exc: BaseException, model_role: str | None = None) -> CompletionError:
    """Wrap ``exc`` in the ``CompletionError`` subclass for its kind."""

    if isinstance(exc, CompletionError):
        if exc.model_role is None:
            exc.model_role = model_role
        return exc
    kind = classify_error(exc)
    error_cls = ERRORS_BY_KIND[kind]
    return error_cls(
        str(exc) or exc.__class__.__name__,
        model_role=model_role,
        status_code=_status_code(exc),
    )


def _to_bedrock_messages(
    messages: Sequence[PromptMessage],
) -> tuple[list[dict[str, str]], list[dict[str, Any]]]:
    system_blocks: list[dict[str, str]] = []
    conversation: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            system_blocks.append({"text": message.content})
        else:
            conversation.append(
                {"role": message.role, "content": [{"text": message.content}]}
            )
    return system_blocks, conversation


class BedrockCompletionClient:
    """Invoke Amazon Bedrock models with standard configuration."""

    def __init__(self, client: Any | None = None) -> None:
        self._client = client or create_boto3_client(
            "bedrock-runtime",
            config=bedrock_client_config(),
        )

    async def complete(
        self,
        messages: Sequence[PromptMessage],
        *,
        model_id: str,
        max_tokens: int,
        temperature: float,
        model_role: str | None = None,
    ) -> CompletionResult:
        """Run one Bedrock ``converse`` call and return text plus usage."""

        system_blocks, conversation = _to_bedrock_messages(messages)
        request: dict[str, Any] = {
            "modelId": model_id,
            "messages": conversation,
            "inferenceConfig": {
                "maxTokens": max_tokens,
                "temperature": temperature,
                "topP": settings.bedrock.top_p,
            },
        }
        if system_blocks:
            request["system"] = system_blocks

        started = time.perf_counter()
        try:
            response = await run_in_threadpool(self._client.converse, **request)
        except (ClientError, BotoCoreError, OSError) as exc:
            error = translate_error(exc, model_role)
            logger.warning(
                "Bedrock call failed model=%s kind=%s: %s",
                model_id,
                error.kind.value,
                exc,
            )
            raise error from exc
        latency_ms = (time.perf_counter() - started) * 1000

        content_blocks = (
            response.get("output", {})
            .get("message", {})
            .get("content", [])
        )
        texts = [block.get("text", "") for block in content_blocks if block.get("text")]
        content = "\n".join(texts).strip()
        if not content:
            raise EmptyResponseError(
                f"Model {model_id} returned no content", model_role=model_role
            )

        usage = response.get("usage", {})
        input_tokens = int(usage.get("inputTokens", 0))
        output_tokens = int(usage.get("outputTokens", 0))
        return CompletionResult(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=int(usage.get("totalTokens", input_tokens + output_tokens)),
            model_id=model_id,
            request_id=response.get("ResponseMetadata", {}).get("RequestId"),
            finish_reason=response.get("stopReason"),
            latency_ms=latency_ms,
        )


__all__ = [
    "BedrockCompletionClient",
    "CompletionClient",
    "CompletionResult",
    "classify_error",
    "translate_error",
]
