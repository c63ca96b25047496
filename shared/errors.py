"""
Error taxonomy for reel generation.

Every failure that reaches the queue is a ``GenerationError`` tagged with an
``ErrorKind`` and a ``retryable`` flag. Providers classify their SDK errors where they
catch them; ``classify_error`` is the fallback for anything that escapes unclassified.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import aiohttp


class ErrorKind(str, Enum):
    """Classification of a failure, independent of the exception type."""

    USER = "user"
    EXTERNAL_RETRYABLE = "external_retryable"
    EXTERNAL_PERMANENT = "external_permanent"
    SYSTEM = "system"
    TEMPORARY = "temporary"


DEFAULT_USER_MESSAGES = {
    ErrorKind.USER: "The request was invalid.",
    ErrorKind.EXTERNAL_RETRYABLE: "An external service is temporarily unavailable. Please try again.",
    ErrorKind.EXTERNAL_PERMANENT: "An external service rejected the request. Please contact support.",
    ErrorKind.SYSTEM: "Video generation error. Please contact support.",
    ErrorKind.TEMPORARY: "The request timed out. Please try again.",
}

RETRYABLE_KINDS = {ErrorKind.EXTERNAL_RETRYABLE, ErrorKind.TEMPORARY}


class GenerationError(Exception):
    """Base error for the generation service."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.SYSTEM,
        *,
        retryable: bool | None = None,
        stage: str | None = None,
        code: str = "GENERATION_ERROR",
        status_code: int = 500,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable
        self.stage = stage
        self.code = code
        self.status_code = status_code
        self.user_message = user_message or message
        self.context = context or {}

    def with_stage(self, stage: str) -> "GenerationError":
        if self.stage is None:
            self.stage = stage
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "stage": self.stage,
            "code": self.code,
            "message": self.user_message,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, kind={self.kind.value}, retryable={self.retryable})"


class ValidationError(GenerationError):
    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            ErrorKind.USER,
            code="VALIDATION_ERROR",
            status_code=400,
            context=context,
        )


class RateLimitError(GenerationError):
    def __init__(self, message: str = "Rate limit exceeded", stage: str | None = None) -> None:
        super().__init__(
            message,
            ErrorKind.EXTERNAL_RETRYABLE,
            stage=stage,
            code="RATE_LIMIT_ERROR",
            status_code=429,
            user_message="Too many requests. Please try again later.",
        )


class ServiceUnavailableError(GenerationError):
    def __init__(self, service: str, stage: str | None = None) -> None:
        super().__init__(
            f"{service} service is currently unavailable",
            ErrorKind.EXTERNAL_RETRYABLE,
            stage=stage,
            code="SERVICE_UNAVAILABLE",
            status_code=503,
            user_message="Service is temporarily unavailable. Please try again later.",
        )


class ProviderError(GenerationError):
    """Failure reported by an external provider, classified from its status."""

    def __init__(
        self,
        provider: str,
        message: str,
        kind: ErrorKind,
        *,
        stage: str | None = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            f"{provider}: {message}",
            kind,
            stage=stage,
            code="PROVIDER_ERROR",
            status_code=status_code,
            user_message=DEFAULT_USER_MESSAGES[kind],
            context={"provider": provider},
        )
        self.provider = provider


class ScriptValidationError(GenerationError):
    def __init__(self, issues: list[str]) -> None:
        super().__init__(
            f"Generated script failed validation: {'; '.join(issues)}",
            ErrorKind.SYSTEM,
            retryable=True,
            stage="script",
            code="SCRIPT_VALIDATION_ERROR",
            user_message="Video generation failed. Please try again.",
            context={"issues": issues},
        )
        self.issues = issues


class QueueError(GenerationError):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message, ErrorKind.SYSTEM, code="QUEUE_ERROR", status_code=status_code)


class JobNotFoundError(GenerationError):
    def __init__(self, job_id: str) -> None:
        super().__init__(
            f"Job with ID {job_id} not found",
            ErrorKind.USER,
            code="RESOURCE_NOT_FOUND",
            status_code=404,
            context={"job_id": job_id},
        )


class ActiveJobError(GenerationError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.USER, code="JOB_ACTIVE", status_code=409)


class JobCancelledError(GenerationError):
    def __init__(self, job_id: str) -> None:
        super().__init__(
            f"Job {job_id} was abandoned by the queue",
            ErrorKind.SYSTEM,
            retryable=False,
            code="JOB_CANCELLED",
        )


def classify_status(
    status_code: int | None,
    message: str,
    *,
    provider: str,
    stage: str | None = None,
) -> GenerationError:
    """Map an HTTP-style status from a provider onto the taxonomy."""
    if status_code == 429:
        error: GenerationError = RateLimitError(f"{provider}: {message}", stage=stage)
        error.context["provider"] = provider
        return error
    if status_code is not None and status_code >= 500:
        return ProviderError(provider, message, ErrorKind.EXTERNAL_RETRYABLE, stage=stage, status_code=status_code)
    if status_code in (408, 425):
        return ProviderError(provider, message, ErrorKind.TEMPORARY, stage=stage, status_code=status_code)
    if status_code is not None and status_code >= 400:
        return ProviderError(provider, message, ErrorKind.EXTERNAL_PERMANENT, stage=stage, status_code=status_code)
    return ProviderError(provider, message, ErrorKind.SYSTEM, stage=stage)


def classify_error(error: BaseException, stage: str | None = None) -> GenerationError:
    """Return the tagged classification for any exception."""
    if isinstance(error, GenerationError):
        return error.with_stage(stage) if stage else error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
        return GenerationError(
            f"Request timed out: {error}",
            ErrorKind.TEMPORARY,
            stage=stage,
            code="TIMEOUT",
            status_code=504,
            user_message=DEFAULT_USER_MESSAGES[ErrorKind.TEMPORARY],
        )

    if isinstance(error, (ConnectionError, aiohttp.ClientConnectionError)):
        return GenerationError(
            f"Network error: {error}",
            ErrorKind.TEMPORARY,
            stage=stage,
            code="NETWORK_ERROR",
            status_code=503,
            user_message="Network error. Please try again.",
        )

    if isinstance(error, aiohttp.ClientResponseError):
        return classify_status(error.status, error.message, provider="http", stage=stage)

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return classify_status(status_code, str(error), provider=type(error).__name__, stage=stage)

    return GenerationError(
        str(error) or type(error).__name__,
        ErrorKind.SYSTEM,
        stage=stage,
        user_message="An unexpected error occurred. Please try again or contact support.",
    )
