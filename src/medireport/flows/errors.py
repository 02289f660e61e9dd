"""Failure taxonomy shared by flows, storage and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FailureKind = Literal["temporary", "configuration", "invalid_input", "internal"]

_TEMPORARY_MESSAGE = (
    "The analysis service is temporarily unavailable. Please try again in a few moments."
)
_CONFIGURATION_MESSAGE = (
    "The service is not configured correctly. Please contact support if this keeps happening."
)
_INVALID_INPUT_MESSAGE = "The request was invalid. Please check the content and try again."
_OUTPUT_MESSAGE = (
    "The analysis returned an unexpected result. Please check the content and try again."
)
_PERSISTENCE_MESSAGE = "Your data could not be saved. Please try again later."
_INTERNAL_MESSAGE = "Something went wrong. Please try again."


@dataclass(frozen=True)
class ValidationIssue:
    """One failing location in a validated value."""

    field: str
    message: str
    kind: str = "value_error"

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "kind": self.kind}


class MediReportError(Exception):
    """Base class for every classified failure."""

    default_stage = "internal"

    def __init__(self, message: str, *, stage: str | None = None, flow: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.flow = flow

    def with_flow(self, flow: str) -> MediReportError:
        if self.flow is None:
            self.flow = flow
        return self

    def __str__(self) -> str:
        prefix = f"[{self.flow}:{self.stage}]" if self.flow else f"[{self.stage}]"
        return f"{prefix} {self.message}"


class SchemaValidationError(MediReportError):
    """A value did not match its declared schema."""

    def __init__(
        self,
        message: str,
        *,
        issues: list[ValidationIssue] | None = None,
        stage: str | None = None,
        flow: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, flow=flow)
        self.issues = list(issues or [])

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class InputError(SchemaValidationError):
    default_stage = "input"


class OutputValidationError(SchemaValidationError):
    default_stage = "output"


class UpstreamTransientError(MediReportError):
    """Upstream failure expected to resolve on retry (503-class)."""

    default_stage = "upstream"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        stage: str | None = None,
        flow: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, flow=flow)
        self.status_code = status_code


class RetryExhaustedError(UpstreamTransientError):
    """Every attempt allowed by the retry policy failed transiently."""

    def __init__(self, last_error: BaseException, *, attempts: int) -> None:
        super().__init__(
            f"retries exhausted after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.last_error = last_error
        self.attempts = attempts


class UpstreamRejectedError(MediReportError):
    """Non-retryable upstream failure (auth, configuration, bad request)."""

    default_stage = "upstream"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        stage: str | None = None,
        flow: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, flow=flow)
        self.status_code = status_code


class PersistenceError(MediReportError):
    default_stage = "persistence"


def failure_kind(exc: BaseException) -> FailureKind:
    if isinstance(exc, UpstreamTransientError):
        return "temporary"
    if isinstance(exc, UpstreamRejectedError):
        return "configuration"
    if isinstance(exc, SchemaValidationError):
        return "invalid_input"
    if isinstance(exc, PersistenceError):
        return "temporary"
    return "internal"


def user_message(exc: BaseException) -> str:
    """Human-readable failure text for user-initiated actions."""
    if isinstance(exc, UpstreamTransientError):
        return _TEMPORARY_MESSAGE
    if isinstance(exc, UpstreamRejectedError):
        return _CONFIGURATION_MESSAGE
    if isinstance(exc, InputError):
        if "Unsupported MIME type" in exc.message:
            return (
                "The uploaded file format is not supported. Please use .docx or .pdf files, "
                "an image, or paste the text directly."
            )
        detail = exc.message.rstrip(".")
        return f"{_INVALID_INPUT_MESSAGE} ({detail})"
    if isinstance(exc, OutputValidationError):
        return _OUTPUT_MESSAGE
    if isinstance(exc, PersistenceError):
        return _PERSISTENCE_MESSAGE
    return _INTERNAL_MESSAGE
