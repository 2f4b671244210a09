"""
Error taxonomy for the candidate pipeline.

Every failure the core reports is a ``PipelineError`` subclass carrying a
structured ``code``, a caller-facing ``message``, a ``retryable`` flag and a
``details`` mapping with enough context to act on (current stage, attempted
stage, allowed stages, ...).

Callers that prefer exhaustive handling over ``try``/``except`` use the
``TransitionResult`` variants instead: ``TransitionSucceeded`` or
``TransitionFailed``, the latter wrapping exactly one of the errors below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from hirepipe.models.candidate import Candidate


class ErrorCode(str, Enum):
    NOT_FOUND = "NotFoundError"
    INVALID_TRANSITION = "InvalidTransitionError"
    STALE_TRANSITION = "StaleTransitionError"
    VALIDATION = "ValidationError"
    PERSISTENCE = "PersistenceError"


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    code: ErrorCode = ErrorCode.PERSISTENCE
    http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "retryable": self.retryable,
                "details": self.details,
            }
        }


class NotFoundError(PipelineError):
    code = ErrorCode.NOT_FOUND
    http_status = 404


class InvalidTransitionError(PipelineError):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 409


class StaleTransitionError(PipelineError):
    """The candidate's stage changed between read and conditional write.

    Recoverable: the caller re-reads the candidate and decides whether its
    change still applies.
    """

    code = ErrorCode.STALE_TRANSITION
    http_status = 409
    retryable = True


class ValidationError(PipelineError):
    code = ErrorCode.VALIDATION
    http_status = 422


class PersistenceError(PipelineError):
    code = ErrorCode.PERSISTENCE
    http_status = 503
    retryable = True


def sanitize_storage_error(error_msg: str) -> str:
    """
    Strip SQL fragments, bound parameters and stack traces from a storage error.

    Args:
        error_msg: The original driver/ORM error message

    Returns:
        First line of the message without SQL text
    """
    first_line = error_msg.split("\n")[0].strip()
    sanitized = re.sub(r"\[SQL:.*", "", first_line, flags=re.IGNORECASE)
    sanitized = re.sub(r"\[parameters:.*", "", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"\b(SELECT|INSERT|UPDATE|DELETE)\b.*", "[SQL query]", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"\(Background on this error.*", "", sanitized)
    return sanitized.strip() or "storage failure"


def create_persistence_error(action: str, original_error: Exception) -> PersistenceError:
    return PersistenceError(
        f"Failed to {action}: {sanitize_storage_error(str(original_error))}",
        original_error=original_error,
    )


@dataclass(frozen=True)
class TransitionSucceeded:
    candidate: Candidate
    ok: bool = True


@dataclass(frozen=True)
class TransitionFailed:
    error: PipelineError
    ok: bool = False

    @property
    def code(self) -> ErrorCode:
        return self.error.code


TransitionResult = Union[TransitionSucceeded, TransitionFailed]
