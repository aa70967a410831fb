"""Error classification for retry decisions.

Maps any failure onto one of three categories:
- transient: Network noise, timeouts. Safe to retry unchanged.
- recoverable: Tests, lint, build failures. A retry may succeed after a fix.
- fatal: Blocked work, permission or missing-file errors, anything unknown.
"""

from __future__ import annotations

import errno
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import (
    CheckpointError,
    CodeGenerationError,
    CommandTimeoutError,
    EscalationError,
    EscalationRequiredError,
    ImplementationBlockedError,
    OperationTimeoutError,
    VerificationFailedError,
)

MAX_MESSAGE_LENGTH = 500


class ErrorCategory(str, Enum):
    """Error categories driving the retry decision."""

    TRANSIENT = "transient"  # Infrastructure noise, retry unchanged
    RECOVERABLE = "recoverable"  # Verifiable failure, retry after a fix
    FATAL = "fatal"  # Needs external intervention


@dataclass(frozen=True)
class WorkerErrorInfo:
    """Structured description of a single failure."""

    category: ErrorCategory
    code: str
    message: str
    retryable: bool
    context: dict[str, Any] = field(default_factory=dict)
    suggested_action: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
            "suggested_action": self.suggested_action,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkerErrorInfo:
        category = ErrorCategory(data["category"])
        return cls(
            category=category,
            code=data["code"],
            message=data["message"],
            retryable=data.get("retryable", category != ErrorCategory.FATAL),
            context=data.get("context", {}),
            suggested_action=data.get("suggested_action", ""),
        )


# Message patterns for errors that arrive without a known kind.
# Each entry is (regex_pattern, step) where step names what failed.
RECOVERABLE_PATTERNS: list[tuple[str, str]] = [
    (r"test(s)?\s*(failed|failure)|assertion\s*(failed|error)|AssertionError", "test"),
    (r"(\d+)\s*test(s)?\s*failed|FAILED\s+\S+::", "test"),
    (r"lint(er|ing)?\s*(error|failed)|(ruff|flake8|eslint|pylint).*error", "lint"),
    (r"build\s*(error|failed)|compilation\s*(error|failed)", "build"),
    (r"type\s*check(ing)?\s*(error|failed)|(mypy|pyright|tsc)\s*.*error|error TS\d+", "typecheck"),
]

TRANSIENT_PATTERNS: list[str] = [
    r"connection\s*(refused|reset|timed?\s*out)",
    r"ECONNREFUSED|ECONNRESET|ETIMEDOUT|EPIPE",
    r"(network|socket)\s*(error|unreachable)",
    r"timeout|timed?\s*out|deadline\s*exceeded",
]

FATAL_PATTERNS: list[str] = [
    r"permission\s*denied|EACCES|EPERM",
    r"no\s*such\s*file|file\s*not\s*found|ENOENT",
]

_TRANSIENT_CODES = {"ETIMEDOUT", "ECONNRESET", "ECONNREFUSED", "TIMEOUT"}


def _error_code_attr(error: BaseException) -> str | None:
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else None


def _matches_any(patterns: list[str], message: str) -> bool:
    return any(re.search(pattern, message, re.IGNORECASE) for pattern in patterns)


def _recoverable_step_from_message(message: str) -> str | None:
    for pattern, step in RECOVERABLE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            return step
    return None


def _is_fatal_kind(error: BaseException) -> bool:
    if isinstance(error, (ImplementationBlockedError, EscalationRequiredError, EscalationError, CheckpointError)):
        return True
    if isinstance(error, (PermissionError, FileNotFoundError)):
        return True
    if isinstance(error, OSError) and error.errno in (errno.EACCES, errno.EPERM, errno.ENOENT):
        return True
    return _error_code_attr(error) in ("EACCES", "EPERM", "ENOENT")


def _is_transient_kind(error: BaseException) -> bool:
    if isinstance(error, (OperationTimeoutError, CommandTimeoutError, TimeoutError, ConnectionError)):
        return True
    return _error_code_attr(error) in _TRANSIENT_CODES


def categorize(error: BaseException) -> ErrorCategory:
    """Classify an error.

    Error kinds are checked before message wording. Within each pass the
    order is fatal, recoverable, transient. Anything left over is fatal so
    that unknown errors are never blindly retried.

    Args:
        error: The failure to classify.

    Returns:
        The ErrorCategory for the failure.
    """
    if _is_fatal_kind(error):
        return ErrorCategory.FATAL
    if isinstance(error, (VerificationFailedError, CodeGenerationError)):
        return ErrorCategory.RECOVERABLE
    if _is_transient_kind(error):
        return ErrorCategory.TRANSIENT

    message = str(error)
    if _matches_any(FATAL_PATTERNS, message):
        return ErrorCategory.FATAL
    if _recoverable_step_from_message(message) is not None:
        return ErrorCategory.RECOVERABLE
    if _matches_any(TRANSIENT_PATTERNS, message):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.FATAL


def is_retryable(error: BaseException) -> bool:
    """Check if an error may be retried."""
    return categorize(error) != ErrorCategory.FATAL


def requires_escalation(error: BaseException) -> bool:
    """Check if an error must go straight to a human operator."""
    return categorize(error) == ErrorCategory.FATAL


def _failing_steps(error: BaseException | WorkerErrorInfo | None) -> list[str]:
    if isinstance(error, WorkerErrorInfo):
        steps = error.context.get("failed_steps") or error.context.get("step")
        if isinstance(steps, str):
            return [steps]
        return list(steps or [])
    if isinstance(error, VerificationFailedError):
        return list(error.steps)
    if isinstance(error, EscalationRequiredError):
        return list(error.failed_steps)
    if error is not None:
        step = _recoverable_step_from_message(str(error))
        if step:
            return [step]
    return []


def suggested_action(
    error: BaseException | WorkerErrorInfo | None,
    category: ErrorCategory,
) -> str:
    """Describe what should happen next for a classified error.

    Args:
        error: The failure, either raw or already described.
        category: Its category.

    Returns:
        A short human-readable action.
    """
    if category == ErrorCategory.TRANSIENT:
        return "Retry with backoff"

    if category == ErrorCategory.RECOVERABLE:
        steps = _failing_steps(error)
        if not steps:
            return "Fix the reported failure and retry"
        if len(steps) == 1:
            return f"Fix the failing {steps[0]} step and retry"
        return f"Fix the failing {', '.join(steps)} steps and retry"

    blockers: list[str] = []
    if isinstance(error, ImplementationBlockedError):
        blockers = error.blockers
    elif isinstance(error, WorkerErrorInfo):
        blockers = list(error.context.get("blockers", []))
    if blockers:
        return f"Escalate to a human operator (blockers: {', '.join(blockers)})"
    return "Escalate to a human operator"


def _code_for(error: BaseException) -> str:
    code = getattr(type(error), "code", None)
    if isinstance(code, str):
        return code
    if isinstance(error, PermissionError):
        return "PERMISSION_DENIED"
    if isinstance(error, FileNotFoundError):
        return "FILE_NOT_FOUND"
    if isinstance(error, ConnectionError):
        return "NETWORK_ERROR"
    if isinstance(error, TimeoutError):
        return "TIMEOUT"
    name = type(error).__name__
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def _truncate(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def _own_context(error: BaseException) -> dict[str, Any]:
    ctx = getattr(error, "context", None)
    if isinstance(ctx, Mapping):
        return dict(ctx)
    if isinstance(error, OSError):
        own: dict[str, Any] = {}
        if error.errno is not None:
            own["errno"] = error.errno
        if error.filename is not None:
            own["filename"] = str(error.filename)
        return own
    return {}


def build_error_info(
    error: BaseException,
    extra_context: Mapping[str, Any] | None = None,
) -> WorkerErrorInfo:
    """Describe a failure as a WorkerErrorInfo.

    Args:
        error: The failure.
        extra_context: Caller context (task id, step, attempt). Keys here
            override the ones the error kind carries.

    Returns:
        WorkerErrorInfo for the failure.
    """
    category = categorize(error)
    context = _own_context(error)
    if extra_context:
        context.update(extra_context)

    return WorkerErrorInfo(
        category=category,
        code=_code_for(error),
        message=_truncate(str(error) or type(error).__name__),
        retryable=category != ErrorCategory.FATAL,
        context=context,
        suggested_action=suggested_action(error, category),
    )
