"""Error kinds raised by the worker core.

Each kind carries a short ``code`` and the context that the classifier
copies into a :class:`~shipwright.recovery.classifier.WorkerErrorInfo`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .retry.escalation import EscalationReport, RetryAttemptRecord
    from .verification.models import VerificationReport


class WorkerError(Exception):
    """Base class for worker errors."""

    code = "WORKER_ERROR"

    @property
    def context(self) -> dict[str, Any]:
        """Context carried by this error kind."""
        return {}


class ImplementationBlockedError(WorkerError):
    """Implementation cannot proceed until external blockers are resolved."""

    code = "IMPLEMENTATION_BLOCKED"

    def __init__(self, issue_id: str, blockers: Sequence[str]):
        self.issue_id = issue_id
        self.blockers = list(blockers)
        super().__init__(f"Implementation blocked for issue {issue_id}: {', '.join(self.blockers)}")

    @property
    def context(self) -> dict[str, Any]:
        return {"issue_id": self.issue_id, "blockers": list(self.blockers)}


class VerificationFailedError(WorkerError):
    """One or more verification steps failed."""

    code = "VERIFICATION_FAILED"

    def __init__(
        self,
        steps: str | Sequence[str],
        output: str = "",
        exit_code: int | None = None,
    ):
        self.steps = [steps] if isinstance(steps, str) else list(steps)
        self.output = output
        self.exit_code = exit_code
        detail = f": {output[:200]}" if output else ""
        super().__init__(f"{', '.join(self.steps)} verification failed{detail}")

    @property
    def step(self) -> str:
        """The first failing step."""
        return self.steps[0] if self.steps else "verification"

    @property
    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"failed_steps": list(self.steps)}
        if self.exit_code is not None:
            ctx["exit_code"] = self.exit_code
        return ctx


class CodeGenerationError(WorkerError):
    """The code generator reported a failure."""

    code = "CODE_GENERATION_FAILED"

    def __init__(self, issue_id: str, reason: str | None = None):
        self.issue_id = issue_id
        self.reason = reason
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Failed to generate code for issue {issue_id}{suffix}")

    @property
    def context(self) -> dict[str, Any]:
        return {"issue_id": self.issue_id}


class OperationTimeoutError(WorkerError):
    """An operation exceeded its per-attempt timeout."""

    code = "OPERATION_TIMEOUT"

    def __init__(self, task_id: str, operation: str, timeout_ms: int):
        self.task_id = task_id
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"Operation '{operation}' timed out after {timeout_ms}ms for task {task_id}")

    @property
    def context(self) -> dict[str, Any]:
        return {"operation": self.operation, "timeout_ms": self.timeout_ms}


class CommandTimeoutError(WorkerError):
    """An external command exceeded its timeout and was terminated."""

    code = "COMMAND_TIMEOUT"

    def __init__(self, command: str, timeout_ms: int, output: str = ""):
        self.command = command
        self.timeout_ms = timeout_ms
        self.output = output
        super().__init__(f"Command timed out after {timeout_ms}ms: {command}")

    @property
    def context(self) -> dict[str, Any]:
        return {"command": self.command, "timeout_ms": self.timeout_ms}


class CheckpointError(WorkerError):
    """A checkpoint could not be persisted."""

    code = "CHECKPOINT_WRITE_FAILED"

    def __init__(self, task_id: str, cause: BaseException | None = None):
        self.task_id = task_id
        self.cause = cause
        suffix = f": {cause}" if cause else ""
        super().__init__(f"Failed to write checkpoint for task {task_id}{suffix}")


class EscalationError(WorkerError):
    """An escalation report could not be persisted."""

    code = "ESCALATION_WRITE_FAILED"

    def __init__(self, task_id: str, cause: BaseException | None = None):
        self.task_id = task_id
        self.cause = cause
        suffix = f": {cause}" if cause else ""
        super().__init__(f"Failed to write escalation report for task {task_id}{suffix}")


class MaxRetriesExceededError(WorkerError):
    """All attempts allowed by the retry policy failed."""

    code = "MAX_RETRIES_EXCEEDED"

    def __init__(
        self,
        task_id: str,
        attempts: int,
        last_error: BaseException | None = None,
        retry_attempts: Sequence[RetryAttemptRecord] = (),
    ):
        self.task_id = task_id
        self.attempts = attempts
        self.last_error = last_error
        self.retry_attempts = tuple(retry_attempts)
        suffix = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Max retries ({attempts}) exceeded for task {task_id}{suffix}")

    @property
    def context(self) -> dict[str, Any]:
        return {"total_attempts": self.attempts, "max_retries_exceeded": True}


class EscalationRequiredError(WorkerError):
    """Verification failed after every fix attempt; a human has to step in."""

    code = "ESCALATION_REQUIRED"

    def __init__(
        self,
        task_id: str,
        failed_steps: Sequence[str],
        report: VerificationReport | None = None,
        total_fix_attempts: int = 0,
        analysis: str = "",
        escalation: EscalationReport | None = None,
    ):
        self.task_id = task_id
        self.failed_steps = list(failed_steps)
        self.report = report
        self.total_fix_attempts = total_fix_attempts
        self.analysis = analysis
        self.escalation = escalation
        super().__init__(
            f"Escalation required for task {task_id}: "
            f"{len(self.failed_steps)} step(s) failed after {total_fix_attempts} fix attempt(s)"
        )

    @property
    def context(self) -> dict[str, Any]:
        return {"failed_steps": list(self.failed_steps), "total_fix_attempts": self.total_fix_attempts}
