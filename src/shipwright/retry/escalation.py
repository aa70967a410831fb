"""Escalation protocol for failed tasks.

When a task cannot be completed automatically, a report is written for a
human operator: what failed, how many times it was tried, and what to do
next. Reports are persisted as JSON for tooling and as markdown for people.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Union

from ..errors import EscalationError
from ..recovery.checkpoints import validate_task_id
from ..recovery.classifier import ErrorCategory, WorkerErrorInfo, suggested_action

logger = logging.getLogger(__name__)

DEFAULT_ESCALATION_DIR = Path(".shipwright") / "escalations"

EscalationCallback = Callable[["EscalationReport"], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class RetryAttemptRecord:
    """Record of a failed attempt that was followed by a retry."""

    attempt: int
    error_message: str
    delay_ms: int
    category: ErrorCategory = ErrorCategory.TRANSIENT
    fix_attempted: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "error_message": self.error_message,
            "delay_ms": self.delay_ms,
            "category": self.category.value,
            "fix_attempted": self.fix_attempted,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryAttemptRecord:
        return cls(
            attempt=int(data["attempt"]),
            error_message=data["error_message"],
            delay_ms=int(data.get("delay_ms", 0)),
            category=ErrorCategory(data.get("category", "transient")),
            fix_attempted=bool(data.get("fix_attempted", False)),
            timestamp=data.get("timestamp", ""),
        )


def build_recommendation(error: WorkerErrorInfo) -> str:
    """Operator guidance for an escalated error, based on its category."""
    if error.category == ErrorCategory.FATAL:
        return f"Requires manual intervention. {error.suggested_action}"
    if error.category == ErrorCategory.RECOVERABLE:
        return f"Automatic fix attempts exhausted. {error.suggested_action}"
    return f"Max retries exceeded due to transient failures. {error.suggested_action}"


@dataclass(frozen=True)
class EscalationReport:
    """Report for human escalation."""

    task_id: str
    worker_id: str
    work_item: Any
    error: WorkerErrorInfo
    suggested_action: str
    recommendation: str = ""
    attempts: tuple[RetryAttemptRecord, ...] = ()
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "work_item": self.work_item,
            "error": self.error.to_dict(),
            "suggested_action": self.suggested_action,
            "recommendation": self.recommendation,
            "attempts": [a.to_dict() for a in self.attempts],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EscalationReport:
        return cls(
            task_id=data["task_id"],
            worker_id=data.get("worker_id", ""),
            work_item=data.get("work_item"),
            error=WorkerErrorInfo.from_dict(data["error"]),
            suggested_action=data.get("suggested_action", ""),
            recommendation=data.get("recommendation", ""),
            attempts=tuple(RetryAttemptRecord.from_dict(a) for a in data.get("attempts", [])),
            timestamp=data.get("timestamp", ""),
        )

    def to_markdown(self) -> str:
        """Convert report to markdown format."""
        lines = [
            "# Escalation Report",
            "",
            f"**Task ID:** {self.task_id}",
            f"**Worker:** {self.worker_id}",
            f"**Generated:** {self.timestamp}",
            "",
            "## Error",
            "",
            f"- **Category:** {self.error.category.value}",
            f"- **Code:** {self.error.code}",
            f"- **Message:** {self.error.message}",
        ]

        failed_steps = self.error.context.get("failed_steps")
        if failed_steps:
            lines.append(f"- **Failed steps:** {', '.join(failed_steps)}")

        if self.attempts:
            lines.extend(["", "## Attempt History", ""])
            for record in self.attempts:
                lines.append(f"### Attempt {record.attempt}")
                lines.append("")
                lines.append(f"- **Category:** {record.category.value}")
                lines.append(f"- **Retry delay:** {record.delay_ms}ms")
                if record.fix_attempted:
                    lines.append("- **Fix attempted:** yes")
                lines.append("")
                lines.append("```")
                lines.append(record.error_message[:500])
                lines.append("```")
                lines.append("")

        lines.extend(
            [
                "",
                "## Suggested Action",
                "",
                self.suggested_action,
                "",
                "## Recommendation",
                "",
                self.recommendation,
                "",
            ]
        )

        if self.work_item is not None:
            lines.extend(["## Work Item", "", "```json"])
            lines.append(json.dumps(self.work_item, indent=2, default=str))
            lines.extend(["```", ""])

        return "\n".join(lines)


class EscalationReporter:
    """Builds, persists and forwards escalation reports."""

    def __init__(
        self,
        escalation_dir: Path | str = DEFAULT_ESCALATION_DIR,
        worker_id: str = "worker",
        notify: EscalationCallback | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize reporter.

        Args:
            escalation_dir: Directory receiving ``<task_id>-escalation.json``
                and ``<task_id>-escalation.md``.
            worker_id: Identity stamped on every report.
            notify: Optional callback, sync or async, invoked after persistence.
            logger: Logger for escalation events.
        """
        self.escalation_dir = Path(escalation_dir)
        self.worker_id = worker_id
        self.notify = notify
        self.logger = logger or logging.getLogger(__name__)

    def json_path(self, task_id: str) -> Path:
        return self.escalation_dir / f"{validate_task_id(task_id)}-escalation.json"

    def markdown_path(self, task_id: str) -> Path:
        return self.escalation_dir / f"{validate_task_id(task_id)}-escalation.md"

    async def escalate(
        self,
        task_id: str,
        work_item: Any,
        error_info: WorkerErrorInfo,
        attempts: Sequence[RetryAttemptRecord] = (),
    ) -> EscalationReport:
        """Escalate a task to a human operator.

        Args:
            task_id: The failed task.
            work_item: Opaque description of the work, copied into the report.
            error_info: The error that caused the escalation.
            attempts: Retry history for the task.

        Returns:
            The EscalationReport that was persisted.

        Raises:
            ValueError: If the task id is not a plain file name.
            EscalationError: If the report could not be written.
        """
        validate_task_id(task_id)
        action = suggested_action(error_info, error_info.category)
        if error_info.suggested_action != action:
            error_info = WorkerErrorInfo(
                category=error_info.category,
                code=error_info.code,
                message=error_info.message,
                retryable=error_info.retryable,
                context=error_info.context,
                suggested_action=action,
            )

        report = EscalationReport(
            task_id=task_id,
            worker_id=self.worker_id,
            work_item=work_item,
            error=error_info,
            suggested_action=action,
            recommendation=build_recommendation(error_info),
            attempts=tuple(attempts),
        )

        self.logger.warning(
            f"Escalating task {task_id}: {error_info.message}",
            extra={"event": "escalation_raised", "task_id": task_id, "category": error_info.category.value},
        )

        try:
            self.escalation_dir.mkdir(parents=True, exist_ok=True)
            self.json_path(task_id).write_text(json.dumps(report.to_dict(), indent=2, default=str))
            self.markdown_path(task_id).write_text(report.to_markdown())
        except OSError as e:
            raise EscalationError(task_id, e) from e

        if self.notify is not None:
            try:
                result = self.notify(report)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(f"Escalation callback failed for {task_id}: {e}")

        return report

    def load(self, task_id: str) -> EscalationReport | None:
        """Load a persisted report, None if absent or unreadable."""
        path = self.json_path(task_id)
        if not path.exists():
            return None
        try:
            return EscalationReport.from_dict(json.loads(path.read_text()))
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable escalation report {path}: {e}")
            return None
