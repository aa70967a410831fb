"""Data models for verification runs and their results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class VerificationStep(str, Enum):
    """Verification steps, in default execution order."""

    TEST = "test"
    LINT = "lint"
    BUILD = "build"
    TYPECHECK = "typecheck"


DEFAULT_STEP_ORDER: tuple[VerificationStep, ...] = tuple(VerificationStep)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class FixKind(str, Enum):
    AUTO = "auto"  # Has a command that can be run unattended
    MANUAL = "manual"


class VerificationStatus(str, Enum):
    PASSED = "passed"
    ESCALATED = "escalated"


@dataclass
class StepResult:
    """Result of running one verification step."""

    step: VerificationStep
    passed: bool
    exit_code: int
    output: str = ""
    duration_seconds: float = 0.0
    error_count: int = 0
    warning_count: int = 0
    auto_fix_applied: bool = False

    def summary(self) -> str:
        """One-line summary for display."""
        status = "passed" if self.passed else f"failed (exit {self.exit_code})"
        result = f"{self.step.value}: {status}"
        if self.error_count or self.warning_count:
            result += f", {self.error_count} error(s), {self.warning_count} warning(s)"
        if self.auto_fix_applied:
            result += ", auto-fixed"
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "passed": self.passed,
            "exit_code": self.exit_code,
            "output": self.output,
            "duration_seconds": self.duration_seconds,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "auto_fix_applied": self.auto_fix_applied,
        }


@dataclass
class ParsedDiagnostic:
    """A single error or warning extracted from tool output."""

    step: VerificationStep
    message: str
    severity: Severity = Severity.ERROR
    file_path: str | None = None
    line: int | None = None
    column: int | None = None
    code: str | None = None

    def __str__(self) -> str:
        """Format diagnostic for display."""
        location = ""
        if self.file_path:
            location = self.file_path
            if self.line is not None:
                location += f":{self.line}"
                if self.column is not None:
                    location += f":{self.column}"
            location += ": "
        code = f" ({self.code})" if self.code else ""
        return f"{location}{self.severity.value}: {self.message}{code}"


@dataclass
class FixSuggestion:
    """A proposed remediation for a failed step."""

    kind: FixKind
    description: str
    command: str | None = None
    affected_files: list[str] = field(default_factory=list)
    confidence: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "description": self.description,
            "command": self.command,
            "affected_files": list(self.affected_files),
            "confidence": self.confidence,
        }


@dataclass
class FixAttempt:
    """One auto-fix iteration for a step."""

    step: VerificationStep
    iteration: int
    suggestion: FixSuggestion
    passed: bool
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "iteration": self.iteration,
            "suggestion": self.suggestion.to_dict(),
            "passed": self.passed,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class TestSummary:
    """Test counts recognised in test output."""

    __test__ = False

    passed: int = 0
    failed: int = 0
    skipped: int = 0
    coverage_percent: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "coverage_percent": self.coverage_percent,
        }


@dataclass
class LintSummary:
    """Lint counts recognised in lint output."""

    errors: int = 0
    warnings: int = 0
    auto_fixed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"errors": self.errors, "warnings": self.warnings, "auto_fixed": self.auto_fixed}


@dataclass
class VerificationReport:
    """Outcome of a verification pipeline run."""

    task_id: str
    results: dict[VerificationStep, StepResult | None]
    final_status: VerificationStatus
    steps_run: list[VerificationStep] = field(default_factory=list)
    fix_attempts: list[FixAttempt] = field(default_factory=list)
    test_summary: TestSummary | None = None
    lint_summary: LintSummary | None = None
    total_duration_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def passed(self) -> bool:
        return self.final_status == VerificationStatus.PASSED

    @property
    def failed_results(self) -> list[StepResult]:
        """Results of steps that did not pass, in execution order."""
        order = self.steps_run or list(self.results)
        results = [self.results.get(step) for step in order]
        return [r for r in results if r is not None and not r.passed]

    @property
    def failed_steps(self) -> list[VerificationStep]:
        return [r.step for r in self.failed_results]

    def analysis(self) -> str:
        """Summarise failing steps and fix attempts for escalation."""
        lines = ["Analysis Summary:"]
        for result in self.failed_results:
            lines.append(f"{result.step.value}: {result.error_count} error(s), {result.warning_count} warning(s)")

        successful = sum(1 for attempt in self.fix_attempts if attempt.passed)
        lines.append("")
        lines.append(f"Fix Attempts: {len(self.fix_attempts)} total, {successful} successful")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "results": {step.value: (r.to_dict() if r else None) for step, r in self.results.items()},
            "final_status": self.final_status.value,
            "steps_run": [s.value for s in self.steps_run],
            "fix_attempts": [a.to_dict() for a in self.fix_attempts],
            "test_summary": self.test_summary.to_dict() if self.test_summary else None,
            "lint_summary": self.lint_summary.to_dict() if self.lint_summary else None,
            "total_duration_seconds": self.total_duration_seconds,
            "timestamp": self.timestamp,
        }
