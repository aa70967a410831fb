"""Self-verification pipeline.

Runs test, lint, build and type-check commands for a task, tries bounded
automatic fixes for failing steps, and escalates whatever still fails.
The pipeline never retries a whole run itself; it is meant to be executed
as an operation under the retry executor.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import EscalationRequiredError, VerificationFailedError
from ..recovery.classifier import build_error_info
from ..retry.escalation import EscalationReporter
from .commands import DEFAULT_COMMAND_TIMEOUT_MS, CommandResult, run_command
from .detector import DEFAULT_COMMANDS
from .models import (
    DEFAULT_STEP_ORDER,
    FixAttempt,
    FixKind,
    FixSuggestion,
    StepResult,
    VerificationReport,
    VerificationStatus,
    VerificationStep,
)
from .parsers import parse_errors, parse_lint_summary, parse_output_counts, parse_test_summary, suggest_fixes

logger = logging.getLogger(__name__)

CommandRunner = Callable[[str, Path, int], Awaitable[CommandResult]]


async def _default_runner(command: str, cwd: Path, timeout_ms: int) -> CommandResult:
    return await run_command(command, cwd=cwd, timeout_ms=timeout_ms)


@dataclass
class VerificationConfig:
    """Configuration for a verification run."""

    project_root: Path = field(default_factory=Path.cwd)
    commands: dict[VerificationStep, str] = field(default_factory=lambda: dict(DEFAULT_COMMANDS))
    steps: tuple[VerificationStep, ...] = DEFAULT_STEP_ORDER
    max_fix_iterations: int = 3
    auto_fix_lint: bool = True
    continue_on_failure: bool = False
    command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.max_fix_iterations < 0:
            raise ValueError(f"max_fix_iterations must be >= 0, got {self.max_fix_iterations}")
        self.project_root = Path(self.project_root)
        self.commands = {VerificationStep(k): v for k, v in self.commands.items()}
        self.steps = tuple(VerificationStep(s) for s in self.steps)

    def command_for(self, step: VerificationStep) -> str:
        return self.commands.get(step) or DEFAULT_COMMANDS[step]

    def auto_fix_enabled(self, step: VerificationStep) -> bool:
        return step == VerificationStep.LINT and self.auto_fix_lint


class VerificationPipeline:
    """Runs verification steps with auto-fix and escalation."""

    def __init__(
        self,
        config: VerificationConfig | None = None,
        escalation: EscalationReporter | None = None,
        runner: CommandRunner | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize pipeline.

        Args:
            config: Verification configuration.
            escalation: Reporter invoked once when a run ends with failures.
            runner: Coroutine running a command, replaceable in tests.
            logger: Logger for step events.
        """
        self.config = config or VerificationConfig()
        self.escalation = escalation
        self.runner = runner or _default_runner
        self.logger = logger or logging.getLogger(__name__)

    async def run_step(self, step: VerificationStep | str) -> StepResult:
        """Run a single verification step once.

        Raises:
            CommandTimeoutError: If the step command timed out.
        """
        step = VerificationStep(step)
        command = self.config.command_for(step)
        start = time.monotonic()
        result = await self.runner(command, self.config.project_root, self.config.command_timeout_ms)
        errors, warnings = parse_output_counts(step, result.output)

        return StepResult(
            step=step,
            passed=result.exit_code == 0,
            exit_code=result.exit_code,
            output=result.output,
            duration_seconds=time.monotonic() - start,
            error_count=errors,
            warning_count=warnings,
        )

    def analyze_error(self, step: VerificationStep | str, output: str) -> list[FixSuggestion]:
        """Derive fix suggestions for a failed step's output."""
        return suggest_fixes(step, output, lint_command=self.config.command_for(VerificationStep.LINT))

    async def _run_step_with_fixes(
        self,
        task_id: str,
        step: VerificationStep,
        fix_attempts: list[FixAttempt],
    ) -> StepResult:
        result = await self.run_step(step)
        if result.passed:
            return result

        iteration = 0
        while self.config.auto_fix_enabled(step) and iteration < self.config.max_fix_iterations:
            suggestion = next(
                (s for s in self.analyze_error(step, result.output) if s.kind == FixKind.AUTO and s.command),
                None,
            )
            if suggestion is None or suggestion.command is None:
                break

            iteration += 1
            start = time.monotonic()
            await self.runner(suggestion.command, self.config.project_root, self.config.command_timeout_ms)
            result = await self.run_step(step)
            result.auto_fix_applied = result.passed

            fix_attempts.append(
                FixAttempt(
                    step=step,
                    iteration=iteration,
                    suggestion=suggestion,
                    passed=result.passed,
                    duration_seconds=time.monotonic() - start,
                )
            )
            self.logger.info(
                f"Task {task_id}: fix {iteration} for {step.value} {'succeeded' if result.passed else 'failed'}",
                extra={"event": "fix_attempted", "task_id": task_id, "step": step.value, "iteration": iteration},
            )
            if result.passed:
                break

        return result

    def analyze_failures(self, report: VerificationReport) -> str:
        """Describe failing steps, including the diagnostic codes seen."""
        lines = [report.analysis()]
        for result in report.failed_results:
            codes = sorted({d.code or "unknown" for d in parse_errors(result.step, result.output)})
            if codes:
                lines.append(f"{result.step.value} error types: {', '.join(codes)}")
        return "\n".join(lines)

    async def run(
        self,
        task_id: str,
        work_item: Any = None,
        steps: Sequence[VerificationStep | str] | None = None,
    ) -> VerificationReport:
        """Run the verification pipeline for a task.

        Args:
            task_id: The task being verified.
            work_item: Opaque work description, passed through to escalation.
            steps: Steps to run, in order. Defaults to the configured steps.

        Returns:
            VerificationReport with ``final_status=passed``.

        Raises:
            EscalationRequiredError: If any step still fails after fix attempts.
            CommandTimeoutError: If a command timed out.
        """
        start = time.monotonic()
        to_run = [VerificationStep(s) for s in steps] if steps is not None else list(self.config.steps)
        results: dict[VerificationStep, StepResult | None] = {step: None for step in VerificationStep}
        fix_attempts: list[FixAttempt] = []
        failed: list[VerificationStep] = []

        for step in to_run:
            self.logger.info(
                f"Task {task_id}: running {step.value}",
                extra={"event": "step_started", "task_id": task_id, "step": step.value},
            )
            result = await self._run_step_with_fixes(task_id, step, fix_attempts)
            results[step] = result
            self.logger.info(
                f"Task {task_id}: {result.summary()}",
                extra={"event": "step_finished", "task_id": task_id, "step": step.value, "passed": result.passed},
            )

            if not result.passed:
                failed.append(step)
                if not self.config.continue_on_failure:
                    break

        test_result = results[VerificationStep.TEST]
        lint_result = results[VerificationStep.LINT]
        lint_fixed = sum(1 for a in fix_attempts if a.step == VerificationStep.LINT and a.passed)

        report = VerificationReport(
            task_id=task_id,
            results=results,
            final_status=VerificationStatus.ESCALATED if failed else VerificationStatus.PASSED,
            steps_run=[s for s in to_run if results[s] is not None],
            fix_attempts=fix_attempts,
            test_summary=parse_test_summary(test_result.output) if test_result else None,
            lint_summary=parse_lint_summary(lint_result.output, lint_fixed) if lint_result else None,
            total_duration_seconds=time.monotonic() - start,
        )

        if not failed:
            return report

        first = report.failed_results[0]
        analysis = self.analyze_failures(report)
        error = VerificationFailedError([s.value for s in failed], first.output, first.exit_code)
        info = build_error_info(error, {"task_id": task_id, "analysis": analysis})

        escalation = None
        if self.escalation is not None:
            escalation = await self.escalation.escalate(task_id, work_item, info)

        raise EscalationRequiredError(
            task_id,
            [s.value for s in failed],
            report=report,
            total_fix_attempts=len(fix_attempts),
            analysis=analysis,
            escalation=escalation,
        )
