"""Tests for the verification pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from shipwright.errors import CommandTimeoutError, EscalationRequiredError
from shipwright.retry.escalation import EscalationReport, EscalationReporter
from shipwright.verification.commands import CommandResult
from shipwright.verification.models import FixKind, VerificationStatus, VerificationStep
from shipwright.verification.pipeline import VerificationConfig, VerificationPipeline

pytestmark = pytest.mark.anyio

COMMANDS = {
    VerificationStep.TEST: "run-tests",
    VerificationStep.LINT: "run-lint",
    VerificationStep.BUILD: "run-build",
    VerificationStep.TYPECHECK: "run-typecheck",
}

SEMI_OUTPUT = "src/app.ts:10:5: Missing semicolon (semi)\n1 problem (1 error, 0 warnings)\n"


class FakeRunner:
    """Returns scripted results per command; the last result repeats."""

    def __init__(self, scripted: dict[str, list[tuple[int, str]]] | None = None) -> None:
        self.scripted = scripted or {}
        self.calls: list[str] = []

    async def __call__(self, command: str, cwd: Path, timeout_ms: int) -> CommandResult:
        self.calls.append(command)
        results = self.scripted.get(command, [(0, "")])
        exit_code, output = results.pop(0) if len(results) > 1 else results[0]
        return CommandResult(command=command, exit_code=exit_code, output=output)


def make_pipeline(
    tmp_path: Path,
    runner: FakeRunner,
    reporter: EscalationReporter | None = None,
    **config: object,
) -> VerificationPipeline:
    verification = VerificationConfig(project_root=tmp_path, commands=dict(COMMANDS), **config)  # type: ignore[arg-type]
    return VerificationPipeline(verification, escalation=reporter, runner=runner)


class TestVerificationConfig:
    """Tests for VerificationConfig."""

    def test_negative_fix_iterations(self) -> None:
        with pytest.raises(ValueError):
            VerificationConfig(max_fix_iterations=-1)

    def test_string_keys_coerced(self) -> None:
        config = VerificationConfig(commands={"test": "pytest"}, steps=("test", "lint"))  # type: ignore[dict-item, arg-type]
        assert config.command_for(VerificationStep.TEST) == "pytest"
        assert config.command_for(VerificationStep.BUILD) == "npm run build"
        assert config.steps == (VerificationStep.TEST, VerificationStep.LINT)

    def test_auto_fix_only_for_lint(self) -> None:
        config = VerificationConfig()
        assert config.auto_fix_enabled(VerificationStep.LINT)
        assert not config.auto_fix_enabled(VerificationStep.TEST)
        assert not VerificationConfig(auto_fix_lint=False).auto_fix_enabled(VerificationStep.LINT)


class TestRun:
    """Tests for VerificationPipeline.run."""

    async def test_all_steps_pass(self, tmp_path: Path) -> None:
        runner = FakeRunner({"run-tests": [(0, "5 passed in 0.1s")], "run-lint": [(0, "All checks passed!")]})
        report = await make_pipeline(tmp_path, runner).run("task-1")

        assert report.passed
        assert report.final_status == VerificationStatus.PASSED
        assert all(report.results[step] is not None for step in VerificationStep)
        assert runner.calls == ["run-tests", "run-lint", "run-build", "run-typecheck"]
        assert report.test_summary is not None
        assert report.test_summary.passed == 5
        assert report.lint_summary is not None
        assert report.fix_attempts == []

    async def test_subset_of_steps(self, tmp_path: Path) -> None:
        """Steps that were not requested are reported as not run."""
        report = await make_pipeline(tmp_path, FakeRunner()).run("task-1", steps=["test", "lint"])

        assert report.results[VerificationStep.BUILD] is None
        assert report.results[VerificationStep.TYPECHECK] is None
        assert report.results[VerificationStep.TEST].passed

    async def test_failure_escalates(self, tmp_path: Path, reporter: EscalationReporter) -> None:
        """A failing step without fixes stops the run and escalates once."""
        runner = FakeRunner({"run-tests": [(1, "FAIL src/a.test.ts\n1 failed, 3 passed")]})
        pipeline = make_pipeline(tmp_path, runner, reporter, max_fix_iterations=0)

        with pytest.raises(EscalationRequiredError) as exc_info:
            await pipeline.run("task-1", {"title": "Add login"})

        error = exc_info.value
        assert error.failed_steps == ["test"]
        assert error.total_fix_attempts == 0
        assert error.report is not None
        assert error.report.final_status == VerificationStatus.ESCALATED
        assert error.report.results[VerificationStep.LINT] is None
        assert "Analysis Summary:" in error.analysis
        assert runner.calls == ["run-tests"]

        assert error.escalation is not None
        saved = reporter.load("task-1")
        assert saved is not None
        assert saved.error.code == "VERIFICATION_FAILED"
        assert saved.work_item == {"title": "Add login"}

    async def test_failure_without_reporter(self, tmp_path: Path) -> None:
        runner = FakeRunner({"run-build": [(2, "error: boom")]})
        with pytest.raises(EscalationRequiredError) as exc_info:
            await make_pipeline(tmp_path, runner).run("task-1")
        assert exc_info.value.failed_steps == ["build"]
        assert exc_info.value.escalation is None

    async def test_lint_auto_fix_succeeds(self, tmp_path: Path) -> None:
        """A fixable lint failure is repaired by the linter's --fix."""
        runner = FakeRunner(
            {
                "run-lint": [(1, SEMI_OUTPUT), (0, "All checks passed!")],
                "run-lint --fix": [(0, "")],
            }
        )
        report = await make_pipeline(tmp_path, runner).run("task-1")

        assert report.passed
        assert "run-lint --fix" in runner.calls
        assert len(report.fix_attempts) == 1
        attempt = report.fix_attempts[0]
        assert attempt.iteration == 1
        assert attempt.passed is True
        assert attempt.suggestion.kind == FixKind.AUTO
        assert report.results[VerificationStep.LINT].auto_fix_applied is True
        assert report.lint_summary is not None
        assert report.lint_summary.auto_fixed == 1

    async def test_fix_budget_is_bounded(self, tmp_path: Path, reporter: EscalationReporter) -> None:
        """Auto-fix stops after max_fix_iterations and then escalates."""
        runner = FakeRunner({"run-lint": [(1, SEMI_OUTPUT)]})
        pipeline = make_pipeline(tmp_path, runner, reporter, max_fix_iterations=2)

        with pytest.raises(EscalationRequiredError) as exc_info:
            await pipeline.run("task-1")

        assert runner.calls.count("run-lint --fix") == 2
        assert exc_info.value.total_fix_attempts == 2
        assert [a.iteration for a in exc_info.value.report.fix_attempts] == [1, 2]
        assert "Fix Attempts: 2 total, 0 successful" in exc_info.value.analysis

    async def test_unfixable_lint_not_retried(self, tmp_path: Path) -> None:
        runner = FakeRunner({"run-lint": [(1, "src/a.ts:1:1: 'x' is never used (no-unused-vars)")]})
        with pytest.raises(EscalationRequiredError):
            await make_pipeline(tmp_path, runner).run("task-1")
        assert not any(c.endswith("--fix") for c in runner.calls)

    async def test_continue_on_failure(self, tmp_path: Path, tmp_path_factory: pytest.TempPathFactory) -> None:
        """All steps run and every failure is reported in one escalation."""
        notified: list[EscalationReport] = []
        reporter = EscalationReporter(tmp_path_factory.mktemp("esc"), notify=notified.append)
        runner = FakeRunner(
            {
                "run-tests": [(1, "2 failed")],
                "run-typecheck": [(2, "src/a.ts(1,1): error TS2322: bad")],
            }
        )
        pipeline = make_pipeline(tmp_path, runner, reporter, continue_on_failure=True)

        with pytest.raises(EscalationRequiredError) as exc_info:
            await pipeline.run("task-1")

        assert exc_info.value.failed_steps == ["test", "typecheck"]
        assert runner.calls == ["run-tests", "run-lint", "run-build", "run-typecheck"]
        assert len(notified) == 1
        assert "TS2322" in exc_info.value.analysis

    async def test_failed_steps_follow_run_order(self, tmp_path: Path) -> None:
        """Failures are reported in the order the caller asked for."""
        runner = FakeRunner(
            {
                "run-tests": [(1, "2 failed")],
                "run-typecheck": [(2, "src/a.ts(1,1): error TS2322: bad")],
            }
        )
        pipeline = make_pipeline(tmp_path, runner, continue_on_failure=True)

        with pytest.raises(EscalationRequiredError) as exc_info:
            await pipeline.run("task-1", steps=["typecheck", "test"])

        report = exc_info.value.report
        assert report is not None
        assert exc_info.value.failed_steps == ["typecheck", "test"]
        assert report.steps_run == [VerificationStep.TYPECHECK, VerificationStep.TEST]
        assert report.failed_steps == [VerificationStep.TYPECHECK, VerificationStep.TEST]
        analysis = exc_info.value.analysis
        assert analysis.index("typecheck:") < analysis.index("test:")

    async def test_command_timeout(self, tmp_path: Path) -> None:
        """A hanging command surfaces as CommandTimeoutError."""
        config = VerificationConfig(
            project_root=tmp_path,
            commands={VerificationStep.TEST: "sleep 5"},
            command_timeout_ms=100,
        )
        with pytest.raises(CommandTimeoutError):
            await VerificationPipeline(config).run("task-1", steps=[VerificationStep.TEST])

    async def test_real_commands(self, tmp_path: Path) -> None:
        """The default runner executes real shell commands."""
        config = VerificationConfig(
            project_root=tmp_path,
            commands={
                VerificationStep.TEST: "echo '3 passed'",
                VerificationStep.LINT: "echo 'src/a.ts:10:5: Missing semicolon (semi)'; exit 1",
            },
            auto_fix_lint=False,
        )
        with pytest.raises(EscalationRequiredError) as exc_info:
            await VerificationPipeline(config).run("task-1", steps=["test", "lint"])

        report = exc_info.value.report
        assert report.results[VerificationStep.TEST].passed
        assert report.results[VerificationStep.LINT].exit_code == 1
        assert report.test_summary.passed == 3


class TestAnalyzeError:
    """Tests for VerificationPipeline.analyze_error."""

    def test_lint_suggestion_uses_lint_command(self, tmp_path: Path) -> None:
        suggestions = make_pipeline(tmp_path, FakeRunner()).analyze_error("lint", SEMI_OUTPUT)
        assert suggestions[0].command == "run-lint --fix"
