"""shipwright CLI.

Main entry point for the shipwright command.
"""

from __future__ import annotations

import asyncio
import json
import sys
import uuid

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import ShipwrightConfig, get_config, get_config_path
from .errors import EscalationRequiredError, MaxRetriesExceededError, WorkerError
from .log import setup_logging
from .recovery.checkpoints import CheckpointStore
from .retry.escalation import EscalationReporter
from .retry.executor import RetryExecutor, TaskContext
from .utils.errors import ErrorInfo, format_error, set_debug_mode
from .verification.models import StepResult, VerificationReport, VerificationStep

console = Console()

STEP_CHOICES = click.Choice([s.value for s in VerificationStep])


def _print_step_results(report: VerificationReport | None) -> None:
    if report is None:
        return
    for step, result in report.results.items():
        if result is None:
            console.print(f"[dim]-[/dim] {step.value} [dim](not run)[/dim]")
        else:
            _print_step_result(result)

    if report.test_summary:
        summary = report.test_summary
        line = f"Tests: {summary.passed} passed, {summary.failed} failed, {summary.skipped} skipped"
        if summary.coverage_percent is not None:
            line += f" | Coverage: {summary.coverage_percent:.1f}%"
        console.print(f"[dim]{line}[/dim]")
    if report.lint_summary:
        summary = report.lint_summary
        console.print(
            f"[dim]Lint: {summary.errors} errors, {summary.warnings} warnings, {summary.auto_fixed} auto-fixed[/dim]"
        )


def _print_step_result(result: StepResult) -> None:
    mark = "[green]✓[/green]" if result.passed else "[red]✗[/red]"
    console.print(f"{mark} {escape(result.summary())} [dim]({result.duration_seconds:.1f}s)[/dim]")


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show version and exit")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode with verbose error output")
@click.pass_context
def main(ctx: click.Context, version: bool, debug: bool) -> None:
    """shipwright - retrying task execution and self-verification.

    Use --debug for verbose error output with stack traces.
    """
    # Set debug mode globally
    if debug:
        set_debug_mode(True)

    if version:
        console.print(f"shipwright version {__version__}")
        return

    config = get_config()
    setup_logging("DEBUG" if debug else config.logging.level, rich=config.logging.rich)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.option("--task-id", "-t", help="Task ID used for checkpoints and escalation")
@click.option("--step", "-s", "steps", type=STEP_CHOICES, multiple=True, help="Step to run (repeatable)")
@click.option("--continue-on-failure", is_flag=True, help="Run remaining steps after a failure")
@click.option("--max-fix", type=int, default=None, help="Auto-fix iterations per failing step")
def verify(task_id: str | None, steps: tuple[str, ...], continue_on_failure: bool, max_fix: int | None) -> None:
    """Run the verification pipeline under the retry executor.

    \\b
    Examples:
        shipwright verify                          # All configured steps
        shipwright verify -s test -s lint          # Only test and lint
        shipwright verify --continue-on-failure    # Report every failing step
    """
    from .verification.pipeline import VerificationPipeline

    config = get_config()
    task_id = task_id or f"verify-{uuid.uuid4().hex[:8]}"

    verification = config.verification_config()
    if continue_on_failure:
        verification.continue_on_failure = True
    if max_fix is not None:
        verification.max_fix_iterations = max_fix

    escalation = EscalationReporter(config.paths.escalation_dir, worker_id=config.logging.worker_id)
    executor = RetryExecutor(
        CheckpointStore(config.paths.checkpoint_dir),
        escalation=escalation,
        policy=config.retry.to_policy(),
    )
    pipeline = VerificationPipeline(verification, escalation=escalation)
    selected = list(steps) or None

    console.print(f"[bold cyan]Verifying task {task_id}[/bold cyan]")
    console.print()

    try:
        outcome = asyncio.run(
            executor.execute_with_retry(
                lambda: pipeline.run(task_id, {"task_id": task_id}, selected),
                TaskContext(task_id, "verification", {"task_id": task_id}),
            )
        )
    except MaxRetriesExceededError as e:
        if isinstance(e.last_error, EscalationRequiredError):
            _print_step_results(e.last_error.report)
        console.print()
        format_error(e, console)
        sys.exit(1)
    except WorkerError as e:
        format_error(e, console)
        sys.exit(1)

    if outcome.success:
        _print_step_results(outcome.result)
        console.print()
        console.print(f"[green]✓ Verification passed[/green] [dim](attempts: {outcome.attempts})[/dim]")
        return

    if isinstance(outcome.exception, EscalationRequiredError):
        _print_step_results(outcome.exception.report)
        console.print()
    if outcome.error is not None:
        format_error(ErrorInfo.from_worker_error(outcome.error, outcome.exception), console)
    console.print(f"[dim]Escalation report: {escalation.markdown_path(task_id)}[/dim]")
    sys.exit(1)


# =============================================================================
# Checkpoint Commands
# =============================================================================


@main.group()
def checkpoint() -> None:
    """Inspect and clear task checkpoints."""
    pass


@checkpoint.command("show")
@click.argument("task_id", required=False)
def checkpoint_show(task_id: str | None) -> None:
    """Show the checkpoint for a task, or list tasks with checkpoints."""
    store = CheckpointStore(get_config().paths.checkpoint_dir)

    if task_id is None:
        task_ids = store.list_task_ids()
        if not task_ids:
            console.print("[dim]No checkpoints[/dim]")
            return
        for tid in task_ids:
            console.print(tid)
        return

    saved = store.load(task_id)
    if saved is None:
        console.print(f"[yellow]No checkpoint for {task_id}[/yellow]")
        sys.exit(1)
    click.echo(saved.to_json())


@checkpoint.command("clear")
@click.argument("task_id")
def checkpoint_clear(task_id: str) -> None:
    """Delete the checkpoint for a task."""
    store = CheckpointStore(get_config().paths.checkpoint_dir)
    if store.clear(task_id):
        console.print(f"[green]✓[/green] Cleared checkpoint for {task_id}")
    else:
        console.print(f"[dim]No checkpoint for {task_id}[/dim]")


# =============================================================================
# Escalation Commands
# =============================================================================


@main.group()
def escalation() -> None:
    """Inspect escalation reports."""
    pass


@escalation.command("show")
@click.argument("task_id")
@click.option("--json", "-j", "as_json", is_flag=True, help="Output as JSON")
def escalation_show(task_id: str, as_json: bool) -> None:
    """Show the escalation report for a task."""
    config = get_config()
    reporter = EscalationReporter(config.paths.escalation_dir, worker_id=config.logging.worker_id)
    report = reporter.load(task_id)
    if report is None:
        console.print(f"[yellow]No escalation report for {task_id}[/yellow]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        click.echo(report.to_markdown())


# =============================================================================
# Config Commands
# =============================================================================


@main.group()
def config() -> None:
    """View shipwright configuration.

    Configuration priority:
    1. Environment variables (highest)
    2. Config file (./.shipwright/config.toml)
    3. Defaults (lowest)
    """
    pass


@config.command("show")
@click.option("--json", "-j", "as_json", is_flag=True, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Show current configuration."""
    cfg: ShipwrightConfig = get_config()
    data = cfg.to_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    if cfg.config_path:
        console.print(f"[dim]Config file: {cfg.config_path}[/dim]")
    for section, values in data.items():
        console.print(f"[bold]\\[{section}][/bold]")
        for key, value in values.items():
            console.print(f"  {key} = {escape(str(value))}")


@config.command("path")
def config_path_cmd() -> None:
    """Show configuration file path."""
    click.echo(str(get_config_path()))


if __name__ == "__main__":
    main()
