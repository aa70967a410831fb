"""Self-verification for shipwright.

This module provides:
- Step command detection (pytest, ruff, mypy, npm, tsc)
- Cancellable command execution
- Output parsing into diagnostics and summaries
- The verification pipeline with bounded auto-fix
"""

from .commands import CommandResult, run_command
from .detector import detect_step_commands
from .models import (
    FixAttempt,
    FixKind,
    FixSuggestion,
    LintSummary,
    ParsedDiagnostic,
    Severity,
    StepResult,
    TestSummary,
    VerificationReport,
    VerificationStatus,
    VerificationStep,
)
from .parsers import (
    parse_errors,
    parse_lint_summary,
    parse_output_counts,
    parse_test_summary,
    suggest_fixes,
)
from .pipeline import VerificationConfig, VerificationPipeline

__all__ = [
    # Models
    "VerificationStep",
    "VerificationStatus",
    "StepResult",
    "ParsedDiagnostic",
    "Severity",
    "FixKind",
    "FixSuggestion",
    "FixAttempt",
    "TestSummary",
    "LintSummary",
    "VerificationReport",
    # Detection
    "detect_step_commands",
    # Execution
    "run_command",
    "CommandResult",
    # Parsing
    "parse_errors",
    "parse_output_counts",
    "parse_test_summary",
    "parse_lint_summary",
    "suggest_fixes",
    # Pipeline
    "VerificationConfig",
    "VerificationPipeline",
]
