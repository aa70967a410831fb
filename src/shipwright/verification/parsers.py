"""Parsing of verification tool output.

Turns raw test, lint, build and type-check output into structured
diagnostics, counts and summaries. Lines that match no known format are
ignored.
"""

from __future__ import annotations

import re

from .models import (
    FixKind,
    FixSuggestion,
    LintSummary,
    ParsedDiagnostic,
    Severity,
    TestSummary,
    VerificationStep,
)

# tsc: "src/a.ts(10,5): error TS2322: Type 'string' is not assignable"
TSC_PATTERN = re.compile(r"^(.+?)\((\d+),(\d+)\):\s*(error|warning)\s+(TS\d+):\s*(.+)$")

# mypy: "src/a.py:10: error: Incompatible types  [assignment]"
MYPY_PATTERN = re.compile(r"^(.+?):(\d+)(?::(\d+))?:\s*(error|warning):\s*(.+?)(?:\s+\[([\w-]+)\])?$")

# eslint compact: "src/a.ts:10:5: Missing semicolon (semi)"
ESLINT_PATTERN = re.compile(r"^(.+?):(\d+):(\d+):\s*(.+?)\s+\((.+?)\)$")

# ruff: "src/a.py:10:5: F401 [*] `os` imported but unused"
RUFF_PATTERN = re.compile(r"^(.+?):(\d+):(\d+):\s*([A-Z]+\d+)\s+(\[\*\]\s+)?(.+)$")

TEST_FAILURE_PATTERN = re.compile(r"^\s*FAIL\b|Error:|AssertionError|(?i:assertion\s*(failed|error))")

BUILD_ERROR_PATTERN = re.compile(r"^\s*(error(\[\w+\])?:|ERROR:)")

# Lint rules that the linter's own --fix reliably repairs
FIXABLE_LINT_RULES = frozenset(
    {
        "prettier/prettier",
        "semi",
        "quotes",
        "indent",
        "comma-dangle",
        "no-trailing-spaces",
        "eol-last",
        "@typescript-eslint/semi",
        "@typescript-eslint/quotes",
    }
)


def _parse_typecheck_line(line: str) -> ParsedDiagnostic | None:
    match = TSC_PATTERN.match(line)
    if match:
        return ParsedDiagnostic(
            step=VerificationStep.TYPECHECK,
            file_path=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3)),
            severity=Severity(match.group(4)),
            code=match.group(5),
            message=match.group(6).strip(),
        )

    match = MYPY_PATTERN.match(line)
    if match:
        return ParsedDiagnostic(
            step=VerificationStep.TYPECHECK,
            file_path=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3)) if match.group(3) else None,
            severity=Severity(match.group(4)),
            message=match.group(5).strip(),
            code=match.group(6),
        )
    return None


def _parse_lint_line(line: str) -> ParsedDiagnostic | None:
    match = RUFF_PATTERN.match(line)
    if match:
        return ParsedDiagnostic(
            step=VerificationStep.LINT,
            file_path=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3)),
            code=match.group(4),
            message=match.group(6).strip(),
            severity=Severity.ERROR,
        )

    match = ESLINT_PATTERN.match(line)
    if match:
        return ParsedDiagnostic(
            step=VerificationStep.LINT,
            file_path=match.group(1),
            line=int(match.group(2)),
            column=int(match.group(3)),
            message=match.group(4).strip(),
            code=match.group(5),
            severity=Severity.ERROR if "error" in line.lower() else Severity.WARNING,
        )
    return None


def parse_errors(step: VerificationStep | str, output: str) -> list[ParsedDiagnostic]:
    """Extract diagnostics from a step's output.

    Args:
        step: The step that produced the output.
        output: Combined stdout/stderr.

    Returns:
        Diagnostics in output order.
    """
    step = VerificationStep(step)
    diagnostics: list[ParsedDiagnostic] = []

    for raw in output.splitlines():
        line = raw.rstrip()
        if not line.strip():
            continue

        diagnostic: ParsedDiagnostic | None = None
        if step == VerificationStep.TYPECHECK:
            diagnostic = _parse_typecheck_line(line)
        elif step == VerificationStep.LINT:
            diagnostic = _parse_lint_line(line)
        elif step == VerificationStep.TEST:
            if TEST_FAILURE_PATTERN.search(line):
                diagnostic = ParsedDiagnostic(step=step, message=line.strip())
        elif step == VerificationStep.BUILD:
            if BUILD_ERROR_PATTERN.match(line):
                diagnostic = ParsedDiagnostic(step=step, message=line.strip())

        if diagnostic is not None:
            diagnostics.append(diagnostic)

    return diagnostics


def is_auto_fixable(diagnostic: ParsedDiagnostic, output: str = "") -> bool:
    """Check if a lint diagnostic can be repaired by the linter's --fix."""
    if diagnostic.step != VerificationStep.LINT or not diagnostic.code:
        return False
    if diagnostic.code in FIXABLE_LINT_RULES:
        return True
    # ruff marks fixable violations with [*]
    pattern = rf"{re.escape(diagnostic.code)}\s+\[\*\]\s+{re.escape(diagnostic.message)}"
    return re.search(pattern, output) is not None


def suggest_fixes(
    step: VerificationStep | str,
    output: str,
    lint_command: str | None = None,
    diagnostics: list[ParsedDiagnostic] | None = None,
) -> list[FixSuggestion]:
    """Derive fix suggestions for a failed step.

    At most one auto suggestion is returned (the lint command with --fix);
    every other diagnostic that names a file becomes a manual suggestion.

    Args:
        step: The failed step.
        output: Its combined output.
        lint_command: Command used for the lint step; required for auto fixes.
        diagnostics: Pre-parsed diagnostics, parsed from output if None.

    Returns:
        Suggestions, auto first.
    """
    step = VerificationStep(step)
    if diagnostics is None:
        diagnostics = parse_errors(step, output)

    suggestions: list[FixSuggestion] = []
    fixable = [d for d in diagnostics if is_auto_fixable(d, output)]
    if fixable and lint_command:
        files = sorted({d.file_path for d in fixable if d.file_path})
        suggestions.append(
            FixSuggestion(
                kind=FixKind.AUTO,
                description=f"Run linter auto-fix for {len(fixable)} fixable issue(s)",
                command=f"{lint_command} --fix",
                affected_files=files,
                confidence=0.9,
            )
        )

    for diagnostic in diagnostics:
        if diagnostic in fixable and lint_command:
            continue
        if not diagnostic.file_path:
            continue
        suggestions.append(
            FixSuggestion(
                kind=FixKind.MANUAL,
                description=f"Fix {diagnostic}",
                affected_files=[diagnostic.file_path],
                confidence=0.5,
            )
        )

    if diagnostics and not suggestions:
        suggestions.append(
            FixSuggestion(
                kind=FixKind.MANUAL,
                description=f"Review {len(diagnostics)} {step.value} failure(s): {diagnostics[0].message[:200]}",
                confidence=0.3,
            )
        )

    return suggestions


def parse_output_counts(step: VerificationStep | str, output: str) -> tuple[int, int]:
    """Count errors and warnings reported in a step's output.

    Returns:
        Tuple of (error_count, warning_count).
    """
    step = VerificationStep(step)
    errors = 0
    warnings = 0

    if step == VerificationStep.TEST:
        match = re.search(r"(\d+)\s+failed", output, re.IGNORECASE)
        if match:
            errors = int(match.group(1))
    elif step == VerificationStep.LINT:
        error_match = re.search(r"(\d+)\s+errors?", output, re.IGNORECASE)
        warning_match = re.search(r"(\d+)\s+warnings?", output, re.IGNORECASE)
        errors = int(error_match.group(1)) if error_match else 0
        warnings = int(warning_match.group(1)) if warning_match else 0
    elif step == VerificationStep.TYPECHECK:
        errors = len(re.findall(r"error TS\d+", output, re.IGNORECASE))
        if not errors:
            summary = re.search(r"Found\s+(\d+)\s+errors?", output)
            errors = int(summary.group(1)) if summary else 0
    else:
        errors = len(re.findall(r"\berror\b", output, re.IGNORECASE))
        warnings = len(re.findall(r"\bwarning\b", output, re.IGNORECASE))

    return errors, warnings


def _parse_coverage(output: str) -> float | None:
    # pytest-cov: "TOTAL    120    12    90%"
    match = re.search(r"TOTAL\s+\d+\s+\d+(?:\s+\d+\s+\d+)?\s+(\d+(?:\.\d+)?)%", output)
    if match:
        return float(match.group(1))

    # jest/istanbul: "All files |   85.5 |"
    match = re.search(r"All files\s*\|\s*(\d+(?:\.\d+)?)", output)
    if match:
        return float(match.group(1))

    match = re.search(r"(\d+(?:\.\d+)?)\s*%\s*(?:coverage|statements)", output, re.IGNORECASE)
    if match:
        return float(match.group(1))
    return None


def parse_test_summary(output: str) -> TestSummary | None:
    """Recognise test counts in test runner output.

    Formats:
    - pytest: "5 passed, 2 failed, 1 skipped in 0.05s"
    - jest: "Tests:  1 failed, 2 passed, 3 total"
    - vitest: "Tests  1 failed | 2 passed (3)"
    - anything else reporting "N passed" / "N failed"

    Returns:
        TestSummary, or None if no counts were recognised.
    """
    jest_match = re.search(
        r"Tests:\s+(?:(\d+)\s+failed,?\s*)?(?:(\d+)\s+skipped,?\s*)?(?:(\d+)\s+passed,?\s*)?(\d+)\s+total",
        output,
    )
    if jest_match:
        return TestSummary(
            failed=int(jest_match.group(1) or 0),
            skipped=int(jest_match.group(2) or 0),
            passed=int(jest_match.group(3) or 0),
            coverage_percent=_parse_coverage(output),
        )

    vitest_match = re.search(r"Tests\s+(\d+)\s+failed\s*\|\s*(\d+)\s+passed", output)
    if vitest_match:
        return TestSummary(
            failed=int(vitest_match.group(1)),
            passed=int(vitest_match.group(2)),
            coverage_percent=_parse_coverage(output),
        )

    passed_match = re.search(r"(\d+)\s+passed", output, re.IGNORECASE)
    failed_match = re.search(r"(\d+)\s+failed", output, re.IGNORECASE)
    skipped_match = re.search(r"(\d+)\s+skipped", output, re.IGNORECASE)
    if not (passed_match or failed_match):
        return None

    return TestSummary(
        passed=int(passed_match.group(1)) if passed_match else 0,
        failed=int(failed_match.group(1)) if failed_match else 0,
        skipped=int(skipped_match.group(1)) if skipped_match else 0,
        coverage_percent=_parse_coverage(output),
    )


def parse_lint_summary(output: str, auto_fixed: int = 0) -> LintSummary | None:
    """Recognise lint totals in linter output.

    Formats:
    - eslint: "12 problems (10 errors, 2 warnings)"
    - ruff: "Found 3 errors."

    Returns:
        LintSummary, or None if no totals were recognised.
    """
    match = re.search(r"(\d+)\s+errors?,\s*(\d+)\s+warnings?", output, re.IGNORECASE)
    if match:
        return LintSummary(errors=int(match.group(1)), warnings=int(match.group(2)), auto_fixed=auto_fixed)

    match = re.search(r"Found\s+(\d+)\s+errors?", output)
    if match:
        return LintSummary(errors=int(match.group(1)), auto_fixed=auto_fixed)

    if re.search(r"All checks passed", output):
        return LintSummary(auto_fixed=auto_fixed)
    return None
