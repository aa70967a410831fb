"""Error handling utilities for the shipwright CLI.

Provides consistent error formatting with:
- Human-friendly messages
- Suggested actions
- Documentation links
- Hidden stack traces (unless debug mode)
"""

from __future__ import annotations

import os
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.markup import escape

from ..recovery.classifier import ErrorCategory, WorkerErrorInfo, build_error_info

if TYPE_CHECKING:
    from rich.console import Console

# Debug mode enabled by SHIPWRIGHT_DEBUG=1 or --debug flag
_debug_mode = os.environ.get("SHIPWRIGHT_DEBUG", "0") == "1"


# Documentation links for each error category
DOCS_BASE = "README.md"
DOCS_LINKS = {
    ErrorCategory.TRANSIENT: f"{DOCS_BASE}#retry-policy",
    ErrorCategory.RECOVERABLE: f"{DOCS_BASE}#verification",
    ErrorCategory.FATAL: f"{DOCS_BASE}#escalation",
}


@dataclass
class ErrorInfo:
    """Structured error information for consistent display."""

    message: str
    category: ErrorCategory
    suggestion: str | None = None
    details: str | None = None
    docs_link: str | None = None
    original_error: BaseException | None = None

    def __post_init__(self) -> None:
        # Auto-populate docs_link if not provided
        if self.docs_link is None and self.category in DOCS_LINKS:
            self.docs_link = DOCS_LINKS[self.category]

    @classmethod
    def from_worker_error(
        cls,
        info: WorkerErrorInfo,
        original: BaseException | None = None,
    ) -> ErrorInfo:
        """Create display info from a classified worker error."""
        details = None
        if info.context:
            details = ", ".join(f"{k}={v}" for k, v in info.context.items() if k != "analysis")
        return cls(
            message=f"[{info.code}] {info.message}",
            category=info.category,
            suggestion=info.suggested_action or None,
            details=details or None,
            original_error=original,
        )

    @classmethod
    def from_exception(cls, error: BaseException) -> ErrorInfo:
        """Classify an exception and create display info for it."""
        return cls.from_worker_error(build_error_info(error), error)


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug mode for verbose error output."""
    global _debug_mode
    _debug_mode = enabled


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode


def format_error(error: ErrorInfo | WorkerErrorInfo | BaseException, console: Console) -> None:
    """Format and display an error with consistent styling.

    Args:
        error: Display info, a classified error, or a raw exception
        console: Rich console for output
    """
    if isinstance(error, WorkerErrorInfo):
        error = ErrorInfo.from_worker_error(error)
    elif isinstance(error, BaseException):
        error = ErrorInfo.from_exception(error)

    # Main error message
    console.print(f"[bold red]Error:[/bold red] {escape(error.message)}")

    # Show details if available (in debug mode or if short)
    if error.details:
        if _debug_mode or len(error.details) < 200:
            console.print(f"[dim]{escape(error.details)}[/dim]")

    # Show suggestion
    if error.suggestion:
        console.print()
        console.print(f"[yellow]Suggestion:[/yellow] {escape(error.suggestion)}")

    # Show documentation link
    if error.docs_link:
        console.print(f"[dim]Documentation: {error.docs_link}[/dim]")

    # Show stack trace in debug mode
    if _debug_mode and error.original_error:
        console.print()
        console.print("[dim]Stack trace (debug mode):[/dim]")
        tb_lines = traceback.format_exception(
            type(error.original_error),
            error.original_error,
            error.original_error.__traceback__,
        )
        for line in tb_lines:
            console.print(f"[dim]{escape(line.rstrip())}[/dim]")

    # Hint about debug mode
    if not _debug_mode and error.original_error:
        console.print()
        console.print("[dim]Set SHIPWRIGHT_DEBUG=1 or use --debug for more details[/dim]")
