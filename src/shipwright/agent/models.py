"""Data models for the code-generation boundary and worker results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ImplementationStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class WorkOrder(BaseModel):
    """A unit of implementation work handed to the worker."""

    order_id: str
    issue_id: str
    title: str = ""
    description: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list)
    github_issue: int | None = None


class StyleConventions(BaseModel):
    """Code style detected from the files related to a work order."""

    indentation: Literal["spaces", "tabs"] = "spaces"
    indent_size: int = 2
    quote_style: Literal["single", "double"] = "single"
    use_semicolons: bool = True


class CodeGenerationRequest(BaseModel):
    """Request sent to the code generator."""

    work_order_id: str
    issue_id: str
    title: str = ""
    description: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list)
    conventions: StyleConventions = Field(default_factory=StyleConventions)
    attempt: int = 1


class FileChange(BaseModel):
    """A single file change produced by the code generator."""

    path: str
    action: Literal["create", "modify", "delete"]
    content: str | None = None
    lines_added: int = 0
    lines_removed: int = 0


class CodeGenerationResponse(BaseModel):
    """Response from the code generator."""

    success: bool
    changes: list[FileChange] = Field(default_factory=list)
    error: str | None = None
    blockers: list[str] = Field(default_factory=list)


class ImplementationResult(BaseModel):
    """Outcome of implementing a work order."""

    work_order_id: str
    issue_id: str
    status: ImplementationStatus
    branch_name: str
    started_at: str
    completed_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    changes: list[FileChange] = Field(default_factory=list)
    verification: dict[str, Any] | None = None
    attempts: int = 0
    blockers: list[str] = Field(default_factory=list)
    notes: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ImplementationStatus.COMPLETED
