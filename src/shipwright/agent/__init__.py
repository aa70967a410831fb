"""Worker agent and code-generation boundary."""

from .models import (
    CodeGenerationRequest,
    CodeGenerationResponse,
    FileChange,
    ImplementationResult,
    ImplementationStatus,
    StyleConventions,
    WorkOrder,
)
from .worker import CodeGenerator, WorkerAgent, derive_branch_name, detect_conventions

__all__ = [
    # Models
    "WorkOrder",
    "StyleConventions",
    "CodeGenerationRequest",
    "CodeGenerationResponse",
    "FileChange",
    "ImplementationResult",
    "ImplementationStatus",
    # Worker
    "CodeGenerator",
    "WorkerAgent",
    "derive_branch_name",
    "detect_conventions",
]
