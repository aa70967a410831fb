"""Failure recovery for shipwright.

This module provides:
- Error classification into transient, recoverable and fatal failures
- Checkpoint store for resumable task progress
"""

from .checkpoints import (
    CheckpointStore,
    ProgressCheckpoint,
    WorkerStep,
    is_resumable_step,
    next_step,
)
from .classifier import (
    ErrorCategory,
    WorkerErrorInfo,
    build_error_info,
    categorize,
    is_retryable,
    requires_escalation,
    suggested_action,
)

__all__ = [
    # Classifier
    "ErrorCategory",
    "WorkerErrorInfo",
    "categorize",
    "build_error_info",
    "is_retryable",
    "requires_escalation",
    "suggested_action",
    # Checkpoints
    "CheckpointStore",
    "ProgressCheckpoint",
    "WorkerStep",
    "next_step",
    "is_resumable_step",
]
