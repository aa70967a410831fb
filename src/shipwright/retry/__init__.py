"""Retry system for shipwright.

This module provides:
- Retry policies with fixed, linear and exponential backoff
- The retry executor with per-attempt checkpoints
- Escalation protocol
"""

from .escalation import EscalationReport, EscalationReporter, RetryAttemptRecord
from .executor import ExecutionOutcome, RetryExecutor, TaskContext
from .policy import DEFAULT_RETRY_POLICY, BackoffMode, RetryPolicy

__all__ = [
    # Policy
    "BackoffMode",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    # Executor
    "RetryExecutor",
    "TaskContext",
    "ExecutionOutcome",
    # Escalation
    "EscalationReport",
    "EscalationReporter",
    "RetryAttemptRecord",
]
