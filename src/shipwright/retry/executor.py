"""Retry executor.

Runs an async operation under a retry policy:
1. Checkpoint before every attempt
2. Classify failures (transient, recoverable, fatal)
3. Back off and retry while attempts remain
4. Escalate on fatal errors or exhaustion
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from ..errors import EscalationRequiredError, MaxRetriesExceededError, OperationTimeoutError
from ..recovery.checkpoints import CheckpointStore
from ..recovery.classifier import ErrorCategory, WorkerErrorInfo, build_error_info
from .escalation import EscalationReporter, RetryAttemptRecord
from .policy import DEFAULT_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
FixHandler = Callable[[BaseException, int], Union[Awaitable[Any], Any]]
SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class TaskContext:
    """Identifies the task an operation belongs to."""

    task_id: str
    step: str = "execution"
    work_item: Any = None


@dataclass(frozen=True)
class ExecutionOutcome(Generic[T]):
    """Result of running an operation under retry."""

    success: bool
    attempts: int
    result: T | None = None
    error: WorkerErrorInfo | None = None
    retry_attempts: tuple[RetryAttemptRecord, ...] = ()
    duration_seconds: float = 0.0
    exception: BaseException | None = None  # Raw failure behind error


@dataclass
class _CallState:
    records: list[RetryAttemptRecord] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)

    def elapsed(self) -> float:
        return time.monotonic() - self.started


class RetryExecutor:
    """Executes operations with checkpointing, backoff and escalation.

    All per-task state lives in the call, so one executor can serve
    several tasks running concurrently on the same event loop.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        escalation: EscalationReporter | None = None,
        policy: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
        sleep: SleepFunc = asyncio.sleep,
        fix_handler: FixHandler | None = None,
    ):
        """Initialize executor.

        Args:
            checkpoints: Store receiving a checkpoint before each attempt.
            escalation: Reporter invoked on fatal errors and exhaustion.
            policy: Retry policy, defaults to DEFAULT_RETRY_POLICY.
            logger: Logger for attempt events.
            sleep: Awaitable sleep taking seconds, replaceable in tests.
            fix_handler: Optional hook called with (error, attempt) before
                retrying a recoverable failure.
        """
        self.checkpoints = checkpoints
        self.escalation = escalation
        self.policy = policy or DEFAULT_RETRY_POLICY
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.fix_handler = fix_handler

    async def _run_attempt(self, operation: Operation[T], context: TaskContext) -> T:
        if self.policy.timeout_ms is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=self.policy.timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(context.task_id, context.step, self.policy.timeout_ms) from e

    async def _attempt_fix(self, error: BaseException, attempt: int, context: TaskContext) -> bool:
        if self.fix_handler is None:
            return False
        try:
            result = self.fix_handler(error, attempt)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.warning(f"Fix handler failed for {context.task_id}: {e}")
        return True

    async def _escalate(
        self,
        context: TaskContext,
        info: WorkerErrorInfo,
        records: list[RetryAttemptRecord],
    ) -> None:
        if self.escalation is None:
            return
        await self.escalation.escalate(context.task_id, context.work_item, info, records)

    async def execute_with_retry(
        self,
        operation: Operation[T],
        context: TaskContext,
    ) -> ExecutionOutcome[T]:
        """Run an operation, retrying per the policy.

        Args:
            operation: Zero-argument callable returning an awaitable.
            context: Task identity used for checkpoints and escalation.

        Returns:
            ExecutionOutcome. A fatal failure returns ``success=False``
            after escalating.

        Raises:
            MaxRetriesExceededError: If every allowed attempt failed.
            CheckpointError: If a checkpoint could not be written.
            EscalationError: If an escalation report could not be written.
        """
        state = _CallState()
        max_attempts = self.policy.max_attempts
        task_id = context.task_id
        last_error: BaseException | None = None

        for attempt in range(1, max_attempts + 1):
            self.checkpoints.create(task_id, context.step, attempt, {"max_attempts": max_attempts})
            self.logger.info(
                f"Task {task_id}: attempt {attempt}/{max_attempts} ({context.step})",
                extra={"event": "attempt_started", "task_id": task_id, "attempt": attempt},
            )

            try:
                result = await self._run_attempt(operation, context)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
            else:
                self.checkpoints.clear(task_id)
                return ExecutionOutcome(
                    success=True,
                    attempts=attempt,
                    result=result,
                    retry_attempts=tuple(state.records),
                    duration_seconds=state.elapsed(),
                )

            info = build_error_info(
                last_error,
                {"task_id": task_id, "step": context.step, "attempt": attempt},
            )
            self.logger.warning(
                f"Task {task_id}: attempt {attempt} failed ({info.category.value}): {info.message}",
                extra={"event": "attempt_failed", "task_id": task_id, "attempt": attempt},
            )

            if info.category == ErrorCategory.FATAL:
                # A raised EscalationRequiredError already carries a persisted report
                if not isinstance(last_error, EscalationRequiredError):
                    await self._escalate(context, info, state.records)
                return ExecutionOutcome(
                    success=False,
                    attempts=attempt,
                    error=info,
                    retry_attempts=tuple(state.records),
                    duration_seconds=state.elapsed(),
                    exception=last_error,
                )

            if attempt == max_attempts:
                final_info = build_error_info(
                    last_error,
                    {"task_id": task_id, "step": context.step, "total_attempts": max_attempts},
                )
                await self._escalate(context, final_info, state.records)
                raise MaxRetriesExceededError(task_id, max_attempts, last_error, state.records) from last_error

            fix_attempted = False
            if info.category == ErrorCategory.RECOVERABLE:
                fix_attempted = await self._attempt_fix(last_error, attempt, context)

            delay_ms = self.policy.delay_ms(attempt)
            state.records.append(
                RetryAttemptRecord(
                    attempt=attempt,
                    error_message=info.message,
                    delay_ms=delay_ms,
                    category=info.category,
                    fix_attempted=fix_attempted,
                )
            )
            self.logger.info(
                f"Task {task_id}: retrying in {delay_ms}ms",
                extra={"event": "retry_scheduled", "task_id": task_id, "delay_ms": delay_ms},
            )
            await self.sleep(delay_ms / 1000)

        raise MaxRetriesExceededError(task_id, max_attempts, last_error, state.records)
