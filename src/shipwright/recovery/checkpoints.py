"""Checkpoint store for resumable tasks.

Keeps one progress snapshot per task id on disk so that a task that
crashed or was interrupted can be resumed from its last attempt:
- Created or overwritten before every attempt
- Deleted when the task succeeds
- Never shared between tasks
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import CheckpointError

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_DIR = Path(".shipwright") / "checkpoints"
CHECKPOINT_SUFFIX = "-checkpoint.json"


class WorkerStep(str, Enum):
    """Steps of a worker run, in execution order."""

    CONTEXT_ANALYSIS = "context_analysis"
    BRANCH_CREATION = "branch_creation"
    CODE_GENERATION = "code_generation"
    TEST_GENERATION = "test_generation"
    VERIFICATION = "verification"
    COMMIT = "commit"
    RESULT_PERSISTENCE = "result_persistence"


STEP_ORDER: list[WorkerStep] = list(WorkerStep)

# Steps with clear boundaries; a crash inside any other step restarts from code generation.
RESUMABLE_STEPS = {
    WorkerStep.CONTEXT_ANALYSIS,
    WorkerStep.BRANCH_CREATION,
    WorkerStep.CODE_GENERATION,
    WorkerStep.TEST_GENERATION,
}


def is_resumable_step(step: str) -> bool:
    """Check if a step label is safe to resume from."""
    base = step.split(":", 1)[0]
    return base in {s.value for s in RESUMABLE_STEPS}


def next_step(last_completed: str) -> WorkerStep:
    """Get the step to run after ``last_completed``.

    Unknown labels and the final step restart from the beginning.
    """
    values = [s.value for s in STEP_ORDER]
    base = last_completed.split(":", 1)[0]
    if base not in values:
        return STEP_ORDER[0]
    index = values.index(base)
    if index == len(values) - 1:
        return STEP_ORDER[0]
    return STEP_ORDER[index + 1]


@dataclass
class ProgressCheckpoint:
    """Snapshot of a task's progress."""

    task_id: str
    current_step: str
    attempt_number: int
    timestamp: str
    data: dict[str, Any] = field(default_factory=dict)
    resumable: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert checkpoint to dictionary."""
        return {
            "task_id": self.task_id,
            "current_step": self.current_step,
            "attempt_number": self.attempt_number,
            "timestamp": self.timestamp,
            "data": self.data,
            "resumable": self.resumable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressCheckpoint:
        """Create checkpoint from dictionary."""
        return cls(
            task_id=data["task_id"],
            current_step=data["current_step"],
            attempt_number=int(data["attempt_number"]),
            timestamp=data["timestamp"],
            data=data.get("data") or {},
            resumable=data.get("resumable", True),
        )

    def to_json(self, indent: int | None = 2) -> str:
        """Convert checkpoint to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> ProgressCheckpoint:
        """Create checkpoint from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @property
    def age(self) -> timedelta | None:
        """Time since the checkpoint was written, None if the timestamp is invalid."""
        try:
            return datetime.now() - datetime.fromisoformat(self.timestamp)
        except ValueError:
            return None


def validate_task_id(task_id: str) -> str:
    """Reject task ids that are not a plain file name component."""
    if not task_id or task_id in (".", "..") or "/" in task_id or "\\" in task_id:
        raise ValueError(f"Invalid task id: {task_id!r}")
    return task_id


class CheckpointStore:
    """Persists one checkpoint per task id under a checkpoints directory."""

    def __init__(self, checkpoint_dir: Path | str = DEFAULT_CHECKPOINT_DIR):
        """Initialize checkpoint store.

        Args:
            checkpoint_dir: Directory holding ``<task_id>-checkpoint.json`` files.
                Created on first write.
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        self.current: ProgressCheckpoint | None = None

    def path_for(self, task_id: str) -> Path:
        """Get the checkpoint file path for a task."""
        return self.checkpoint_dir / f"{validate_task_id(task_id)}{CHECKPOINT_SUFFIX}"

    def create(
        self,
        task_id: str,
        step: str,
        attempt_number: int,
        data: dict[str, Any] | None = None,
    ) -> ProgressCheckpoint:
        """Write a checkpoint, replacing any previous one for the task.

        Args:
            task_id: The task ID.
            step: Free-form step label, e.g. "code_generation" or "verification:lint".
            attempt_number: Current attempt (1-indexed).
            data: Opaque progress payload.

        Returns:
            The written ProgressCheckpoint.

        Raises:
            CheckpointError: If the checkpoint could not be written.
        """
        checkpoint = ProgressCheckpoint(
            task_id=task_id,
            current_step=step,
            attempt_number=attempt_number,
            timestamp=datetime.now().isoformat(),
            data=data or {},
            resumable=is_resumable_step(step),
        )

        path = self.path_for(task_id)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(checkpoint.to_json())
            os.replace(tmp_path, path)
        except OSError as e:
            raise CheckpointError(task_id, e) from e

        self.current = checkpoint
        logger.debug(
            f"Checkpoint written for {task_id} at {step} (attempt {attempt_number})",
            extra={"event": "checkpoint_written", "task_id": task_id, "step": step},
        )
        return checkpoint

    def load(self, task_id: str) -> ProgressCheckpoint | None:
        """Load the checkpoint for a task.

        Returns:
            The ProgressCheckpoint, or None if missing or unreadable.
        """
        path = self.path_for(task_id)
        if not path.exists():
            return None

        try:
            return ProgressCheckpoint.from_json(path.read_text())
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {path}: {e}")
            return None

    def exists(self, task_id: str) -> bool:
        """Check if a task has a checkpoint on disk."""
        return self.path_for(task_id).exists()

    def clear(self, task_id: str) -> bool:
        """Delete the checkpoint for a task.

        Returns:
            True if a file was deleted, False if there was none.
        """
        if self.current is not None and self.current.task_id == task_id:
            self.current = None

        path = self.path_for(task_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False

        logger.debug(
            f"Checkpoint cleared for {task_id}",
            extra={"event": "checkpoint_cleared", "task_id": task_id},
        )
        return True

    def list_task_ids(self) -> list[str]:
        """List task ids that currently have a checkpoint."""
        if not self.checkpoint_dir.exists():
            return []
        return sorted(
            p.name[: -len(CHECKPOINT_SUFFIX)] for p in self.checkpoint_dir.glob(f"*{CHECKPOINT_SUFFIX}")
        )

    def cleanup_old(self, max_age: timedelta = timedelta(hours=24)) -> int:
        """Delete checkpoints older than ``max_age`` and unreadable ones.

        Returns:
            Number of checkpoints deleted.
        """
        count = 0
        for task_id in self.list_task_ids():
            checkpoint = self.load(task_id)
            age = checkpoint.age if checkpoint else None
            if age is None or age > max_age:
                if self.clear(task_id):
                    count += 1
        return count
