"""Tests for the checkpoint store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from shipwright.errors import CheckpointError
from shipwright.recovery.checkpoints import (
    CheckpointStore,
    ProgressCheckpoint,
    WorkerStep,
    is_resumable_step,
    next_step,
)


class TestStepOrder:
    """Tests for step resumability and ordering."""

    @pytest.mark.parametrize(
        "step",
        ["context_analysis", "branch_creation", "code_generation", "test_generation", "code_generation:retry"],
    )
    def test_resumable_steps(self, step: str) -> None:
        """Steps up to test generation are resumable, labels may carry a suffix."""
        assert is_resumable_step(step)

    @pytest.mark.parametrize("step", ["verification", "verification:lint", "commit", "result_persistence", "bogus"])
    def test_non_resumable_steps(self, step: str) -> None:
        assert not is_resumable_step(step)

    def test_next_step(self) -> None:
        assert next_step("code_generation") == WorkerStep.TEST_GENERATION
        assert next_step("test_generation:2") == WorkerStep.VERIFICATION

    def test_next_step_wraps_and_defaults(self) -> None:
        """Unknown labels and the last step restart at the first step."""
        assert next_step("result_persistence") == WorkerStep.CONTEXT_ANALYSIS
        assert next_step("unknown") == WorkerStep.CONTEXT_ANALYSIS


class TestProgressCheckpoint:
    """Tests for ProgressCheckpoint serialization."""

    def test_json_round_trip(self) -> None:
        checkpoint = ProgressCheckpoint(
            task_id="task-1",
            current_step="code_generation",
            attempt_number=2,
            timestamp=datetime.now().isoformat(),
            data={"files": ["src/app.ts"]},
        )
        assert ProgressCheckpoint.from_json(checkpoint.to_json()) == checkpoint

    def test_age(self) -> None:
        """Age is computed from the timestamp."""
        old = ProgressCheckpoint("t", "commit", 1, (datetime.now() - timedelta(hours=2)).isoformat())
        assert old.age is not None
        assert old.age >= timedelta(hours=2)

    def test_age_invalid_timestamp(self) -> None:
        assert ProgressCheckpoint("t", "commit", 1, "not-a-date").age is None


class TestCheckpointStore:
    """Tests for CheckpointStore."""

    def test_create_and_load(self, checkpoint_store: CheckpointStore) -> None:
        """A written checkpoint can be loaded back."""
        written = checkpoint_store.create("task-1", "code_generation", 1, {"max_attempts": 3})
        loaded = checkpoint_store.load("task-1")

        assert loaded == written
        assert loaded.attempt_number == 1
        assert loaded.data == {"max_attempts": 3}
        assert loaded.resumable is True
        assert checkpoint_store.current == written

    def test_file_layout(self, checkpoint_store: CheckpointStore) -> None:
        """Checkpoints are stored as <task_id>-checkpoint.json."""
        checkpoint_store.create("task-1", "verification:lint", 2)
        path = checkpoint_store.checkpoint_dir / "task-1-checkpoint.json"

        assert path.exists()
        data = json.loads(path.read_text())
        assert data["current_step"] == "verification:lint"
        assert data["resumable"] is False
        assert not list(checkpoint_store.checkpoint_dir.glob("*.tmp"))

    def test_create_overwrites(self, checkpoint_store: CheckpointStore) -> None:
        """Only the latest checkpoint for a task is kept."""
        checkpoint_store.create("task-1", "code_generation", 1)
        checkpoint_store.create("task-1", "code_generation", 2)

        assert checkpoint_store.load("task-1").attempt_number == 2
        assert checkpoint_store.list_task_ids() == ["task-1"]

    def test_tasks_are_isolated(self, checkpoint_store: CheckpointStore) -> None:
        """Clearing one task leaves other tasks untouched."""
        checkpoint_store.create("task-a", "code_generation", 1)
        checkpoint_store.create("task-b", "verification", 3)

        assert checkpoint_store.clear("task-a") is True
        assert checkpoint_store.load("task-a") is None
        assert checkpoint_store.load("task-b").attempt_number == 3

    def test_load_missing(self, checkpoint_store: CheckpointStore) -> None:
        assert checkpoint_store.load("nope") is None
        assert checkpoint_store.exists("nope") is False

    def test_load_unreadable(self, checkpoint_store: CheckpointStore) -> None:
        """Corrupt checkpoint files are treated as absent."""
        checkpoint_store.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        checkpoint_store.path_for("broken").write_text("{not json")
        assert checkpoint_store.load("broken") is None

    def test_clear_missing(self, checkpoint_store: CheckpointStore) -> None:
        assert checkpoint_store.clear("nope") is False

    def test_clear_resets_current(self, checkpoint_store: CheckpointStore) -> None:
        checkpoint_store.create("task-1", "code_generation", 1)
        checkpoint_store.clear("task-1")
        assert checkpoint_store.current is None

    @pytest.mark.parametrize("task_id", ["", ".", "..", "a/b", "a\\b", "../escape"])
    def test_invalid_task_id(self, checkpoint_store: CheckpointStore, task_id: str) -> None:
        """Task ids that are not plain file names are rejected."""
        with pytest.raises(ValueError):
            checkpoint_store.create(task_id, "code_generation", 1)

    def test_write_failure(self, tmp_path: Path) -> None:
        """A failed write raises CheckpointError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = CheckpointStore(blocker / "checkpoints")

        with pytest.raises(CheckpointError):
            store.create("task-1", "code_generation", 1)

    def test_list_task_ids_empty(self, tmp_path: Path) -> None:
        assert CheckpointStore(tmp_path / "missing").list_task_ids() == []

    def test_cleanup_old(self, checkpoint_store: CheckpointStore) -> None:
        """Old and unreadable checkpoints are removed, fresh ones kept."""
        checkpoint_store.create("fresh", "code_generation", 1)
        stale = ProgressCheckpoint("stale", "commit", 1, (datetime.now() - timedelta(days=3)).isoformat())
        checkpoint_store.path_for("stale").write_text(stale.to_json())
        checkpoint_store.path_for("broken").write_text("garbage")

        removed = checkpoint_store.cleanup_old(timedelta(hours=24))

        assert removed == 2
        assert checkpoint_store.list_task_ids() == ["fresh"]
