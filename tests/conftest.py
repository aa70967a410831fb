"""Shared fixtures for shipwright tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from shipwright.config import reset_config
from shipwright.recovery.checkpoints import CheckpointStore
from shipwright.retry.escalation import EscalationReporter


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def checkpoint_store(tmp_path: Path) -> CheckpointStore:
    return CheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def reporter(tmp_path: Path) -> EscalationReporter:
    return EscalationReporter(tmp_path / "escalations", worker_id="worker-test")


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "SHIPWRIGHT_CONFIG",
        "SHIPWRIGHT_MAX_ATTEMPTS",
        "SHIPWRIGHT_COMMAND_TIMEOUT",
        "SHIPWRIGHT_LOG_LEVEL",
        "SHIPWRIGHT_WORKER_ID",
        "SHIPWRIGHT_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
