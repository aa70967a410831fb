"""Cancellable shell command execution."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path

from ..errors import CommandTimeoutError

logger = logging.getLogger(__name__)

# Default timeout for a verification command (5 minutes)
DEFAULT_COMMAND_TIMEOUT_MS = 300000


@dataclass
class CommandResult:
    """Exit code and combined output of a finished command."""

    command: str
    exit_code: int
    output: str
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


async def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    # Session leader: the group id is the shell pid and outlives the shell itself
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    await process.wait()


async def run_command(
    command: str,
    cwd: Path | None = None,
    timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a shell command, stderr merged into stdout.

    Args:
        command: Shell command line.
        cwd: Working directory. Defaults to current directory.
        timeout_ms: Time allowed before the process is killed.
        env: Full environment for the process, inherited if None.

    Returns:
        CommandResult with exit code and output.

    Raises:
        CommandTimeoutError: If the command did not finish in time.
    """
    start = time.monotonic()
    logger.debug(f"Running command: {command} (cwd={cwd or Path.cwd()})")

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd) if cwd else None,
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        start_new_session=True,
    )

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        await _kill_process_group(process)
        raise CommandTimeoutError(command, timeout_ms) from None
    except asyncio.CancelledError:
        await _kill_process_group(process)
        raise

    return CommandResult(
        command=command,
        exit_code=process.returncode if process.returncode is not None else 1,
        output=stdout.decode(errors="replace") if stdout else "",
        duration_seconds=time.monotonic() - start,
    )
