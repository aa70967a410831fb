"""Unified configuration system for shipwright.

Configuration is stored at ./.shipwright/config.toml and organized into sections.

Configuration loading priority:
1. Environment variables (highest)
2. Config file (./.shipwright/config.toml, or $SHIPWRIGHT_CONFIG)
3. Defaults (lowest)

Sections:
    [retry]         - Retry policy (attempts, backoff, timeout)
    [verification]  - Step commands, fix iterations, failure handling
    [paths]         - Project root and state directory
    [logging]       - Log level and output

Example:
    from shipwright.config import get_config

    config = get_config()
    print(config.retry.max_attempts)
    print(config.paths.checkpoint_dir)
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import tomli_w

from .retry.policy import BackoffMode, RetryPolicy
from .verification.commands import DEFAULT_COMMAND_TIMEOUT_MS
from .verification.detector import detect_step_commands
from .verification.models import DEFAULT_STEP_ORDER, VerificationStep
from .verification.pipeline import VerificationConfig

logger = logging.getLogger(__name__)

# Default config location, relative to the working directory
DEFAULT_CONFIG_DIR = Path(".shipwright")
DEFAULT_CONFIG_FILE = "config.toml"

# Singleton instance
_config: ShipwrightConfig | None = None


# =============================================================================
# Configuration Sections
# =============================================================================


@dataclass
class RetrySettings:
    """Retry policy settings.

    Attributes:
        max_attempts: Total attempts per task step.
        base_delay_ms: Backoff delay unit.
        backoff: fixed, linear or exponential.
        max_delay_ms: Cap for a single backoff delay.
        timeout_ms: Per-attempt timeout, 0 to disable.
        jitter: Random spread applied to delays (0.1 = +/-10%).
    """

    max_attempts: int = 3
    base_delay_ms: int = 5000
    backoff: str = "exponential"
    max_delay_ms: int = 60000
    timeout_ms: int = 600000
    jitter: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrySettings:
        """Create from dictionary."""
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            base_delay_ms=int(data.get("base_delay_ms", 5000)),
            backoff=data.get("backoff", "exponential"),
            max_delay_ms=int(data.get("max_delay_ms", 60000)),
            timeout_ms=int(data.get("timeout_ms", 600000)),
            jitter=float(data.get("jitter", 0.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_attempts": self.max_attempts,
            "base_delay_ms": self.base_delay_ms,
            "backoff": self.backoff,
            "max_delay_ms": self.max_delay_ms,
            "timeout_ms": self.timeout_ms,
            "jitter": self.jitter,
        }

    def to_policy(self) -> RetryPolicy:
        """Build the retry policy these settings describe."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay_ms=self.base_delay_ms,
            backoff=BackoffMode(self.backoff),
            max_delay_ms=self.max_delay_ms,
            timeout_ms=self.timeout_ms or None,
            jitter=self.jitter,
        )


@dataclass
class VerificationSettings:
    """Verification pipeline settings.

    Attributes:
        commands: Command per step; missing steps are auto-detected.
        steps: Steps to run, in order.
        max_fix_iterations: Auto-fix attempts per failing step.
        auto_fix_lint: Run the linter's --fix for fixable lint failures.
        continue_on_failure: Keep running later steps after a failure.
        command_timeout_ms: Timeout for each step command.
    """

    commands: dict[str, str] = field(default_factory=dict)
    steps: list[str] = field(default_factory=lambda: [s.value for s in DEFAULT_STEP_ORDER])
    max_fix_iterations: int = 3
    auto_fix_lint: bool = True
    continue_on_failure: bool = False
    command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationSettings:
        """Create from dictionary."""
        return cls(
            commands=dict(data.get("commands", {})),
            steps=list(data.get("steps", [s.value for s in DEFAULT_STEP_ORDER])),
            max_fix_iterations=int(data.get("max_fix_iterations", 3)),
            auto_fix_lint=data.get("auto_fix_lint", True),
            continue_on_failure=data.get("continue_on_failure", False),
            command_timeout_ms=int(data.get("command_timeout_ms", DEFAULT_COMMAND_TIMEOUT_MS)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "commands": dict(self.commands),
            "steps": list(self.steps),
            "max_fix_iterations": self.max_fix_iterations,
            "auto_fix_lint": self.auto_fix_lint,
            "continue_on_failure": self.continue_on_failure,
            "command_timeout_ms": self.command_timeout_ms,
        }


@dataclass
class PathSettings:
    """Filesystem locations.

    Attributes:
        project_root: Directory verification commands run in. Empty for cwd.
        state_dir: Directory holding checkpoints/, escalations/ and results/.
    """

    project_root: str = ""
    state_dir: str = ".shipwright"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathSettings:
        """Create from dictionary."""
        return cls(
            project_root=data.get("project_root", ""),
            state_dir=data.get("state_dir", ".shipwright"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"project_root": self.project_root, "state_dir": self.state_dir}

    @property
    def root(self) -> Path:
        return Path(self.project_root) if self.project_root else Path.cwd()

    @property
    def checkpoint_dir(self) -> Path:
        return self.root / self.state_dir / "checkpoints"

    @property
    def escalation_dir(self) -> Path:
        return self.root / self.state_dir / "escalations"

    @property
    def results_dir(self) -> Path:
        return self.root / self.state_dir / "results"


@dataclass
class LoggingSettings:
    """Logging settings.

    Attributes:
        level: Log level name.
        rich: Use rich console formatting.
        worker_id: Identity stamped on escalation reports.
    """

    level: str = "INFO"
    rich: bool = True
    worker_id: str = "worker-1"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create from dictionary."""
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            rich=data.get("rich", True),
            worker_id=data.get("worker_id", "worker-1"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"level": self.level, "rich": self.rich, "worker_id": self.worker_id}


@dataclass
class ShipwrightConfig:
    """Main shipwright configuration container.

    Use get_config() to get the singleton instance.
    """

    retry: RetrySettings = field(default_factory=RetrySettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)
    paths: PathSettings = field(default_factory=PathSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    # Metadata
    config_path: Path | None = None
    last_modified: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShipwrightConfig:
        """Create configuration from dictionary."""
        return cls(
            retry=RetrySettings.from_dict(data.get("retry", {})),
            verification=VerificationSettings.from_dict(data.get("verification", {})),
            paths=PathSettings.from_dict(data.get("paths", {})),
            logging=LoggingSettings.from_dict(data.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "retry": self.retry.to_dict(),
            "verification": self.verification.to_dict(),
            "paths": self.paths.to_dict(),
            "logging": self.logging.to_dict(),
        }

    def apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        if value := os.environ.get("SHIPWRIGHT_MAX_ATTEMPTS"):
            try:
                self.retry.max_attempts = int(value)
            except ValueError:
                logger.warning(f"Ignoring invalid SHIPWRIGHT_MAX_ATTEMPTS: {value}")

        if value := os.environ.get("SHIPWRIGHT_COMMAND_TIMEOUT"):
            try:
                self.verification.command_timeout_ms = int(value)
            except ValueError:
                logger.warning(f"Ignoring invalid SHIPWRIGHT_COMMAND_TIMEOUT: {value}")

        if value := os.environ.get("SHIPWRIGHT_LOG_LEVEL"):
            self.logging.level = value.upper()

        if value := os.environ.get("SHIPWRIGHT_WORKER_ID"):
            self.logging.worker_id = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key path.

        Example:
            config.get('retry.max_attempts')  # Returns 3
        """
        obj: Any = self
        for part in key.split("."):
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            elif not isinstance(obj, dict) and hasattr(obj, part):
                obj = getattr(obj, part)
            else:
                return default
        return obj

    def verification_config(self) -> VerificationConfig:
        """Build the pipeline configuration, detecting commands that are not set."""
        root = self.paths.root
        commands = detect_step_commands(root)
        for step, command in self.verification.commands.items():
            commands[VerificationStep(step)] = command

        return VerificationConfig(
            project_root=root,
            commands=commands,
            steps=tuple(VerificationStep(s) for s in self.verification.steps),
            max_fix_iterations=self.verification.max_fix_iterations,
            auto_fix_lint=self.verification.auto_fix_lint,
            continue_on_failure=self.verification.continue_on_failure,
            command_timeout_ms=self.verification.command_timeout_ms,
        )


# =============================================================================
# Configuration Loading/Saving
# =============================================================================


def get_config_path() -> Path:
    """Get the path to the configuration file."""
    if custom_path := os.environ.get("SHIPWRIGHT_CONFIG"):
        return Path(custom_path)
    return DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> ShipwrightConfig:
    """Load configuration from TOML file.

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        ShipwrightConfig with settings from file and environment.
    """
    path = config_path or get_config_path()

    config = ShipwrightConfig()
    config.config_path = path

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            config = ShipwrightConfig.from_dict(data)
            config.config_path = path
            config.last_modified = datetime.fromtimestamp(path.stat().st_mtime)

        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            config = ShipwrightConfig()
            config.config_path = path

    # Apply environment overrides
    config.apply_env_overrides()

    return config


def save_config(config: ShipwrightConfig, config_path: Path | None = None) -> bool:
    """Save configuration to TOML file.

    Args:
        config: ShipwrightConfig to save.
        config_path: Path to config file. Uses default if not specified.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or config.config_path or get_config_path()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            tomli_w.dump(config.to_dict(), f)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")
        return False

    config.config_path = path
    config.last_modified = datetime.now()
    logger.info(f"Saved config to {path}")
    return True


def get_config() -> ShipwrightConfig:
    """Get the singleton configuration instance.

    Loads from file on first call, returns cached instance after.
    Use reload_config() to force reload.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> ShipwrightConfig:
    """Force reload configuration from file."""
    global _config
    _config = load_config()
    return _config


def reset_config() -> None:
    """Reset singleton to force reload on next access."""
    global _config
    _config = None
