"""Tests for the unified configuration system."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from shipwright.config import (
    LoggingSettings,
    PathSettings,
    RetrySettings,
    ShipwrightConfig,
    VerificationSettings,
    get_config,
    get_config_path,
    load_config,
    reload_config,
    reset_config,
    save_config,
)
from shipwright.retry.policy import BackoffMode
from shipwright.verification.models import VerificationStep


# =============================================================================
# Section Tests
# =============================================================================


class TestRetrySettings:
    """Tests for RetrySettings dataclass."""

    def test_defaults(self):
        """Test default values."""
        settings = RetrySettings()
        assert settings.max_attempts == 3
        assert settings.base_delay_ms == 5000
        assert settings.backoff == "exponential"
        assert settings.timeout_ms == 600000

    def test_to_policy(self):
        """Test building a retry policy."""
        policy = RetrySettings(max_attempts=5, backoff="linear", timeout_ms=0).to_policy()
        assert policy.max_attempts == 5
        assert policy.backoff == BackoffMode.LINEAR
        assert policy.timeout_ms is None

    def test_invalid_backoff(self):
        """Unknown backoff modes are rejected when the policy is built."""
        with pytest.raises(ValueError):
            RetrySettings(backoff="random").to_policy()


class TestVerificationSettings:
    """Tests for VerificationSettings dataclass."""

    def test_defaults(self):
        settings = VerificationSettings()
        assert settings.steps == ["test", "lint", "build", "typecheck"]
        assert settings.commands == {}
        assert settings.max_fix_iterations == 3

    def test_round_trip(self):
        data = {"commands": {"test": "pytest -q"}, "steps": ["test"], "continue_on_failure": True}
        settings = VerificationSettings.from_dict(data)
        assert settings.commands == {"test": "pytest -q"}
        assert settings.continue_on_failure is True
        assert VerificationSettings.from_dict(settings.to_dict()) == settings


class TestPathSettings:
    """Tests for PathSettings dataclass."""

    def test_state_dirs(self, tmp_path: Path):
        """State directories live under the project root."""
        paths = PathSettings(project_root=str(tmp_path), state_dir=".state")
        assert paths.checkpoint_dir == tmp_path / ".state" / "checkpoints"
        assert paths.escalation_dir == tmp_path / ".state" / "escalations"
        assert paths.results_dir == tmp_path / ".state" / "results"

    def test_empty_root_is_cwd(self):
        assert PathSettings().root == Path.cwd()


class TestLoggingSettings:
    """Tests for LoggingSettings dataclass."""

    def test_level_uppercased(self):
        assert LoggingSettings.from_dict({"level": "debug"}).level == "DEBUG"


# =============================================================================
# ShipwrightConfig Tests
# =============================================================================


class TestShipwrightConfig:
    """Tests for the main configuration container."""

    def test_from_dict_partial(self):
        """Missing sections fall back to defaults."""
        config = ShipwrightConfig.from_dict({"retry": {"max_attempts": 7}})
        assert config.retry.max_attempts == 7
        assert config.verification.max_fix_iterations == 3
        assert config.logging.worker_id == "worker-1"

    def test_get_dotted(self):
        config = ShipwrightConfig.from_dict({"verification": {"commands": {"lint": "ruff check ."}}})
        assert config.get("retry.max_attempts") == 3
        assert config.get("verification.commands.lint") == "ruff check ."
        assert config.get("retry.nope", "fallback") == "fallback"

    def test_env_overrides(self):
        """Environment variables take precedence over file values."""
        config = ShipwrightConfig.from_dict({"retry": {"max_attempts": 2}})
        env = {
            "SHIPWRIGHT_MAX_ATTEMPTS": "9",
            "SHIPWRIGHT_COMMAND_TIMEOUT": "1500",
            "SHIPWRIGHT_LOG_LEVEL": "warning",
            "SHIPWRIGHT_WORKER_ID": "worker-7",
        }
        with patch.dict("os.environ", env):
            config.apply_env_overrides()

        assert config.retry.max_attempts == 9
        assert config.verification.command_timeout_ms == 1500
        assert config.logging.level == "WARNING"
        assert config.logging.worker_id == "worker-7"

    def test_invalid_env_override_ignored(self):
        config = ShipwrightConfig()
        with patch.dict("os.environ", {"SHIPWRIGHT_MAX_ATTEMPTS": "many"}):
            config.apply_env_overrides()
        assert config.retry.max_attempts == 3

    def test_verification_config_merges_detected(self, tmp_path: Path):
        """Configured commands override detected ones."""
        (tmp_path / "pyproject.toml").write_text("[tool.ruff]\n")
        config = ShipwrightConfig.from_dict(
            {
                "paths": {"project_root": str(tmp_path)},
                "verification": {"commands": {"test": "pytest -x"}, "steps": ["test", "lint"]},
            }
        )

        verification = config.verification_config()

        assert verification.project_root == tmp_path
        assert verification.command_for(VerificationStep.TEST) == "pytest -x"
        assert verification.command_for(VerificationStep.LINT) == "ruff check ."
        assert verification.steps == (VerificationStep.TEST, VerificationStep.LINT)


# =============================================================================
# Loading / Saving Tests
# =============================================================================


class TestLoadSave:
    """Tests for load_config / save_config."""

    def test_default_path(self):
        assert get_config_path() == Path(".shipwright") / "config.toml"

    def test_custom_path_env(self, tmp_path: Path):
        with patch.dict("os.environ", {"SHIPWRIGHT_CONFIG": str(tmp_path / "x.toml")}):
            assert get_config_path() == tmp_path / "x.toml"

    def test_missing_file_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.toml")
        assert config.retry.max_attempts == 3
        assert config.config_path == tmp_path / "missing.toml"
        assert config.last_modified is None

    def test_load_file(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text(
            '[retry]\nmax_attempts = 4\nbackoff = "fixed"\n\n'
            '[verification]\nmax_fix_iterations = 1\n\n'
            '[verification.commands]\ntest = "pytest"\n'
        )
        config = load_config(path)

        assert config.retry.max_attempts == 4
        assert config.retry.backoff == "fixed"
        assert config.verification.commands == {"test": "pytest"}
        assert config.last_modified is not None

    def test_invalid_toml_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text("[retry\nmax_attempts = ")
        config = load_config(path)
        assert config.retry.max_attempts == 3

    def test_env_applied_on_load(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text("[retry]\nmax_attempts = 4\n")
        with patch.dict("os.environ", {"SHIPWRIGHT_MAX_ATTEMPTS": "6"}):
            config = load_config(path)
        assert config.retry.max_attempts == 6

    def test_save_and_reload(self, tmp_path: Path):
        """Saved configuration loads back unchanged."""
        config = ShipwrightConfig.from_dict({"retry": {"jitter": 0.1}, "logging": {"rich": False}})
        path = tmp_path / "nested" / "config.toml"

        assert save_config(config, path) is True
        loaded = load_config(path)

        assert loaded.to_dict() == config.to_dict()

    def test_singleton(self, tmp_path: Path):
        with patch.dict("os.environ", {"SHIPWRIGHT_CONFIG": str(tmp_path / "c.toml")}):
            first = get_config()
            assert get_config() is first
            assert reload_config() is not first
            reset_config()
            assert get_config() is not first
