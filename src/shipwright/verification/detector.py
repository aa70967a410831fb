"""Default verification command detection.

Picks a command for each verification step from the tooling a project
already uses, so that most projects need no verification config at all.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

from .models import VerificationStep

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS: dict[VerificationStep, str] = {
    VerificationStep.TEST: "npm test",
    VerificationStep.LINT: "npm run lint",
    VerificationStep.BUILD: "npm run build",
    VerificationStep.TYPECHECK: "npx tsc --noEmit",
}


def _load_pyproject(path: Path) -> dict[str, Any] | None:
    pyproject = path / "pyproject.toml"
    if not pyproject.exists():
        return None
    try:
        return tomllib.loads(pyproject.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Could not read {pyproject}: {e}")
        return {}


def _load_package_json(path: Path) -> dict[str, Any] | None:
    package_json = path / "package.json"
    if not package_json.exists():
        return None
    try:
        data = json.loads(package_json.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read {package_json}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _python_commands(path: Path, pyproject: dict[str, Any]) -> dict[VerificationStep, str]:
    tool = pyproject.get("tool", {})

    if "ruff" in tool or (path / "ruff.toml").exists() or (path / ".ruff.toml").exists():
        lint = "ruff check ."
    elif (path / ".flake8").exists():
        lint = "flake8"
    else:
        lint = "ruff check ."

    if "pyright" in tool or (path / "pyrightconfig.json").exists():
        typecheck = "pyright"
    else:
        typecheck = "mypy ."

    return {
        VerificationStep.TEST: "pytest",
        VerificationStep.LINT: lint,
        VerificationStep.BUILD: "python -m compileall -q .",
        VerificationStep.TYPECHECK: typecheck,
    }


def _node_commands(path: Path, package: dict[str, Any]) -> dict[VerificationStep, str]:
    scripts = package.get("scripts") or {}
    commands = dict(DEFAULT_COMMANDS)

    if "lint" not in scripts and "eslint" in str(package.get("devDependencies", {})):
        commands[VerificationStep.LINT] = "npx eslint ."
    if "typecheck" in scripts:
        commands[VerificationStep.TYPECHECK] = "npm run typecheck"
    elif not (path / "tsconfig.json").exists() and "build" in scripts:
        # No TypeScript config, the build is the only compile check
        commands[VerificationStep.TYPECHECK] = "npm run build"
    return commands


def detect_step_commands(project_root: Path | None = None) -> dict[VerificationStep, str]:
    """Detect the command to run for each verification step.

    Detection order:
    1. package.json (npm scripts, tsc)
    2. Python project files (pyproject.toml, setup.py, pytest.ini)
    3. npm defaults

    Args:
        project_root: Project directory to analyze. Defaults to current directory.

    Returns:
        Mapping of every VerificationStep to a shell command.
    """
    if project_root is None:
        project_root = Path.cwd()

    package = _load_package_json(project_root)
    if package is not None:
        return _node_commands(project_root, package)

    pyproject = _load_pyproject(project_root)
    if pyproject is not None:
        return _python_commands(project_root, pyproject)
    if (project_root / "setup.py").exists() or (project_root / "pytest.ini").exists():
        return _python_commands(project_root, {})

    return dict(DEFAULT_COMMANDS)
