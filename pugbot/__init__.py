"""Tiered recipient notifications and declarative upgrades for PugBot."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path


def _version_from_pyproject() -> str:
    """Read the project version from a source checkout."""
    pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return "0.0.0"

    project = data.get("project")
    if not isinstance(project, dict):
        return "0.0.0"

    project_version = project.get("version")
    return project_version if isinstance(project_version, str) else "0.0.0"


def _resolve_version() -> str:
    source_version = _version_from_pyproject()
    try:
        installed_version = version("pugbot-notifications")
    except PackageNotFoundError:
        return source_version

    # An editable checkout may be ahead of the installed metadata.
    if source_version not in ("0.0.0", installed_version):
        return source_version
    return installed_version


__version__ = _resolve_version()

__all__ = ["__version__"]
