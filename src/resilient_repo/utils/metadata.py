"""
Project metadata helpers.

Log records carry the service name and version. Both come from the installed
distribution when available, else from the nearest pyproject.toml.
"""
import tomllib
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any

DISTRIBUTION_NAME = "resilient-repo"


def find_pyproject(start: Path, max_up: int = 5) -> Path | None:
    """Walk up from `start` (at most `max_up` levels) looking for pyproject.toml."""
    current = start
    for _ in range(max_up):
        candidate = current / "pyproject.toml"
        if candidate.exists():
            return candidate
        if current.parent == current:
            break
        current = current.parent
    return None


def get_pyproject_value(key: str, start: Path | None = None, max_up: int = 5, default: Any = None) -> Any:
    """
    Return a dot-separated key (e.g. "project.version") from the nearest pyproject.toml,
    or `default` when the file or the key is missing or the file cannot be parsed.
    """
    pyproject = find_pyproject(start or Path(__file__).resolve().parent, max_up=max_up)
    if pyproject is None or not key:
        return default

    try:
        with pyproject.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError):
        return default

    current: Any = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def get_project_name(default: str = DISTRIBUTION_NAME) -> str:
    return get_pyproject_value("project.name", default=default)


def get_project_version(default: str = "unknown") -> str:
    """Installed distribution version first, pyproject.toml second."""
    try:
        return importlib_metadata.version(DISTRIBUTION_NAME)
    except importlib_metadata.PackageNotFoundError:
        pass
    return get_pyproject_value("project.version", default=default)
