"""File-based configuration loading with profile support.

Reads the ``[tool.cell_capture]`` table of the project's ``pyproject.toml``
and the home file ``~/.config/cell_capture.toml``. Both support named
profiles under a ``profiles`` table.
"""

import os
from pathlib import Path
import tomllib
from typing import Any


class ConfigFileError(Exception):
    """Raised when configuration file loading fails."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        """Initialize with file path, message, and optional cause."""
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


def _select_profile(
    path: Path, table: dict[str, Any], profile: str | None
) -> dict[str, Any]:
    if profile:
        profiles = table.get("profiles", {})
        if profile not in profiles:
            raise ConfigFileError(
                path,
                f"Profile '{profile}' not found. Available profiles: {list(profiles)}",
            )
        return dict(profiles[profile])
    config = dict(table)
    config.pop("profiles", None)
    return config


class FileConfigLoader:
    """Loads configuration from TOML files."""

    def load_project_config(
        self, project_root: Path | None = None, profile: str | None = None
    ) -> dict[str, Any]:
        """Load configuration from the project's pyproject.toml.

        Returns an empty dict when there is no file or no ``cell_capture``
        table.

        Raises:
            ConfigFileError: If the file exists but cannot be parsed, or the
                requested profile is missing.
        """
        pyproject_path = self._find_pyproject_toml(project_root)
        if not pyproject_path:
            return {}
        data = self._read(pyproject_path)
        table = data.get("tool", {}).get("cell_capture", {})
        if not table:
            return {}
        return _select_profile(pyproject_path, table, profile)

    def load_home_config(self, profile: str | None = None) -> dict[str, Any]:
        """Load configuration from the home file (root level or a profile)."""
        home_config_path = self.home_config_path()
        if not home_config_path.exists():
            return {}
        data = self._read(home_config_path)
        return _select_profile(home_config_path, data, profile)

    def home_config_path(self) -> Path:
        """Path of the home configuration file.

        ``CELL_CAPTURE_CONFIG_HOME`` overrides the default location.
        """
        override = os.getenv("CELL_CAPTURE_CONFIG_HOME")
        if override:
            return Path(override)
        return Path.home() / ".config" / "cell_capture.toml"

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open(mode="rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e

    def _find_pyproject_toml(self, start_dir: Path | None = None) -> Path | None:
        """Find pyproject.toml by searching up the directory tree.

        ``CELL_CAPTURE_PYPROJECT_PATH`` pins an explicit file.
        """
        override = os.getenv("CELL_CAPTURE_PYPROJECT_PATH")
        if override:
            path = Path(override)
            return path if path.exists() else None

        current = Path(start_dir or Path.cwd()).resolve()
        while current != current.parent:
            pyproject_path = current / "pyproject.toml"
            if pyproject_path.exists():
                return pyproject_path
            current = current.parent
        return None
