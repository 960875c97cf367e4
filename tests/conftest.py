"""
Global test configuration.
"""

import logging
import os

import pytest


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_capture_env(request, monkeypatch):
    """Ensure a clean CELL_CAPTURE_* environment for each test.

    Removes every CELL_CAPTURE_* variable plus the debug and deployment
    toggles that change telemetry and hostname resolution.

    Escape hatch: mark a test with @pytest.mark.allow_env_pollution to keep
    the current environment unchanged.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.startswith("CELL_CAPTURE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.delenv("K_SERVICE", raising=False)


@pytest.fixture(autouse=True)
def neutral_config_files(request, monkeypatch, tmp_path, isolate_capture_env):  # noqa: ARG001
    """Point the home file and pyproject lookups at isolated temp paths.

    Prevents reading a developer's real ~/.config/cell_capture.toml or the
    pyproject.toml of whatever directory the tests run from.

    Escape hatch: mark a test with @pytest.mark.allow_real_config_files.
    """
    if request.node.get_closest_marker("allow_real_config_files"):
        return

    isolated = tmp_path / "config_isolated"
    isolated.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CELL_CAPTURE_CONFIG_HOME", str(isolated / "cell_capture.toml"))
    monkeypatch.setenv("CELL_CAPTURE_PYPROJECT_PATH", str(isolated / "pyproject.toml"))


@pytest.fixture
def write_toml(tmp_path):
    """Write TOML content to a temp file and return its path."""

    def _write(name: str, content: str):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "integration: Full pipeline runs with in-memory collaborators",
        "allow_env_pollution: Keep CELL_CAPTURE_* variables from the environment",
        "allow_real_config_files: Read the real home and project config files",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)
