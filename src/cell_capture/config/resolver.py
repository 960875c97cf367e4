"""Configuration resolution with precedence handling.

Merges configuration from all sources in this order, highest first:
Programmatic > Environment > Project file > Home file > Defaults
"""

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cell_capture.core.exceptions import ConfigurationError

from .audit import SourceTracker
from .env_loader import EnvironmentConfigLoader
from .file_loader import ConfigFileError, FileConfigLoader
from .schema import CaptureSettings
from .types import ConfigOrigin, ResolvedConfig

logger = logging.getLogger(__name__)


class ConfigResolver:
    """Resolves configuration from multiple sources with proper precedence."""

    def __init__(self) -> None:
        """Initialize the configuration resolver."""
        self.file_loader = FileConfigLoader()
        self.env_loader = EnvironmentConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        profile: str | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Resolve configuration from all sources.

        Raises:
            ConfigurationError: If the merged values fail validation.
            ConfigFileError: If the project file is malformed.
        """
        tracker = SourceTracker()
        merged: dict[str, Any] = {}

        if profile is None:
            profile = os.getenv("CELL_CAPTURE_PROFILE")

        def _apply(values: dict[str, Any], origin: ConfigOrigin) -> None:
            for field, value in values.items():
                if field in merged:  # Only override known fields
                    merged[field] = value
                    tracker.set_origin(field, origin)

        for field, value in CaptureSettings.defaults().items():
            merged[field] = value
            tracker.set_origin(field, "default")

        try:
            _apply(self.file_loader.load_home_config(profile=profile), "file")
        except ConfigFileError as e:
            # Home config errors are non-fatal
            logger.warning("Ignoring home configuration: %s", e)

        try:
            _apply(
                self.file_loader.load_project_config(
                    project_root=project_root, profile=profile
                ),
                "file",
            )
        except ConfigFileError:
            # A missing profile may live in the home file only; a broken
            # base file is always an error.
            if profile is None:
                raise

        _apply(self.env_loader.load_env_config(), "env")

        if programmatic:
            _apply(programmatic, "programmatic")

        try:
            final = CaptureSettings(**merged).to_dict()
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        return ResolvedConfig(**final, origin=tracker.get_source_map())
