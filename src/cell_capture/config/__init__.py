"""Configuration management for the capture pipeline.

Resolve-once, freeze-then-flow:

- ResolvedConfig: Post-resolution configuration with audit metadata
- FrozenConfig: Immutable configuration for pipeline execution
- SourceMap: Where each configuration value came from
"""

from .api import resolve_config
from .file_loader import ConfigFileError, FileConfigLoader
from .resolver import ConfigResolver
from .schema import CaptureSettings
from .types import ConfigOrigin, FrozenConfig, ResolvedConfig, SourceMap

__all__ = [  # noqa: RUF022
    "resolve_config",
    "ResolvedConfig",
    "FrozenConfig",
    "SourceMap",
    "ConfigOrigin",
    "CaptureSettings",
    "ConfigResolver",
    "FileConfigLoader",
    "ConfigFileError",
]
