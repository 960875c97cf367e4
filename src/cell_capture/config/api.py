"""Public API for the configuration system."""

from pathlib import Path
from typing import Any

from .resolver import ConfigResolver
from .types import ResolvedConfig

# Global resolver instance for efficient reuse
_resolver = ConfigResolver()


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    profile: str | None = None,
    project_root: Path | None = None,
) -> ResolvedConfig:
    """Resolve configuration from all sources with proper precedence.

    Args:
        programmatic: Overrides with the highest precedence. Unknown keys are
            ignored.
        profile: Profile to load from configuration files. Defaults to the
            ``CELL_CAPTURE_PROFILE`` environment variable.
        project_root: Directory to start the pyproject.toml search from.

    Returns:
        ResolvedConfig with merged values and source tracking.

    Example:
        config = resolve_config({"reporter_api": True})
        print(config.audit())
    """
    return _resolver.resolve(
        programmatic=programmatic,
        profile=profile,
        project_root=project_root,
    )
