"""Core configuration data types.

Configuration follows the resolve-once, freeze-then-flow pattern: a
`ResolvedConfig` carries audit metadata, a `FrozenConfig` flows through the
pipeline.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, NamedTuple

# --- Source Tracking Types ---

ConfigOrigin = Literal["programmatic", "env", "file", "default"]
SourceMap = Mapping[str, ConfigOrigin]

FIELD_ORDER = (
    "api_url",
    "auth_timeout_seconds",
    "request_timeout_seconds",
    "reporter_api",
    "force_login",
    "login_command",
)


class ResolvedConfig(NamedTuple):
    """Configuration after resolution from all sources, before freezing."""

    api_url: str | None
    auth_timeout_seconds: float
    request_timeout_seconds: float
    reporter_api: bool
    force_login: bool
    login_command: str

    # Audit metadata - tracks where each field value came from
    origin: SourceMap

    def to_frozen(self) -> "FrozenConfig":
        """Convert to the immutable configuration used in the pipeline."""
        return FrozenConfig(
            api_url=self.api_url,
            auth_timeout_seconds=self.auth_timeout_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
            reporter_api=self.reporter_api,
            force_login=self.force_login,
            login_command=self.login_command,
        )

    def with_overrides(self, **overrides: object) -> "ResolvedConfig":
        """Create a new ResolvedConfig with programmatic overrides applied.

        Unknown fields are ignored.
        """
        new_values = self._asdict()
        new_origin = dict(self.origin)
        for field, value in overrides.items():
            if field in FIELD_ORDER:
                new_values[field] = value
                new_origin[field] = "programmatic"
        new_values["origin"] = new_origin
        return ResolvedConfig(**new_values)

    def audit(self) -> str:
        """Human-readable report showing the origin of each field."""
        lines = []
        for field in FIELD_ORDER:
            if field not in self.origin:
                continue
            origin = self.origin[field]
            value = getattr(self, field)
            if origin == "env":
                lines.append(f"{field}: env:CELL_CAPTURE_{field.upper()}={value}")
            else:
                lines.append(f"{field}: {origin}:{value}")
        return "\n".join(lines)


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable configuration attached to commands in the pipeline."""

    api_url: str | None = None
    auth_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 30.0
    reporter_api: bool = False
    force_login: bool = False
    login_command: str = "runme.openCloudPanel"
