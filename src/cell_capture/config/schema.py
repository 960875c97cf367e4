"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces configuration
values from various sources (environment, files, programmatic) into the correct
types with proper defaults.
"""

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CaptureSettings(BaseSettings):
    """Pydantic settings schema for the capture pipeline.

    Integrates with environment variables using the CELL_CAPTURE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="CELL_CAPTURE_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars for forward compatibility
    )

    api_url: str | None = Field(
        default=None,
        description="GraphQL endpoint submissions are sent to",
    )

    auth_timeout_seconds: float = Field(
        default=60.0,
        description="How long an interactive sign-in may take",
        gt=0,
    )

    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for the submission request",
        gt=0,
    )

    reporter_api: bool = Field(
        default=False,
        description="Send the reporter payload instead of the legacy one",
    )

    force_login: bool = Field(
        default=False,
        description="Request a new session when none is cached",
    )

    login_command: str = Field(
        default="runme.openCloudPanel",
        description="Host command that shows the sign-in surface",
        min_length=1,
    )

    @field_validator("api_url")
    @classmethod
    def check_api_url(cls, v: str | None) -> str | None:
        """Require an http(s) URL when an endpoint is set."""
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_url must be an http(s) URL, got {v!r}")
        return v

    @classmethod
    def defaults(cls) -> dict[str, Any]:
        """Schema defaults, without reading the environment."""
        return {name: f.get_default() for name, f in cls.model_fields.items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary suitable for SourceMap annotation."""
        return {
            "api_url": self.api_url,
            "auth_timeout_seconds": self.auth_timeout_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "reporter_api": self.reporter_api,
            "force_login": self.force_login,
            "login_command": self.login_command,
        }
