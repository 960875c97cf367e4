"""Environment variable configuration loading."""

import os
from typing import Any

ENV_VARS = {
    "CELL_CAPTURE_API_URL": "api_url",
    "CELL_CAPTURE_AUTH_TIMEOUT_SECONDS": "auth_timeout_seconds",
    "CELL_CAPTURE_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "CELL_CAPTURE_REPORTER_API": "reporter_api",
    "CELL_CAPTURE_FORCE_LOGIN": "force_login",
    "CELL_CAPTURE_LOGIN_COMMAND": "login_command",
}


class EnvironmentConfigLoader:
    """Loads configuration from CELL_CAPTURE_* environment variables."""

    def load_env_config(self) -> dict[str, Any]:
        """Return the raw values of the variables that are set.

        Values are left as strings; the resolver validates and coerces the
        merged configuration in one place.
        """
        return {
            field: os.environ[env_var]
            for env_var, field in ENV_VARS.items()
            if env_var in os.environ
        }
