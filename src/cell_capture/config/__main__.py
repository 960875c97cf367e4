"""CLI entry point for configuration introspection.

Usage:
    python -m cell_capture.config
    python -m cell_capture.config --json
    python -m cell_capture.config --profile staging
"""

import argparse
import json
import sys

from cell_capture.core.exceptions import ConfigurationError

from . import resolve_config
from .file_loader import ConfigFileError

# ruff: noqa: T201


def main(argv: list[str] | None = None) -> int:
    """Print the effective configuration and where each value came from."""
    parser = argparse.ArgumentParser(prog="python -m cell_capture.config")
    parser.add_argument("--json", action="store_true", help="emit JSON")
    parser.add_argument("--profile", default=None, help="configuration profile")
    args = parser.parse_args(argv)

    try:
        resolved = resolve_config(profile=args.profile)
    except (ConfigFileError, ConfigurationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.json:
        values = resolved._asdict()
        values["origin"] = dict(resolved.origin)
        print(json.dumps(values, indent=2))
    else:
        print(resolved.audit())
    return 0


if __name__ == "__main__":
    sys.exit(main())
