"""CLI command modules."""

from . import deploy_cmd, run_cmd, tags_cmd, validate_cmd

__all__ = ["deploy_cmd", "run_cmd", "tags_cmd", "validate_cmd"]
