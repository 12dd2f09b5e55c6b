"""gatedag command line interface."""

from gatedag.cli.main import app, main

__all__ = ["app", "main"]
