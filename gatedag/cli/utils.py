"""CLI helper utilities for gatedag commands."""

from __future__ import annotations

import json
from typing import Any, Protocol

import typer
import yaml
from rich.console import Console
from rich.markup import escape

from gatedag.kernel.config import GateDAGConfig, load_config
from gatedag.kernel.domain.stage import StageState
from gatedag.stdlib.adapters.tag_store import SQLiteTagStore


class ContextProtocol(Protocol):
    """Protocol for common interface between Click and Typer contexts."""

    @property
    def obj(self) -> dict[str, Any] | None: ...


console = Console()

STATE_STYLES = {
    StageState.PASSED: "green",
    StageState.SOFT_FAILED: "yellow",
    StageState.HARD_FAILED: "red",
    StageState.SKIPPED: "dim",
    StageState.ABORTED: "magenta",
    StageState.PENDING: "dim",
    StageState.RUNNING: "cyan",
}


def output_format(ctx: ContextProtocol | None) -> str:
    settings = getattr(ctx, "obj", None)
    if isinstance(settings, dict):
        return str(settings.get("output_format", "pretty"))
    return "pretty"


def print_output(data: Any, ctx: ContextProtocol | None = None) -> None:
    """Print *data* according to ``ctx.obj['output_format']``.

    If ctx is None or no format specified, pretty-print using rich.console.
    """
    fmt = output_format(ctx)
    if fmt == "json":
        typer.echo(json.dumps(data, default=str, indent=2))
    elif fmt == "yaml":
        typer.echo(yaml.safe_dump(data, sort_keys=False))
    elif isinstance(data, (str, int, float)):
        typer.echo(str(data))
    else:
        console.print(data)


def get_config(ctx: ContextProtocol | None) -> GateDAGConfig:
    """Configuration loaded by the root callback, or freshly loaded defaults."""
    settings = getattr(ctx, "obj", None)
    if isinstance(settings, dict) and isinstance(settings.get("config"), GateDAGConfig):
        return settings["config"]
    return load_config()


def open_tag_store(config: GateDAGConfig) -> SQLiteTagStore:
    return SQLiteTagStore(config.tag_store.path)


def fail(message: str, code: int = 1) -> typer.Exit:
    """Print *message* in red and return the exit to raise."""
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(code)
