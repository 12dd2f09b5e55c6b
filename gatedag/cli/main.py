"""gatedag CLI - Main entrypoint."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from gatedag import __version__
from gatedag.cli.commands import deploy_cmd, run_cmd, tags_cmd, validate_cmd
from gatedag.kernel.config import load_config
from gatedag.kernel.exceptions import GateDAGError
from gatedag.kernel.logging import configure_logging

# Create the main Typer app
app = typer.Typer(
    name="gatedag",
    help="gatedag - gated DevSecOps pipelines with tagged, deployable artifacts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()

app.command("validate", help="Validate a pipeline definition")(validate_cmd.validate)
app.command("run", help="Run a pipeline")(run_cmd.run)
app.command("deploy", help="Deploy a published artifact")(deploy_cmd.deploy)
app.add_typer(tags_cmd.app, name="tags", help="Inspect the artifact tag ledger")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold blue]gatedag[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to gatedag.toml or pyproject.toml")
    ] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Log level: debug|info|warning|error")
    ] = None,
    json_out: Annotated[bool, typer.Option("--json", help="Output machine-readable JSON")] = False,
    yaml_out: Annotated[bool, typer.Option("--yaml", help="Output machine-readable YAML")] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version", "-v", callback=_version_callback, is_eager=True, help="Show version"
        ),
    ] = False,
) -> None:
    """gatedag CLI.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}

    try:
        config = load_config(config_path)
    except (GateDAGError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    output_format = "pretty"
    if json_out:
        output_format = "json"
    elif yaml_out:
        output_format = "yaml"

    level = (log_level or config.logging.level).upper()
    if level == "WARN":
        level = "WARNING"
    configure_logging(
        level=level,  # type: ignore[arg-type]
        format=config.logging.format,
        output_file=config.logging.output_file,
        use_color=config.logging.use_color,
        include_timestamp=config.logging.include_timestamp,
        force_reconfigure=True,
    )

    ctx.obj.update({
        "config": config,
        "output_format": output_format,
        "log_level": level,
    })


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
