"""Validate command: check a pipeline definition without running it."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from gatedag.cli.utils import console, fail, print_output
from gatedag.kernel.exceptions import GateDAGError
from gatedag.kernel.pipeline_builder import load_pipeline


def validate(
    ctx: typer.Context,
    pipeline_path: Annotated[Path, typer.Argument(help="Pipeline YAML file")],
) -> None:
    """Validate a pipeline: stage names, needs, cycles and gates."""
    try:
        definition = load_pipeline(pipeline_path)
    except GateDAGError as e:
        console.print(f"[red]✗ Validation failed:[/red] {pipeline_path}")
        raise fail(str(e)) from e

    graph = definition.graph
    if ctx.obj and ctx.obj.get("output_format") in ("json", "yaml"):
        print_output(
            {
                "name": definition.name,
                "waves": graph.waves(),
                "artifact_stage": definition.artifact_stage,
                "stages": {
                    s.name: {
                        "needs": list(s.needs),
                        "blocking": s.gate.is_blocking,
                        "command": s.run,
                    }
                    for s in definition.stages
                },
            },
            ctx,
        )
        return

    console.print(f"[green]✓ Validation successful:[/green] {pipeline_path}")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Wave", justify="right")
    table.add_column("Stage", style="cyan")
    table.add_column("Needs")
    table.add_column("Gate")
    for index, wave in enumerate(graph.waves()):
        for name in wave:
            stage = definition.stage(name)
            gate = "[red]blocking[/red]" if stage.gate.is_blocking else "[yellow]advisory[/yellow]"
            if stage.produces_artifact:
                gate += " [bold](artifact)[/bold]"
            table.add_row(str(index), name, ", ".join(stage.needs) or "-", gate)
    console.print(table)
