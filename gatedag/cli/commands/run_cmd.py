"""Run command: execute a pipeline with command stages."""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from functools import partial
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.table import Table

from gatedag.cli.utils import STATE_STYLES, console, fail, get_config, open_tag_store, print_output
from gatedag.kernel.config import EnvironmentConfig, GateDAGConfig
from gatedag.kernel.domain import PipelineDefinition, PipelineResult, RunStatus, TriggerContext
from gatedag.kernel.domain.run import TriggerKind
from gatedag.kernel.exceptions import ArtifactPublishError, GateDAGError
from gatedag.kernel.orchestration import (
    Event,
    LocalObserverManager,
    StageCompleted,
    StageScheduler,
    StageSkipped,
)
from gatedag.kernel.pipeline_builder import load_pipeline
from gatedag.stdlib.adapters.command import CommandStage

EXIT_CODES = {RunStatus.SUCCEEDED: 0, RunStatus.FAILED: 2, RunStatus.ABORTED: 3}


def _progress_printer(event: Event) -> None:
    if isinstance(event, (StageCompleted, StageSkipped)):
        style = STATE_STYLES.get(event.state, "white")
        console.print(f"  [{style}]{event.state.value:<12}[/{style}] {event.stage}")


async def _execute(
    config: GateDAGConfig,
    definition: PipelineDefinition,
    trigger: TriggerContext,
    environment: EnvironmentConfig | None,
    workdir: Path | None,
    show_progress: bool,
) -> PipelineResult:
    observers = LocalObserverManager()
    if show_progress:
        observers.register(_progress_printer, event_types=[StageCompleted, StageSkipped])

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)

    async with open_tag_store(config) as store:
        scheduler = StageScheduler(
            max_concurrent_stages=config.scheduler.max_concurrent_stages,
            default_stage_timeout=config.scheduler.default_stage_timeout,
            tag_store=store,
            observer_manager=observers,
            environment=environment,
        )
        try:
            return await scheduler.run(
                definition,
                trigger,
                cancel_event=cancel_event,
                action_factory=partial(CommandStage.for_stage, cwd=workdir),
            )
        finally:
            with suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(signal.SIGINT)


def _print_result(result: PipelineResult) -> None:
    table = Table(title=f"Run {result.run_id}", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan")
    table.add_column("State")
    table.add_column("Findings", justify="right")
    table.add_column("Reason", style="dim")
    for name, execution in result.stages.items():
        style = STATE_STYLES.get(execution.state, "white")
        table.add_row(
            name,
            f"[{style}]{execution.state.value}[/{style}]",
            str(len(execution.findings)),
            execution.reason or "",
        )
    console.print(table)

    color = {RunStatus.SUCCEEDED: "green", RunStatus.FAILED: "red"}.get(result.status, "magenta")
    console.print(f"Status: [{color}]{result.status.value}[/{color}]")
    if result.artifact is not None:
        published = "published" if result.published else "not published"
        console.print(f"Artifact: [bold]{result.artifact.tag}[/bold] ({published})")
    if result.error:
        console.print(f"[red]{result.error}[/red]")


def run(
    ctx: typer.Context,
    pipeline_path: Annotated[Path, typer.Argument(help="Pipeline YAML file")],
    trigger: Annotated[
        TriggerKind, typer.Option("--trigger", "-t", help="What started this run")
    ] = TriggerKind.PUSH,
    branch: Annotated[
        str | None, typer.Option("--branch", "-b", help="Branch (required for manual runs)")
    ] = None,
    run_id: Annotated[
        str | None, typer.Option("--run-id", help="Externally assigned run id")
    ] = None,
    build_number: Annotated[
        int, typer.Option("--build-number", min=1, help="Build sequence used in the tag")
    ] = 1,
    env: Annotated[str | None, typer.Option("--env", "-e", help="Target environment")] = None,
    workdir: Annotated[
        Path | None, typer.Option("--workdir", help="Working directory for stage commands")
    ] = None,
) -> None:
    """Run a pipeline; exit 2 if it failed, 3 if it was cancelled."""
    config = get_config(ctx)
    pretty = ctx.obj is None or ctx.obj.get("output_format", "pretty") == "pretty"

    try:
        definition = load_pipeline(pipeline_path)
        environment = config.environment(env)
        trigger_ctx = TriggerContext(
            kind=trigger,
            branch=branch,
            run_id=run_id,
            build_number=build_number,
            environment=environment.name if environment else None,
        )
    except PydanticValidationError as e:
        raise fail(str(e.errors()[0]["msg"])) from e
    except GateDAGError as e:
        raise fail(str(e)) from e

    if pretty:
        console.print(f"[cyan]Running pipeline '{definition.name}'[/cyan]")

    try:
        result = asyncio.run(
            _execute(config, definition, trigger_ctx, environment, workdir, show_progress=pretty)
        )
    except ArtifactPublishError as e:
        result = e.result
    except GateDAGError as e:
        raise fail(str(e)) from e

    if pretty:
        _print_result(result)
    else:
        print_output(result.to_dict(), ctx)
    raise typer.Exit(EXIT_CODES[result.status])
