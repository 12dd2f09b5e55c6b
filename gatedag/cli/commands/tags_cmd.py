"""Tags commands: inspect the artifact tag ledger."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Annotated

import typer
from rich.table import Table

from gatedag.cli.utils import console, fail, get_config, open_tag_store, print_output
from gatedag.kernel.domain import TagRecord
from gatedag.kernel.exceptions import NotFoundError, TagStoreError

app = typer.Typer()


def _timestamp(record: TagRecord) -> str:
    return datetime.fromtimestamp(record.created_at).isoformat(timespec="seconds")


@app.command("get")
def get_tag(
    ctx: typer.Context,
    run_id: Annotated[str, typer.Argument(help="Run id")],
) -> None:
    """Show the tag published by a run."""
    config = get_config(ctx)

    async def _get() -> TagRecord:
        async with open_tag_store(config) as store:
            return await store.aget(run_id)

    try:
        record = asyncio.run(_get())
    except NotFoundError as e:
        raise fail(f"{e}; the run failed, was blocked or never ran") from e
    except TagStoreError as e:
        raise fail(str(e)) from e

    if ctx.obj and ctx.obj.get("output_format") in ("json", "yaml"):
        print_output(record.model_dump(), ctx)
    else:
        console.print(f"[bold]{record.tag}[/bold] (run {record.run_id}, {_timestamp(record)})")


@app.command("list")
def list_tags(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", min=1)] = 50,
) -> None:
    """List published tags, newest first."""
    config = get_config(ctx)

    async def _list() -> list[TagRecord]:
        async with open_tag_store(config) as store:
            return await store.alist(limit)

    try:
        records = asyncio.run(_list())
    except TagStoreError as e:
        raise fail(str(e)) from e

    if ctx.obj and ctx.obj.get("output_format") in ("json", "yaml"):
        print_output([r.model_dump() for r in records], ctx)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Run ID")
    table.add_column("Tag", style="cyan")
    table.add_column("Created")
    for record in records:
        table.add_row(record.run_id, record.tag, _timestamp(record))
    console.print(table)
