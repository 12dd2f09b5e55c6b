"""Deploy command: install a published artifact into an environment."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from gatedag.cli.utils import console, fail, get_config, open_tag_store, print_output
from gatedag.kernel.config import GateDAGConfig
from gatedag.kernel.exceptions import GateDAGError
from gatedag.kernel.orchestration import DeploymentTrigger
from gatedag.kernel.ports import Deployer, DeploymentHandle
from gatedag.stdlib.adapters.deploy import HelmDeployer
from gatedag.stdlib.adapters.mock import MockDeployer


def _deployer(config: GateDAGConfig, dry_run: bool) -> Deployer:
    if dry_run:
        return MockDeployer()
    return HelmDeployer(config.environments)


async def _deploy(
    config: GateDAGConfig,
    environment: str,
    tag: str | None,
    run_id: str | None,
    dry_run: bool,
) -> DeploymentHandle:
    async with open_tag_store(config) as store:
        trigger = DeploymentTrigger(store, _deployer(config, dry_run))
        if tag is not None:
            return await trigger.adeploy(environment, tag)
        return await trigger.adeploy_run(environment, run_id or "")


def deploy(
    ctx: typer.Context,
    environment: Annotated[str, typer.Argument(help="Target environment")],
    tag: Annotated[str | None, typer.Option("--tag", help="Published artifact tag")] = None,
    run_id: Annotated[
        str | None, typer.Option("--run-id", help="Deploy the tag published by this run")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Check the tag but do not call helm")
    ] = False,
) -> None:
    """Deploy a published tag. Unrecorded tags are refused."""
    if (tag is None) == (run_id is None):
        raise fail("pass exactly one of --tag or --run-id")

    config = get_config(ctx)
    if environment not in config.environments and not dry_run:
        raise fail(f"environment '{environment}' is not configured")

    try:
        handle = asyncio.run(_deploy(config, environment, tag, run_id, dry_run))
    except GateDAGError as e:
        raise fail(str(e)) from e

    if ctx.obj and ctx.obj.get("output_format") in ("json", "yaml"):
        print_output(handle.model_dump(), ctx)
        return
    mode = " (dry run)" if dry_run else ""
    console.print(
        f"[green]✓ Deployment issued{mode}:[/green] {handle.tag} → {handle.environment} "
        f"[dim]id {handle.deployment_id}[/dim]"
    )
