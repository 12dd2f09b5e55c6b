"""Deployment trigger: deploy only artifacts a gated run has published."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from gatedag.kernel.exceptions import DeploymentError, NotFoundError, UnknownTagError
from gatedag.kernel.logging import get_logger
from gatedag.kernel.ports.deployer import DeploymentHandle, DeploymentRequest

if TYPE_CHECKING:
    from gatedag.kernel.ports.deployer import Deployer
    from gatedag.kernel.ports.tag_store import TagStore

logger = get_logger(__name__)


class DeploymentTrigger:
    """Issues deployments of recorded tags.

    The tag store is the only proof that an artifact passed its gates: a tag
    that is not recorded there is never deployed, whoever asks for it.

    Examples
    --------
    Example usage::

        trigger = DeploymentTrigger(tag_store, HelmDeployer(environments))
        handle = await trigger.adeploy("staging", "push.7-9f2c1a")
    """

    def __init__(self, tag_store: TagStore, deployer: Deployer) -> None:
        self.tag_store = tag_store
        self.deployer = deployer

    async def adeploy(
        self, environment: str, tag: str, parameters: dict[str, Any] | None = None
    ) -> DeploymentHandle:
        """Deploy *tag* to *environment*.

        Does not wait for the workload to become healthy. Deploying the same
        tag to the same environment again yields the same deployment id.

        Raises
        ------
        UnknownTagError
            If *tag* was never published by a successful run.
        DeploymentError
            If the deployer fails.
        """
        record = await self.tag_store.afind_by_tag(tag)
        if record is None:
            logger.warning("Refusing to deploy unrecorded tag {tag}", tag=tag)
            raise UnknownTagError(tag)

        request = DeploymentRequest(
            environment=environment,
            tag=record.tag,
            run_id=record.run_id,
            parameters=parameters or {},
        )
        logger.info(
            "Deploying {tag} (run {run_id}) to {env}",
            tag=record.tag,
            run_id=record.run_id,
            env=environment,
        )
        try:
            handle = await self.deployer.adeploy(request)
        except DeploymentError:
            raise
        except Exception as e:
            raise DeploymentError(environment, tag, str(e)) from e

        logger.info("Deployment {id} issued", id=handle.deployment_id)
        return handle

    async def adeploy_run(
        self, environment: str, run_id: str, parameters: dict[str, Any] | None = None
    ) -> DeploymentHandle:
        """Deploy the artifact published by run *run_id*.

        Raises
        ------
        UnknownTagError
            If the run never published a tag (it failed, was blocked or
            was cancelled).
        """
        try:
            record = await self.tag_store.aget(run_id)
        except NotFoundError as e:
            raise UnknownTagError(f"<run {run_id}>", "run published no artifact") from e
        return await self.adeploy(environment, record.tag, parameters)
