"""Helm deployer: installs a tagged image with ``helm upgrade --install``."""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING, Any

from gatedag.kernel.exceptions import DeploymentError
from gatedag.kernel.logging import get_logger
from gatedag.kernel.ports.deployer import Deployer, DeploymentHandle, DeploymentRequest

if TYPE_CHECKING:
    from gatedag.kernel.config.models import EnvironmentConfig

logger = get_logger(__name__)


class HelmDeployer(Deployer):
    """Deploys through the ``helm`` CLI.

    ``helm upgrade --install`` is idempotent for the same release and values,
    so re-deploying a tag to an environment is safe. The deployer does not pass
    ``--wait``: rollout health is the cluster's concern.

    Args
    ----
        environments: Environment name -> configuration (chart, namespace, cluster...)
        helm_binary: Name or path of the helm executable
        timeout: Seconds before the helm invocation is abandoned
    """

    def __init__(
        self,
        environments: dict[str, EnvironmentConfig],
        helm_binary: str = "helm",
        timeout: float = 300.0,
        **kwargs: Any,
    ) -> None:
        self.environments = environments
        self.helm_binary = helm_binary
        self.timeout = timeout

    def build_command(self, request: DeploymentRequest) -> list[str]:
        """Return the helm argument vector for *request*.

        Raises
        ------
        DeploymentError
            If the environment is unknown or has no chart.
        """
        env = self._environment(request)
        if not env.chart:
            raise DeploymentError(request.environment, request.tag, "environment has no 'chart'")

        cmd = [self.helm_binary, "upgrade", "--install", env.release_name, env.chart]
        if env.namespace:
            cmd += ["--namespace", env.namespace]
        if env.cluster:
            cmd += ["--kube-context", env.cluster]
        if env.image_repository:
            cmd += ["--set", f"image.repository={env.image_repository}"]
        cmd += ["--set", f"image.tag={request.tag}"]
        for key, value in sorted(request.parameters.items()):
            cmd += ["--set", f"{key}={value}"]
        return cmd

    def _environment(self, request: DeploymentRequest) -> EnvironmentConfig:
        env = self.environments.get(request.environment)
        if env is None:
            raise DeploymentError(request.environment, request.tag, "environment is not configured")
        return env

    def _process_env(self, request: DeploymentRequest) -> dict[str, str]:
        env = self._environment(request)
        process_env = dict(os.environ)
        if env.credentials_ref:
            kubeconfig = os.environ.get(env.credentials_ref)
            if not kubeconfig:
                raise DeploymentError(
                    request.environment,
                    request.tag,
                    f"credentials variable {env.credentials_ref} is not set",
                )
            process_env["KUBECONFIG"] = kubeconfig
        return process_env

    async def adeploy(self, request: DeploymentRequest) -> DeploymentHandle:
        cmd = self.build_command(request)
        process_env = self._process_env(request)
        logger.info("Running {cmd}", cmd=" ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=process_env,
            )
        except OSError as e:
            raise DeploymentError(request.environment, request.tag, f"cannot run helm: {e}") from e

        try:
            async with asyncio.timeout(self.timeout):
                stdout, stderr = await proc.communicate()
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise DeploymentError(
                request.environment, request.tag, f"helm timed out after {self.timeout}s"
            ) from e

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
            logger.error("helm failed for {env}: {detail}", env=request.environment, detail=detail)
            raise DeploymentError(request.environment, request.tag, detail)

        return DeploymentHandle(
            deployment_id=request.deployment_id,
            environment=request.environment,
            tag=request.tag,
            run_id=request.run_id,
            detail=stdout.decode(errors="replace").strip() or None,
        )
