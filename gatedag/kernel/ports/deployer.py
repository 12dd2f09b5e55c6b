"""Deployer port: issue a deployment of a tagged artifact to an environment.

The deployer only issues the action (a chart install, a manifest apply).
Waiting for the workload to become healthy is the cluster's job.

Adapters
--------
- ``HelmDeployer``: ``helm upgrade --install`` via a subprocess.
- ``MockDeployer``: records requests in memory.
"""

from __future__ import annotations

import hashlib
import time
from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class DeploymentRequest(BaseModel):
    """What to deploy where."""

    model_config = ConfigDict(frozen=True)

    environment: str
    tag: str
    run_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    @property
    def deployment_id(self) -> str:
        """Stable id of the (environment, tag) pair; re-deploys share it."""
        digest = hashlib.sha256(f"{self.environment}\x00{self.tag}".encode()).hexdigest()
        return digest[:16]


class DeploymentHandle(BaseModel):
    """Receipt for an issued deployment."""

    model_config = ConfigDict(frozen=True)

    deployment_id: str
    environment: str
    tag: str
    run_id: str
    issued_at: float = Field(default_factory=time.time)
    detail: str | None = None


@runtime_checkable
class Deployer(Protocol):
    """Port for the external deployment invocation."""

    @abstractmethod
    async def adeploy(self, request: DeploymentRequest) -> DeploymentHandle:
        """Issue the deployment described by *request*.

        Must be idempotent for the same (environment, tag).

        Raises
        ------
        DeploymentError
            If the deployment action fails.
        """
        ...
