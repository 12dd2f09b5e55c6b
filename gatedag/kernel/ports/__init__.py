"""Ports: the interfaces gatedag talks to the outside world through."""

from gatedag.kernel.ports.deployer import Deployer, DeploymentHandle, DeploymentRequest
from gatedag.kernel.ports.stage_action import StageAction, StageCallable, StageContext
from gatedag.kernel.ports.tag_store import TagStore

__all__ = [
    "Deployer",
    "DeploymentHandle",
    "DeploymentRequest",
    "StageAction",
    "StageCallable",
    "StageContext",
    "TagStore",
]
