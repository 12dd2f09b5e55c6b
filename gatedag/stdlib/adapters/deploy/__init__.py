"""Deployer adapters."""

from gatedag.stdlib.adapters.deploy.helm_deployer import HelmDeployer

__all__ = ["HelmDeployer"]
