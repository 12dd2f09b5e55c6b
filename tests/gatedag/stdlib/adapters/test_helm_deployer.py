"""Tests for the Helm deployer."""

import stat

import pytest

from gatedag.kernel.config import EnvironmentConfig
from gatedag.kernel.exceptions import DeploymentError
from gatedag.kernel.ports.deployer import Deployer, DeploymentRequest
from gatedag.stdlib.adapters.deploy import HelmDeployer

STAGING = EnvironmentConfig(
    name="staging",
    registry="ghcr.io/acme",
    image="app",
    cluster="staging-aks",
    namespace="apps",
    chart="./charts/app",
    credentials_ref="TEST_STAGING_KUBECONFIG",
)


def request(environment: str = "staging", **parameters) -> DeploymentRequest:
    return DeploymentRequest(
        environment=environment, tag="push.7-r42", run_id="r42", parameters=parameters
    )


def fake_helm(tmp_path, body: str):
    script = tmp_path / "helm"
    script.write_text(f"#!/bin/sh\n{body}\n")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


class TestBuildCommand:
    """Test the helm argument vector."""

    def test_full_command(self):
        deployer = HelmDeployer({"staging": STAGING})

        cmd = deployer.build_command(request(**{"replicaCount": 3, "ingress.enabled": "true"}))

        assert isinstance(deployer, Deployer)
        assert cmd == [
            "helm", "upgrade", "--install", "app", "./charts/app",
            "--namespace", "apps",
            "--kube-context", "staging-aks",
            "--set", "image.repository=ghcr.io/acme/app",
            "--set", "image.tag=push.7-r42",
            "--set", "ingress.enabled=true",
            "--set", "replicaCount=3",
        ]  # fmt: skip

    def test_unknown_environment(self):
        with pytest.raises(DeploymentError, match="not configured"):
            HelmDeployer({"staging": STAGING}).build_command(request("production"))

    def test_environment_without_chart(self):
        deployer = HelmDeployer({"dev": EnvironmentConfig(name="dev", image="app")})
        with pytest.raises(DeploymentError, match="chart"):
            deployer.build_command(request("dev"))


class TestAdeploy:
    """Test running helm."""

    @pytest.mark.asyncio
    async def test_successful_deploy(self, tmp_path, monkeypatch):
        args_file = tmp_path / "args.txt"
        helm = fake_helm(tmp_path, f'echo "$KUBECONFIG $@" > {args_file}; echo released')
        monkeypatch.setenv("TEST_STAGING_KUBECONFIG", "/secrets/staging.kubeconfig")
        deployer = HelmDeployer({"staging": STAGING}, helm_binary=str(helm))

        handle = await deployer.adeploy(request())

        recorded = args_file.read_text()
        assert recorded.startswith("/secrets/staging.kubeconfig upgrade --install app")
        assert "image.tag=push.7-r42" in recorded
        assert handle.deployment_id == request().deployment_id
        assert handle.detail == "released"

    @pytest.mark.asyncio
    async def test_missing_credentials(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_STAGING_KUBECONFIG", raising=False)
        deployer = HelmDeployer({"staging": STAGING}, helm_binary=str(fake_helm(tmp_path, "")))

        with pytest.raises(DeploymentError, match="TEST_STAGING_KUBECONFIG"):
            await deployer.adeploy(request())

    @pytest.mark.asyncio
    async def test_helm_failure(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_STAGING_KUBECONFIG", "/secrets/staging.kubeconfig")
        helm = fake_helm(tmp_path, 'echo "Error: chart not found" >&2; exit 1')
        deployer = HelmDeployer({"staging": STAGING}, helm_binary=str(helm))

        with pytest.raises(DeploymentError, match="chart not found"):
            await deployer.adeploy(request())

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_STAGING_KUBECONFIG", "/secrets/staging.kubeconfig")
        deployer = HelmDeployer({"staging": STAGING}, helm_binary=str(tmp_path / "no-helm"))

        with pytest.raises(DeploymentError, match="cannot run helm"):
            await deployer.adeploy(request())

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_STAGING_KUBECONFIG", "/secrets/staging.kubeconfig")
        helm = fake_helm(tmp_path, "sleep 5")
        deployer = HelmDeployer({"staging": STAGING}, helm_binary=str(helm), timeout=0.1)

        with pytest.raises(DeploymentError, match="timed out"):
            await deployer.adeploy(request())
