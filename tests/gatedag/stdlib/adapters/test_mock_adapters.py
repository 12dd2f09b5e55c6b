"""Tests for the mock adapters used throughout the test suite."""

import pytest

from gatedag.kernel.exceptions import DuplicateTagError, NotFoundError, TagStoreError
from gatedag.kernel.ports.deployer import DeploymentRequest
from gatedag.stdlib.adapters.mock import MockDeployer, MockStageAction, MockTagStore


class TestMockTagStore:
    """The mock ledger follows the SQLite store's integrity rules."""

    @pytest.mark.asyncio
    async def test_integrity_rules(self):
        store = MockTagStore()
        await store.aput("r1", "push.1-r1")

        with pytest.raises(DuplicateTagError):
            await store.aput("r1", "push.2-r1")
        with pytest.raises(DuplicateTagError):
            await store.aput("r2", "push.1-r1")
        with pytest.raises(NotFoundError):
            await store.aget("r2")

    @pytest.mark.asyncio
    async def test_simulated_outage(self):
        store = MockTagStore()
        store.should_raise = True

        with pytest.raises(TagStoreError):
            await store.aput("r1", "push.1-r1")
        assert store.put_calls == [("r1", "push.1-r1")]
        assert store.records == {}


class TestMockDeployer:
    """Test request recording."""

    @pytest.mark.asyncio
    async def test_records_and_resets(self):
        deployer = MockDeployer()
        req = DeploymentRequest(environment="staging", tag="push.1-r1", run_id="r1")

        first = await deployer.adeploy(req)
        second = await deployer.adeploy(req)

        assert first is second
        assert deployer.deployed_tags == [("staging", "push.1-r1")] * 2
        deployer.reset()
        assert deployer.call_count == 0
        assert deployer.deployed_tags == []


class TestMockStageAction:
    """Test scripted stage behavior."""

    @pytest.mark.asyncio
    async def test_raises_configured_error(self):
        action = MockStageAction(raises=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await action(None)
        assert action.call_count == 1
        assert action.finished_at >= action.started_at
