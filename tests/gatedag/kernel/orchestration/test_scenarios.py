"""End-to-end runs of the devsecops pipeline against a SQLite tag ledger.

Each scenario runs the full stage graph, publishes (or refuses to publish)
the artifact tag, and then asks the deployment trigger for the run's
artifact.
"""

import pytest

from gatedag.kernel.domain import RunStatus, StageState, TriggerContext, TriggerKind
from gatedag.kernel.exceptions import NotFoundError, UnknownTagError
from gatedag.kernel.orchestration import DeploymentTrigger, StageScheduler
from gatedag.stdlib.adapters.mock import MockDeployer, MockStageAction
from gatedag.stdlib.adapters.tag_store import SQLiteTagStore

MAIN_PUSH = TriggerContext(kind=TriggerKind.PUSH, branch="main")


def devsecops_actions(**overrides) -> dict[str, MockStageAction]:
    actions = {
        name: MockStageAction(delay_seconds=0.05)
        for name in ("lint", "sast", "build", "scan", "push", "iac-scan")
    }
    actions.update(overrides)
    return actions


class TestDevSecOpsScenarios:
    """The three reference scenarios."""

    @pytest.mark.asyncio
    async def test_warning_scan_publishes_and_deploys(self, devsecops_pipeline, temp_db_path):
        """A MEDIUM scan finding warns; the run succeeds and its tag is deployable."""
        store = SQLiteTagStore(temp_db_path)
        deployer = MockDeployer()
        actions = devsecops_actions(
            scan=MockStageAction(
                findings=[{"severity": "MEDIUM", "description": "CVE-2024-1111 in openssl"}]
            )
        )

        result = await StageScheduler(tag_store=store).run(
            devsecops_pipeline, MAIN_PUSH, actions=actions
        )

        assert result.status is RunStatus.SUCCEEDED
        assert result.state_of("sast") is StageState.PASSED
        assert result.state_of("scan") is StageState.SOFT_FAILED
        assert result.state_of("push") is StageState.SOFT_FAILED
        record = await store.aget(result.run_id)
        assert record.tag == result.artifact.tag

        handle = await DeploymentTrigger(store, deployer).adeploy_run("staging", result.run_id)
        assert handle.tag == result.artifact.tag
        assert deployer.deployed_tags == [("staging", result.artifact.tag)]
        await store.close()

    @pytest.mark.asyncio
    async def test_blocking_scan_never_publishes(self, devsecops_pipeline, temp_db_path):
        """A CRITICAL scan finding blocks push; nothing is recorded or deployable."""
        store = SQLiteTagStore(temp_db_path)
        deployer = MockDeployer()
        actions = devsecops_actions(
            scan=MockStageAction(findings=[{"severity": "CRITICAL", "description": "CVE-2"}])
        )

        result = await StageScheduler(tag_store=store).run(
            devsecops_pipeline, MAIN_PUSH, actions=actions
        )

        assert result.status is RunStatus.FAILED
        assert result.state_of("scan") is StageState.HARD_FAILED
        assert result.state_of("push") is StageState.SKIPPED
        assert actions["push"].call_count == 0
        with pytest.raises(NotFoundError):
            await store.aget(result.run_id)
        assert await store.alist() == []

        trigger = DeploymentTrigger(store, deployer)
        with pytest.raises(UnknownTagError):
            await trigger.adeploy_run("staging", result.run_id)
        # the tag the build computed was never published either
        with pytest.raises(UnknownTagError):
            await trigger.adeploy("staging", f"push.1-{result.run_id}")
        assert deployer.call_count == 0
        await store.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("crashed", "skipped"),
        [("scan", ["push"]), ("sast", []), ("build", ["scan", "push"])],
    )
    async def test_crashed_tool_never_publishes(
        self, devsecops_pipeline, temp_db_path, crashed, skipped
    ):
        """A scanner or build that crashes blocks the run instead of warning."""
        store = SQLiteTagStore(temp_db_path)
        actions = devsecops_actions(**{crashed: MockStageAction(raises=OSError("tool not found"))})

        result = await StageScheduler(tag_store=store).run(
            devsecops_pipeline, MAIN_PUSH, actions=actions
        )

        assert result.status is RunStatus.FAILED
        assert result.state_of(crashed) is StageState.HARD_FAILED
        for name in skipped:
            assert result.state_of(name) is StageState.SKIPPED
        assert await store.alist() == []
        with pytest.raises(UnknownTagError):
            await DeploymentTrigger(store, MockDeployer()).adeploy_run("staging", result.run_id)
        await store.close()

    @pytest.mark.asyncio
    async def test_independent_iac_scan_runs_alongside_build_chain(
        self, devsecops_pipeline, temp_db_path
    ):
        """iac-scan overlaps the build chain and its failure blocks nothing else."""
        store = SQLiteTagStore(temp_db_path)
        actions = devsecops_actions(
            **{
                "iac-scan": MockStageAction(
                    findings=[{"severity": "HIGH", "description": "AVD-KSV-0012"}],
                    delay_seconds=0.2,
                )
            }
        )

        result = await StageScheduler(max_concurrent_stages=4, tag_store=store).run(
            devsecops_pipeline, MAIN_PUSH, actions=actions
        )

        iac = actions["iac-scan"]
        assert iac.started_at < actions["build"].finished_at
        assert actions["build"].started_at < iac.finished_at

        assert result.state_of("iac-scan") is StageState.HARD_FAILED
        for name in ("build", "scan", "push"):
            assert result.state_of(name) is StageState.PASSED
            assert actions[name].call_count == 1
        # the worst outcome across both chains decides the run
        assert result.status is RunStatus.FAILED
        assert result.hard_failures == ["iac-scan"]
        with pytest.raises(NotFoundError):
            await store.aget(result.run_id)
        await store.close()

    @pytest.mark.asyncio
    async def test_two_runs_get_distinct_persisted_tags(self, devsecops_pipeline, temp_db_path):
        store = SQLiteTagStore(temp_db_path)
        scheduler = StageScheduler(tag_store=store)

        first = await scheduler.run(devsecops_pipeline, MAIN_PUSH, actions=devsecops_actions())
        second = await scheduler.run(devsecops_pipeline, MAIN_PUSH, actions=devsecops_actions())

        assert first.artifact.tag != second.artifact.tag
        assert {r.tag for r in await store.alist()} == {first.artifact.tag, second.artifact.tag}
        await store.close()
