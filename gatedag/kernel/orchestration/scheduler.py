"""Stage graph scheduler.

Runs a validated pipeline definition: independent stages run concurrently,
dependents start only after every predecessor reached a terminal state, and
a hard failure skips everything downstream of it. A successful run publishes
its artifact tag to the tag store exactly once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gatedag.kernel.domain.artifact import Artifact
from gatedag.kernel.domain.run import PipelineResult, PipelineRun, RunStatus, TriggerContext
from gatedag.kernel.domain.stage import StageDefinition, StageExecution, StageState
from gatedag.kernel.exceptions import (
    ArtifactPublishError,
    TaggingError,
    TagStoreError,
    ValidationError,
)
from gatedag.kernel.logging import get_logger, reset_correlation_id, set_correlation_id
from gatedag.kernel.orchestration.events import (
    ArtifactPublished,
    Event,
    PipelineCancelled,
    PipelineCompleted,
    PipelineStarted,
    StageCompleted,
    StageSkipped,
    StageStarted,
)
from gatedag.kernel.orchestration.stage_runner import StageOutcome, StageRunner
from gatedag.kernel.orchestration.tagger import ArtifactTagger
from gatedag.kernel.ports.stage_action import StageCallable, StageContext

if TYPE_CHECKING:
    from gatedag.kernel.config.models import EnvironmentConfig, GateDAGConfig
    from gatedag.kernel.domain.pipeline import PipelineDefinition
    from gatedag.kernel.orchestration.observers import LocalObserverManager
    from gatedag.kernel.ports.tag_store import TagStore

logger = get_logger(__name__)

ActionFactory = Callable[[StageDefinition], StageCallable]


@dataclass(slots=True)
class RunContext:
    """Mutable state of one run.

    Every read-modify-write of ``executions`` and ``artifact`` happens under
    ``lock``. Nothing here outlives the run.
    """

    run: PipelineRun
    definition: PipelineDefinition
    actions: dict[str, StageCallable]
    executions: dict[str, StageExecution]
    semaphore: asyncio.Semaphore
    tagger: ArtifactTagger
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    tasks: dict[asyncio.Task[None], str] = field(default_factory=dict)
    launched: set[str] = field(default_factory=set)
    artifact: Artifact | None = None
    cancelled: bool = False

    @property
    def run_id(self) -> str:
        return self.run.run_id


class StageScheduler:
    """Executes pipeline definitions stage by stage.

    Parameters
    ----------
    max_concurrent_stages : int, default=4
        Upper bound on stages running at the same time within one run
    default_stage_timeout : float | None, default=None
        Timeout for stages that declare none
    tag_store : TagStore | None
        Ledger the artifact tag is published to. Without one, artifacts are
        recorded in the result but never published.
    observer_manager : LocalObserverManager | None
        Receives lifecycle events
    environment : EnvironmentConfig | None
        Target environment; its ``severity_thresholds`` override stage gates
        and it is handed to every stage action

    Examples
    --------
    Example usage::

        scheduler = StageScheduler(tag_store=store, max_concurrent_stages=2)
        result = await scheduler.run(
            definition,
            TriggerContext(kind="push", branch="main"),
            actions={"lint": lint, "build": build},
        )
    """

    def __init__(
        self,
        max_concurrent_stages: int = 4,
        default_stage_timeout: float | None = None,
        tag_store: TagStore | None = None,
        observer_manager: LocalObserverManager | None = None,
        environment: EnvironmentConfig | None = None,
    ) -> None:
        if max_concurrent_stages < 1:
            raise ValidationError("max_concurrent_stages", "must be >= 1", max_concurrent_stages)
        self.max_concurrent_stages = max_concurrent_stages
        self.tag_store = tag_store
        self.observer_manager = observer_manager
        self.environment = environment
        self._runner = StageRunner(default_stage_timeout=default_stage_timeout)

    @classmethod
    def from_config(
        cls,
        config: GateDAGConfig,
        tag_store: TagStore | None = None,
        observer_manager: LocalObserverManager | None = None,
        environment: str | None = None,
    ) -> StageScheduler:
        """Build a scheduler from loaded configuration."""
        return cls(
            max_concurrent_stages=config.scheduler.max_concurrent_stages,
            default_stage_timeout=config.scheduler.default_stage_timeout,
            tag_store=tag_store,
            observer_manager=observer_manager,
            environment=config.environment(environment),
        )

    async def run(
        self,
        definition: PipelineDefinition,
        trigger: TriggerContext,
        actions: Mapping[str, StageCallable] | None = None,
        cancel_event: asyncio.Event | None = None,
        action_factory: ActionFactory | None = None,
    ) -> PipelineResult:
        """Execute one run of *definition*.

        Args
        ----
            definition: Validated pipeline definition
            trigger: Trigger context of this invocation
            actions: Stage name -> action
            cancel_event: Setting it cancels the run
            action_factory: Builds actions for stages missing from *actions*

        Returns
        -------
        PipelineResult
            SUCCEEDED, FAILED or ABORTED with every stage's record

        Raises
        ------
        ValidationError
            If some stage has no action. Raised before anything runs.
        ArtifactPublishError
            If the run succeeded but its tag could not be persisted.
        asyncio.CancelledError
            If the awaiting task is cancelled. Running stages are aborted and
            ``PipelineCancelled`` is emitted first.
        """
        definition = self._apply_environment(definition)
        resolved = self._resolve_actions(definition, actions or {}, action_factory)

        run = PipelineRun.create(definition.name, trigger)
        token = set_correlation_id(run.run_id)
        try:
            ctx = RunContext(
                run=run,
                definition=definition,
                actions=resolved,
                executions={name: StageExecution(run.run_id, name) for name in definition.graph},
                semaphore=asyncio.Semaphore(self.max_concurrent_stages),
                tagger=ArtifactTagger(trigger.kind),
            )
            return await self._execute(ctx, cancel_event)
        finally:
            reset_correlation_id(token)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _execute(self, ctx: RunContext, cancel_event: asyncio.Event | None) -> PipelineResult:
        graph = ctx.definition.graph
        started = time.perf_counter()
        logger.info(
            "Starting pipeline '{name}' run {run_id} ({stages} stages)",
            name=ctx.definition.name,
            run_id=ctx.run_id,
            stages=len(graph),
        )
        await self._notify(
            PipelineStarted(
                run_id=ctx.run_id,
                name=ctx.definition.name,
                total_stages=len(graph),
                total_waves=len(graph.waves()),
            )
        )

        try:
            await self._drive(ctx, cancel_event)
        except asyncio.CancelledError:
            ctx.cancelled = True
            aborted = await self._abort(ctx)
            await self._notify(
                PipelineCancelled(
                    run_id=ctx.run_id,
                    name=ctx.definition.name,
                    duration_ms=(time.perf_counter() - started) * 1000,
                    aborted_stages=tuple(aborted),
                )
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        if ctx.cancelled:
            aborted = await self._abort(ctx)
            logger.warning("Pipeline run {run_id} cancelled", run_id=ctx.run_id)
            await self._notify(
                PipelineCancelled(
                    run_id=ctx.run_id,
                    name=ctx.definition.name,
                    duration_ms=duration_ms,
                    aborted_stages=tuple(aborted),
                )
            )
            return self._result(ctx, RunStatus.ABORTED)

        failed = any(ex.state is StageState.HARD_FAILED for ex in ctx.executions.values())
        result = self._result(ctx, RunStatus.FAILED if failed else RunStatus.SUCCEEDED)

        if result.status is RunStatus.SUCCEEDED and ctx.artifact is not None:
            await self._publish(ctx, result, duration_ms)

        logger.info(
            "Pipeline '{name}' {status} in {seconds:.2f}s ({soft} soft failure(s))",
            name=ctx.definition.name,
            status=result.status.value,
            seconds=duration_ms / 1000,
            soft=len(result.soft_failures),
        )
        await self._notify(
            PipelineCompleted(
                run_id=ctx.run_id,
                name=ctx.definition.name,
                status=result.status,
                duration_ms=duration_ms,
                soft_failures=tuple(result.soft_failures),
                hard_failures=tuple(result.hard_failures),
            )
        )
        return result

    async def _drive(self, ctx: RunContext, cancel_event: asyncio.Event | None) -> None:
        """Launch ready stages until nothing is left to run or the run is cancelled."""
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event else None
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    ctx.cancelled = True
                    return

                async with ctx.lock:
                    skipped = self._propagate_skips(ctx)
                    ready = self._ready_stages(ctx)
                    ctx.launched.update(ready)

                for name in skipped:
                    execution = ctx.executions[name]
                    logger.info(
                        "Skipping stage '{stage}': {reason}", stage=name, reason=execution.reason
                    )
                    await self._notify(
                        StageSkipped(
                            run_id=ctx.run_id,
                            stage=name,
                            state=execution.state,
                            reason=execution.reason or "",
                        )
                    )

                for name in ready:
                    task = asyncio.create_task(self._run_stage(ctx, name), name=f"stage:{name}")
                    ctx.tasks[task] = name

                if not ctx.tasks:
                    return

                waiting: set[asyncio.Task[Any]] = set(ctx.tasks)
                if cancel_waiter is not None:
                    waiting.add(cancel_waiter)
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is cancel_waiter:
                        continue
                    ctx.tasks.pop(task)
                    # Stage failures are outcomes; an exception here is a scheduler bug
                    task.result()

                if cancel_waiter is not None and cancel_waiter in done:
                    ctx.cancelled = True
                    return
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()
            if not ctx.cancelled and ctx.tasks:
                for task in ctx.tasks:
                    task.cancel()
                await asyncio.gather(*ctx.tasks, return_exceptions=True)
                ctx.tasks.clear()

    async def _run_stage(self, ctx: RunContext, name: str) -> None:
        stage = ctx.definition.stage(name)
        execution = ctx.executions[name]

        async with ctx.semaphore:
            async with ctx.lock:
                if ctx.cancelled:
                    return
                execution.start()
                upstream = {
                    dep: tuple(ctx.executions[dep].findings)
                    for dep in ctx.definition.graph.get_dependencies(name)
                }
                artifact_tag = ctx.artifact.tag if ctx.artifact else None

            logger.info("Starting stage '{stage}'", stage=name)
            await self._notify(
                StageStarted(run_id=ctx.run_id, stage=name, dependencies=tuple(sorted(upstream)))
            )

            outcome: StageOutcome | None = None
            if stage.produces_artifact:
                try:
                    artifact_tag = ctx.tagger.tag(ctx.run_id, ctx.run.trigger.build_number)
                except TaggingError as e:
                    logger.error(
                        "Cannot tag artifact of stage '{stage}': {error}", stage=name, error=e
                    )
                    outcome = StageOutcome.hard_failure(name, str(e))

            if outcome is None:
                context = StageContext(
                    run=ctx.run,
                    stage=stage,
                    artifact_tag=artifact_tag,
                    environment=self.environment,
                    upstream_findings=upstream,
                )
                outcome = await self._runner.execute(stage, ctx.actions[name], context)

        if stage.produces_artifact and outcome.errored and outcome.state.unlocks_dependents:
            logger.error(
                "Stage '{stage}' reported a tool error; not recording its artifact", stage=name
            )
            outcome = outcome.escalated("tool error in artifact stage, no artifact recorded")

        async with ctx.lock:
            execution.finish(outcome.state, list(outcome.findings), outcome.reason)
            if stage.produces_artifact and outcome.state.unlocks_dependents and artifact_tag:
                ctx.artifact = Artifact(tag=artifact_tag, run_id=ctx.run_id, stage=name)

        self._log_outcome(name, outcome)
        await self._notify(
            StageCompleted(
                run_id=ctx.run_id,
                stage=name,
                state=outcome.state,
                finding_count=len(outcome.findings),
                duration_ms=execution.duration_ms or 0.0,
                reason=outcome.reason,
            )
        )

    async def _abort(self, ctx: RunContext) -> list[str]:
        """Cancel running stages and mark every unfinished stage ABORTED."""
        for task in ctx.tasks:
            task.cancel()
        if ctx.tasks:
            await asyncio.gather(*ctx.tasks, return_exceptions=True)
            ctx.tasks.clear()

        aborted = []
        async with ctx.lock:
            for name in self._order(ctx):
                execution = ctx.executions[name]
                if not execution.state.is_terminal:
                    execution.finish(StageState.ABORTED, reason="run cancelled")
                    aborted.append(name)
        for name in aborted:
            await self._notify(
                StageSkipped(
                    run_id=ctx.run_id, stage=name, state=StageState.ABORTED, reason="run cancelled"
                )
            )
        return aborted

    async def _publish(self, ctx: RunContext, result: PipelineResult, duration_ms: float) -> None:
        """Persist the artifact tag of a successful run."""
        artifact = ctx.artifact
        if artifact is None:
            return
        if self.tag_store is None:
            logger.warning(
                "No tag store configured; artifact {tag} of run {run_id} is not published",
                tag=artifact.tag,
                run_id=ctx.run_id,
            )
            return

        try:
            await self.tag_store.aput(ctx.run_id, artifact.tag)
        except TagStoreError as e:
            logger.error("Publishing {tag} failed: {error}", tag=artifact.tag, error=e)
            result.status = RunStatus.FAILED
            result.error = str(e)
            await self._notify(
                PipelineCompleted(
                    run_id=ctx.run_id,
                    name=ctx.definition.name,
                    status=result.status,
                    duration_ms=duration_ms,
                    soft_failures=tuple(result.soft_failures),
                    hard_failures=tuple(result.hard_failures),
                )
            )
            raise ArtifactPublishError(ctx.run_id, e, result) from e

        result.published = True
        logger.info("Published artifact {tag}", tag=artifact.tag)
        await self._notify(ArtifactPublished(run_id=ctx.run_id, tag=artifact.tag))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _order(ctx: RunContext) -> list[str]:
        return [name for wave in ctx.definition.graph.waves() for name in wave]

    def _propagate_skips(self, ctx: RunContext) -> list[str]:
        """Skip pending stages behind a hard-failed or skipped predecessor.

        Walks in topological order so one pass covers transitive dependents.
        Caller holds ``ctx.lock``.
        """
        skipped = []
        graph = ctx.definition.graph
        for name in self._order(ctx):
            execution = ctx.executions[name]
            if execution.state is not StageState.PENDING or name in ctx.launched:
                continue
            blockers = sorted(
                dep
                for dep in graph.get_dependencies(name)
                if ctx.executions[dep].state.blocks_dependents
            )
            if blockers:
                detail = ", ".join(f"{dep} {ctx.executions[dep].state.value}" for dep in blockers)
                execution.finish(StageState.SKIPPED, reason=f"upstream {detail}")
                skipped.append(name)
        return skipped

    def _ready_stages(self, ctx: RunContext) -> list[str]:
        """Pending stages whose predecessors all passed or soft-failed. Caller holds the lock."""
        graph = ctx.definition.graph
        return [
            name
            for name in self._order(ctx)
            if ctx.executions[name].state is StageState.PENDING
            and name not in ctx.launched
            and all(
                ctx.executions[dep].state.unlocks_dependents
                for dep in graph.get_dependencies(name)
            )
        ]

    def _apply_environment(self, definition: PipelineDefinition) -> PipelineDefinition:
        if self.environment is None or not self.environment.severity_thresholds:
            return definition
        thresholds = {
            stage: threshold
            for stage, threshold in self.environment.severity_thresholds.items()
            if stage in definition.graph
        }
        ignored = sorted(set(self.environment.severity_thresholds) - set(thresholds))
        if ignored:
            logger.debug(
                "Environment '{env}' thresholds for {stages} do not match any stage",
                env=self.environment.name,
                stages=ignored,
            )
        return definition.with_thresholds(thresholds) if thresholds else definition

    @staticmethod
    def _resolve_actions(
        definition: PipelineDefinition,
        actions: Mapping[str, StageCallable],
        action_factory: ActionFactory | None,
    ) -> dict[str, StageCallable]:
        unknown = sorted(set(actions) - set(definition.graph))
        if unknown:
            raise ValidationError("actions", "names undefined stages", unknown)

        resolved: dict[str, StageCallable] = {}
        missing = []
        for stage in definition.stages:
            if stage.name in actions:
                resolved[stage.name] = actions[stage.name]
            elif action_factory is not None:
                resolved[stage.name] = action_factory(stage)
            else:
                missing.append(stage.name)
        if missing:
            raise ValidationError("actions", "no action for stages", missing)
        return resolved

    def _result(self, ctx: RunContext, status: RunStatus) -> PipelineResult:
        return PipelineResult(
            run=ctx.run,
            status=status,
            stages=dict(ctx.executions),
            artifact=ctx.artifact,
        )

    @staticmethod
    def _log_outcome(name: str, outcome: StageOutcome) -> None:
        reason = outcome.reason
        if outcome.state is StageState.HARD_FAILED:
            logger.error("Stage '{stage}' hard-failed: {reason}", stage=name, reason=reason)
        elif outcome.state is StageState.SOFT_FAILED:
            logger.warning("Stage '{stage}' soft-failed: {reason}", stage=name, reason=reason)
        else:
            logger.info("Stage '{stage}' passed", stage=name)

    async def _notify(self, event: Event) -> None:
        if self.observer_manager is not None:
            await self.observer_manager.anotify(event)
