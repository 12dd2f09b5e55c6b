"""StageAction port: the work a stage performs.

A stage action runs the actual tool (linter, scanner, image build, push)
and reports what it found. Actions never decide pass/fail themselves; the
gate does that from the returned findings.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from gatedag.kernel.config.models import EnvironmentConfig
    from gatedag.kernel.domain.findings import Finding
    from gatedag.kernel.domain.run import PipelineRun
    from gatedag.kernel.domain.stage import StageDefinition


@dataclass(frozen=True, slots=True)
class StageContext:
    """Everything a stage action may read about the run it belongs to."""

    run: PipelineRun
    stage: StageDefinition
    artifact_tag: str | None = None
    environment: EnvironmentConfig | None = None
    upstream_findings: dict[str, tuple[Finding, ...]] = field(default_factory=dict)

    @property
    def run_id(self) -> str:
        return self.run.run_id

    @property
    def image(self) -> str | None:
        """Fully qualified image reference for the run's artifact, if known."""
        if self.artifact_tag is None or self.environment is None:
            return None
        repository = self.environment.image_repository
        return f"{repository}:{self.artifact_tag}" if repository else None


@runtime_checkable
class StageAction(Protocol):
    """Callable that executes one stage and returns its findings."""

    async def __call__(self, context: StageContext) -> list[Finding]: ...


# Plain functions are accepted too; sync ones run in a worker thread
StageCallable = Callable[[StageContext], "Awaitable[list[Finding]] | list[Finding]"]
