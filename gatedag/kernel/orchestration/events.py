"""Pipeline lifecycle events emitted by the stage scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from gatedag.kernel.domain.run import RunStatus
from gatedag.kernel.domain.stage import StageState


@dataclass
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event."""
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


@dataclass(slots=True)
class PipelineStarted(Event):
    """A run has started."""

    run_id: str
    name: str
    total_stages: int
    total_waves: int

    def log_message(self) -> str:
        return (
            f"Pipeline '{self.name}' run {self.run_id} started "
            f"({self.total_stages} stages, {self.total_waves} waves)"
        )


@dataclass(slots=True)
class StageStarted(Event):
    """A stage's action has been launched."""

    run_id: str
    stage: str
    dependencies: tuple[str, ...] = ()

    def log_message(self) -> str:
        deps = f" (after: {', '.join(self.dependencies)})" if self.dependencies else ""
        return f"Stage '{self.stage}' started{deps}"


@dataclass(slots=True)
class StageCompleted(Event):
    """A stage ran and its gate classified the findings."""

    run_id: str
    stage: str
    state: StageState
    finding_count: int
    duration_ms: float
    reason: str | None = None

    def log_message(self) -> str:
        return (
            f"Stage '{self.stage}' {self.state.value} with {self.finding_count} finding(s) "
            f"in {self.duration_ms / 1000:.2f}s"
        )


@dataclass(slots=True)
class StageSkipped(Event):
    """A stage finished without running (SKIPPED or ABORTED)."""

    run_id: str
    stage: str
    state: StageState
    reason: str

    def log_message(self) -> str:
        return f"Stage '{self.stage}' {self.state.value}: {self.reason}"


@dataclass(slots=True)
class ArtifactPublished(Event):
    """The run's tag was written to the tag store."""

    run_id: str
    tag: str

    def log_message(self) -> str:
        return f"Artifact {self.tag} published for run {self.run_id}"


@dataclass(slots=True)
class PipelineCompleted(Event):
    """A run reached SUCCEEDED or FAILED."""

    run_id: str
    name: str
    status: RunStatus
    duration_ms: float
    soft_failures: tuple[str, ...] = ()
    hard_failures: tuple[str, ...] = ()

    def log_message(self) -> str:
        return f"Pipeline '{self.name}' {self.status.value} in {self.duration_ms / 1000:.2f}s"


@dataclass(slots=True)
class PipelineCancelled(Event):
    """A run was cancelled and ended ABORTED."""

    run_id: str
    name: str
    duration_ms: float
    aborted_stages: tuple[str, ...] = ()

    def log_message(self) -> str:
        return f"Pipeline '{self.name}' cancelled; aborted {len(self.aborted_stages)} stage(s)"
