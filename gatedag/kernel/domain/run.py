"""Pipeline run identity, trigger context and the terminal run result."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gatedag.kernel.domain.artifact import Artifact
from gatedag.kernel.domain.stage import StageExecution, StageState


class TriggerKind(StrEnum):
    """What started the pipeline."""

    MANUAL = "manual"
    PULL_REQUEST = "pull-request"
    PUSH = "push"


class TriggerContext(BaseModel):
    """Invocation parameters of one pipeline run.

    ``run_id`` may be assigned externally (for example a CI run number);
    otherwise a fresh id is generated per run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: TriggerKind
    branch: str | None = None
    run_id: str | None = None
    build_number: int = Field(default=1, ge=1)
    environment: str | None = None

    @model_validator(mode="after")
    def _manual_needs_branch(self) -> Self:
        if self.kind is TriggerKind.MANUAL and not (self.branch and self.branch.strip()):
            raise ValueError("manual triggers require an explicit branch")
        return self


class RunStatus(StrEnum):
    """Lifecycle status of a pipeline run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


class PipelineRun(BaseModel):
    """Identity of one pipeline execution. Created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    trigger: TriggerContext
    created_at: float = Field(default_factory=time.time)

    @classmethod
    def create(cls, pipeline_name: str, trigger: TriggerContext) -> PipelineRun:
        run_id = trigger.run_id if trigger.run_id is not None else uuid.uuid4().hex
        return cls(run_id=run_id, pipeline_name=pipeline_name, trigger=trigger)


@dataclass(slots=True)
class PipelineResult:
    """Outcome of a run: terminal status plus every stage's record."""

    run: PipelineRun
    status: RunStatus
    stages: dict[str, StageExecution]
    artifact: Artifact | None = None
    published: bool = False
    error: str | None = None
    finished_at: float = field(default_factory=time.time)

    @property
    def run_id(self) -> str:
        return self.run.run_id

    def state_of(self, stage: str) -> StageState:
        return self.stages[stage].state

    def stages_in(self, state: StageState) -> list[str]:
        return sorted(name for name, ex in self.stages.items() if ex.state is state)

    @property
    def soft_failures(self) -> list[str]:
        return self.stages_in(StageState.SOFT_FAILED)

    @property
    def hard_failures(self) -> list[str]:
        return self.stages_in(StageState.HARD_FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run.run_id,
            "pipeline": self.run.pipeline_name,
            "trigger": self.run.trigger.kind.value,
            "status": self.status.value,
            "tag": self.artifact.tag if self.artifact else None,
            "published": self.published,
            "error": self.error,
            "stages": {
                name: {
                    "state": ex.state.value,
                    "reason": ex.reason,
                    "findings": [f.model_dump(mode="json") for f in ex.findings],
                }
                for name, ex in self.stages.items()
            },
        }
