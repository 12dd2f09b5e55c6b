"""Stage definitions and their per-run execution records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gatedag.kernel.domain.findings import Finding
from gatedag.kernel.domain.policy import GatePolicy
from gatedag.kernel.exceptions import InvalidTransitionError

FindingsFormat = Literal["none", "json", "trivy", "sarif"]


class StageState(StrEnum):
    """Lifecycle state of one stage within one run."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    SOFT_FAILED = "soft_failed"
    HARD_FAILED = "hard_failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self not in (StageState.PENDING, StageState.RUNNING)

    @property
    def unlocks_dependents(self) -> bool:
        """PASSED and SOFT_FAILED let dependents run; soft failures are advisory."""
        return self in (StageState.PASSED, StageState.SOFT_FAILED)

    @property
    def blocks_dependents(self) -> bool:
        """Dependents of a hard-failed or skipped stage are skipped."""
        return self in (StageState.HARD_FAILED, StageState.SKIPPED)


class StageDefinition(BaseModel):
    """Static description of a stage, loaded with the pipeline definition.

    ``needs`` encodes the DAG. A stage without a ``gate`` gets the advisory
    policy: it can warn but never block.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    needs: tuple[str, ...] = ()
    gate: GatePolicy = Field(default_factory=GatePolicy.advisory)
    timeout: float | None = Field(default=None, gt=0)
    produces_artifact: bool = False
    inherit_findings: bool = Field(
        default=False,
        description="Also evaluate the direct predecessors' findings under this gate",
    )
    run: str | None = Field(default=None, description="Shell command for command stages")
    findings_format: FindingsFormat = "none"

    @field_validator("needs", mode="before")
    @classmethod
    def _normalize_needs(cls, value: object) -> object:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    def with_gate(self, gate: GatePolicy) -> StageDefinition:
        """Return a copy of this definition with *gate* as its policy."""
        return self.model_copy(update={"gate": gate})


@dataclass(slots=True)
class StageExecution:
    """Mutable record of one stage in one run.

    Moves PENDING -> RUNNING -> terminal, or PENDING -> terminal for stages
    that are skipped or aborted before starting. A terminal state is final.
    """

    run_id: str
    stage: str
    state: StageState = StageState.PENDING
    findings: list[Finding] = field(default_factory=list)
    started_at: float | None = None
    finished_at: float | None = None
    reason: str | None = None

    def start(self) -> None:
        if self.state is not StageState.PENDING:
            raise InvalidTransitionError(
                f"Stage '{self.stage}' cannot start from state {self.state.value}"
            )
        self.state = StageState.RUNNING
        self.started_at = time.time()

    def finish(
        self,
        state: StageState,
        findings: list[Finding] | None = None,
        reason: str | None = None,
    ) -> None:
        if not state.is_terminal:
            raise InvalidTransitionError(f"{state.value} is not a terminal state")
        if self.state.is_terminal:
            raise InvalidTransitionError(
                f"Stage '{self.stage}' already finished as {self.state.value}"
            )
        self.state = state
        if findings is not None:
            self.findings = list(findings)
        self.reason = reason
        self.finished_at = time.time()

    @property
    def duration_ms(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at) * 1000
