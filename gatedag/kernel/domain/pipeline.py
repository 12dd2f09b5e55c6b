"""Pipeline definition: the validated set of stages for one pipeline."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from gatedag.kernel.domain.dag import StageGraph
from gatedag.kernel.domain.stage import StageDefinition
from gatedag.kernel.exceptions import ValidationError


class PipelineDefinition(BaseModel):
    """Declarative pipeline: named stages with ``needs`` edges and gates.

    The stage graph is built and checked once, when the definition is
    constructed. Duplicate names, undefined dependencies and cycles raise
    here and never during a run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    stages: tuple[StageDefinition, ...]

    _graph: StageGraph = PrivateAttr()

    def model_post_init(self, context: Any, /) -> None:
        producers = [s.name for s in self.stages if s.produces_artifact]
        if len(producers) > 1:
            raise ValidationError(
                "produces_artifact", "at most one stage may produce the artifact", producers
            )
        self._graph = StageGraph(self.stages)

    @property
    def graph(self) -> StageGraph:
        return self._graph

    @property
    def artifact_stage(self) -> str | None:
        """Name of the stage that builds the artifact, if any."""
        return next((s.name for s in self.stages if s.produces_artifact), None)

    def stage(self, name: str) -> StageDefinition:
        return self._graph.stages[name]

    def with_thresholds(self, thresholds: dict[str, str]) -> PipelineDefinition:
        """Return a copy whose listed stages block on the given severities.

        Used to apply an environment's ``severity_thresholds`` such as
        ``{"scan": "CRITICAL,HIGH"}``. Each threshold is merged into the
        stage's own gate (see ``GatePolicy.with_threshold``).
        """
        unknown = sorted(set(thresholds) - set(self._graph.stages))
        if unknown:
            raise ValidationError("severity_thresholds", "names undefined stages", unknown)
        stages = tuple(
            s.with_gate(s.gate.with_threshold(thresholds[s.name]))
            if s.name in thresholds
            else s
            for s in self.stages
        )
        return PipelineDefinition(name=self.name, stages=stages)
