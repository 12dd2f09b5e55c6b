"""Domain models for gated pipelines."""

from gatedag.kernel.domain.artifact import Artifact, TagRecord
from gatedag.kernel.domain.dag import StageGraph
from gatedag.kernel.domain.findings import Finding, Severity
from gatedag.kernel.domain.pipeline import PipelineDefinition
from gatedag.kernel.domain.policy import GateAction, GatePolicy
from gatedag.kernel.domain.run import (
    PipelineResult,
    PipelineRun,
    RunStatus,
    TriggerContext,
    TriggerKind,
)
from gatedag.kernel.domain.stage import StageDefinition, StageExecution, StageState

__all__ = [
    "Artifact",
    "Finding",
    "GateAction",
    "GatePolicy",
    "PipelineDefinition",
    "PipelineResult",
    "PipelineRun",
    "RunStatus",
    "Severity",
    "StageDefinition",
    "StageExecution",
    "StageGraph",
    "StageState",
    "TagRecord",
    "TriggerContext",
    "TriggerKind",
]
