"""Pipeline orchestration: scheduling, gating, tagging and deployment."""

from gatedag.kernel.orchestration.deployment import DeploymentTrigger
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
from gatedag.kernel.orchestration.gate_evaluator import GateDecision, decide, evaluate
from gatedag.kernel.orchestration.observers import LocalObserverManager
from gatedag.kernel.orchestration.scheduler import RunContext, StageScheduler
from gatedag.kernel.orchestration.stage_runner import StageOutcome, StageRunner
from gatedag.kernel.orchestration.tagger import ArtifactTagger, ParsedTag, parse_tag

__all__ = [
    "ArtifactPublished",
    "ArtifactTagger",
    "DeploymentTrigger",
    "Event",
    "GateDecision",
    "LocalObserverManager",
    "ParsedTag",
    "PipelineCancelled",
    "PipelineCompleted",
    "PipelineStarted",
    "RunContext",
    "StageCompleted",
    "StageOutcome",
    "StageRunner",
    "StageScheduler",
    "StageSkipped",
    "StageStarted",
    "decide",
    "evaluate",
    "parse_tag",
]
