"""gatedag: gated DevSecOps pipelines as stage graphs.

Stages run as a DAG, every stage's findings pass through an explicit gate,
and only runs that clear every gate publish a uniquely tagged artifact that
can later be deployed.
"""

from typing import TYPE_CHECKING, Any

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("gatedag")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

from gatedag.kernel.config import GateDAGConfig, load_config
from gatedag.kernel.domain import (
    Finding,
    GateAction,
    GatePolicy,
    PipelineDefinition,
    PipelineResult,
    RunStatus,
    Severity,
    StageDefinition,
    StageState,
    TriggerContext,
    TriggerKind,
)
from gatedag.kernel.exceptions import GateDAGError
from gatedag.kernel.orchestration import (
    ArtifactTagger,
    DeploymentTrigger,
    LocalObserverManager,
    StageScheduler,
    evaluate,
)
from gatedag.kernel.pipeline_builder import YamlPipelineBuilder, load_pipeline
from gatedag.kernel.ports import StageContext

if TYPE_CHECKING:
    from gatedag.stdlib.adapters.deploy import HelmDeployer
    from gatedag.stdlib.adapters.mock import MockDeployer
    from gatedag.stdlib.adapters.tag_store import SQLiteTagStore

_LAZY_ADAPTERS = {
    "SQLiteTagStore": "gatedag.stdlib.adapters.tag_store",
    "HelmDeployer": "gatedag.stdlib.adapters.deploy",
    "MockDeployer": "gatedag.stdlib.adapters.mock",
}


def __getattr__(name: str) -> Any:
    """Lazy import for adapters.

    Raises
    ------
    AttributeError
        If the attribute does not exist
    """
    if name in _LAZY_ADAPTERS:
        import importlib

        module = importlib.import_module(_LAZY_ADAPTERS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ArtifactTagger",
    "DeploymentTrigger",
    "Finding",
    "GateAction",
    "GateDAGConfig",
    "GateDAGError",
    "GatePolicy",
    "HelmDeployer",
    "LocalObserverManager",
    "MockDeployer",
    "PipelineDefinition",
    "PipelineResult",
    "RunStatus",
    "SQLiteTagStore",
    "Severity",
    "StageContext",
    "StageDefinition",
    "StageScheduler",
    "StageState",
    "TriggerContext",
    "TriggerKind",
    "YamlPipelineBuilder",
    "__version__",
    "evaluate",
    "load_config",
    "load_pipeline",
]
