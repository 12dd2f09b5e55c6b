"""YAML pipeline builder.

Turns a pipeline YAML document into a validated ``PipelineDefinition``::

    name: devsecops
    stages:
      - name: lint
      - name: sast
        needs: [lint]
        gate: {block: "CRITICAL,HIGH"}
      - name: push
        needs: [scan]
        inherit_findings: true
        gate:
          severities: {CRITICAL: block, HIGH: block, MEDIUM: warn}
          default: ignore

Graph errors (duplicates, unknown ``needs``, cycles) surface here, at load
time, as the ``StageGraphError`` subclasses.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, TypeGuard

import yaml
from pydantic import ValidationError as PydanticValidationError

from gatedag.kernel.domain.findings import Severity
from gatedag.kernel.domain.pipeline import PipelineDefinition
from gatedag.kernel.domain.policy import GateAction, GatePolicy
from gatedag.kernel.exceptions import GateDAGError, ValidationError
from gatedag.kernel.logging import get_logger

logger = get_logger(__name__)

_GATE_LIST_KEYS = ("block", "warn", "ignore")
_GATE_KEYS = frozenset({*_GATE_LIST_KEYS, "severities", "default"})


class YamlPipelineBuilderError(GateDAGError):
    """YAML pipeline building errors."""

    pass


def _is_dict_config(value: Any) -> TypeGuard[dict[str, Any]]:
    """Type guard to verify value is a dictionary."""
    return isinstance(value, dict)


class YamlPipelineBuilder:
    """Builds ``PipelineDefinition`` objects from YAML."""

    def build_from_yaml_file(self, yaml_path: str | Path) -> PipelineDefinition:
        """Build from YAML file.

        Args
        ----
            yaml_path: Path to YAML file

        Raises
        ------
        YamlPipelineBuilderError
            If the document is malformed
        StageGraphError
            If the stage graph is invalid
        """
        path = Path(yaml_path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise YamlPipelineBuilderError(f"Cannot read pipeline file {path}: {e}") from e
        return self.build_from_yaml_string(content, source=str(path))

    def build_from_yaml_string(
        self, yaml_content: str, source: str = "<string>"
    ) -> PipelineDefinition:
        """Build a definition from YAML text."""
        try:
            config = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise YamlPipelineBuilderError(f"Invalid YAML in {source}: {e}") from e

        config = self._validate_config(config, source)
        stages = [self._build_stage(raw, index) for index, raw in enumerate(config["stages"])]

        try:
            definition = PipelineDefinition(name=config["name"], stages=tuple(stages))
        except PydanticValidationError as e:
            raise YamlPipelineBuilderError(f"Invalid pipeline in {source}:\n{e}") from e

        logger.info(
            "Built pipeline '{name}' with {stages} stages in {waves} waves",
            name=definition.name,
            stages=len(definition.graph),
            waves=len(definition.graph.waves()),
        )
        return definition

    # --- Core Logic ---

    @staticmethod
    def _validate_config(config: Any, source: str) -> dict[str, Any]:
        if not _is_dict_config(config):
            raise YamlPipelineBuilderError(
                f"{source}: YAML document must be a dictionary, got {type(config).__name__}"
            )
        if not config.get("name"):
            raise YamlPipelineBuilderError(f"{source}: pipeline must have a 'name'")
        stages = config.get("stages")
        if not isinstance(stages, list) or not stages:
            raise YamlPipelineBuilderError(f"{source}: 'stages' must be a non-empty list")
        unknown = sorted(set(config) - {"name", "stages", "description"})
        if unknown:
            raise YamlPipelineBuilderError(f"{source}: unknown top-level keys {unknown}")
        return config

    def _build_stage(self, raw: Any, index: int) -> dict[str, Any]:
        if not _is_dict_config(raw):
            raise YamlPipelineBuilderError(f"Stage #{index + 1} must be a mapping")
        if not raw.get("name"):
            raise YamlPipelineBuilderError(f"Stage #{index + 1} is missing 'name'")

        stage = dict(raw)
        if "gate" in stage:
            try:
                stage["gate"] = parse_gate(stage["gate"])
            except (ValueError, ValidationError) as e:
                raise YamlPipelineBuilderError(
                    f"Stage '{raw['name']}' has an invalid gate: {e}"
                ) from e
        return stage


def parse_gate(raw: Any) -> GatePolicy:
    """Parse a ``gate`` entry.

    Accepted forms:

    - missing or ``null``: advisory (every finding warns)
    - ``"CRITICAL,HIGH"``: those severities block, the rest warn, ERROR blocks
    - ``{block: ..., warn: ..., ignore: ..., default: warn}``: severity lists per action
    - ``{severities: {CRITICAL: block, ...}, default: ignore}``: explicit mapping

    Examples
    --------
    >>> parse_gate({"block": "CRITICAL"}).action_for(Severity.CRITICAL)
    <GateAction.BLOCK: 'block'>
    """
    if raw is None:
        return GatePolicy.advisory()
    if isinstance(raw, (str, list)):
        return GatePolicy.from_threshold(raw)
    if not _is_dict_config(raw):
        raise ValueError(f"expected a string or mapping, got {type(raw).__name__}")

    unknown = sorted(set(raw) - _GATE_KEYS)
    if unknown:
        raise ValueError(f"unknown gate keys {unknown}")

    severities: dict[Severity, GateAction] = {}
    explicit = raw.get("severities") or {}
    if not _is_dict_config(explicit):
        raise ValueError("'severities' must be a mapping")
    for label, action in explicit.items():
        severities[Severity(str(label).strip().upper())] = GateAction(str(action).strip().lower())
    for key in _GATE_LIST_KEYS:
        if raw.get(key):
            for severity in Severity.parse_list(raw[key]):
                severities[severity] = GateAction(key)

    default = GateAction(str(raw.get("default", GateAction.WARN)).strip().lower())
    # A gate that blocks anything also blocks when the tool itself failed
    blocking = default is GateAction.BLOCK or GateAction.BLOCK in severities.values()
    if blocking:
        severities.setdefault(Severity.ERROR, GateAction.BLOCK)
    return GatePolicy(severities=severities, default=default)


def load_pipeline(source: str | Path) -> PipelineDefinition:
    """Load a pipeline from a YAML file path."""
    return YamlPipelineBuilder().build_from_yaml_file(source)
