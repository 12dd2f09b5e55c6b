"""Pipeline definition loading."""

from gatedag.kernel.pipeline_builder.yaml_builder import (
    YamlPipelineBuilder,
    YamlPipelineBuilderError,
    load_pipeline,
    parse_gate,
)

__all__ = ["YamlPipelineBuilder", "YamlPipelineBuilderError", "load_pipeline", "parse_gate"]
