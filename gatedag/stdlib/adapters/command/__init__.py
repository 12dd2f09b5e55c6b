"""Shell command stage actions."""

from gatedag.stdlib.adapters.command.command_stage import CommandStage, stage_environment
from gatedag.stdlib.adapters.command.findings_parsers import (
    FindingsParseError,
    parse_findings,
    parse_sarif_report,
    parse_trivy_report,
)

__all__ = [
    "CommandStage",
    "FindingsParseError",
    "parse_findings",
    "parse_sarif_report",
    "parse_trivy_report",
    "stage_environment",
]
