"""Configuration file for pytest containing fixtures and configuration.

This module provides fixtures that can be used across multiple test files:
- devsecops_pipeline: lint->sast, build->scan->push, iac-scan
- mock_tag_store: in-memory tag ledger
- temp_db_path: location for a SQLite tag ledger
"""

from pathlib import Path

import pytest

from gatedag.kernel.domain import GatePolicy, PipelineDefinition, StageDefinition
from gatedag.stdlib.adapters.mock import MockTagStore


def build_devsecops_pipeline() -> PipelineDefinition:
    """The reference pipeline: two gated chains plus an independent IaC scan."""
    scanner_gate = GatePolicy.from_threshold("CRITICAL,HIGH")
    return PipelineDefinition(
        name="devsecops",
        stages=(
            StageDefinition(name="lint"),
            StageDefinition(name="sast", needs=("lint",), gate=scanner_gate),
            StageDefinition(
                name="build",
                produces_artifact=True,
                gate=GatePolicy(severities={"ERROR": "block"}),
            ),
            StageDefinition(name="scan", needs=("build",), gate=scanner_gate),
            StageDefinition(
                name="push",
                needs=("scan",),
                inherit_findings=True,
                gate=GatePolicy(
                    severities={"CRITICAL": "block", "HIGH": "block", "MEDIUM": "warn"},
                    default="ignore",
                ),
            ),
            StageDefinition(name="iac-scan", gate=scanner_gate),
        ),
    )


@pytest.fixture
def devsecops_pipeline() -> PipelineDefinition:
    return build_devsecops_pipeline()


@pytest.fixture
def mock_tag_store() -> MockTagStore:
    return MockTagStore()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Database path in a directory that does not exist yet."""
    return tmp_path / "ledger" / "tags.db"
