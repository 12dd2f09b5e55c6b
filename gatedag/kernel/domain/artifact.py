"""Artifact and its persisted tag record."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """The immutable, uniquely tagged output of a run's build stage."""

    model_config = ConfigDict(frozen=True)

    tag: str
    run_id: str
    stage: str
    created_at: float = Field(default_factory=time.time)


class TagRecord(BaseModel):
    """Row of the tag ledger: ``{run_id, tag, created_at}``."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    tag: str
    created_at: float
