"""Findings reported by pipeline stages.

A finding is the only thing a stage hands to its gate: scanners report
vulnerabilities, build and push steps report tool failures. Everything is
normalized to a ``(severity, description)`` pair before classification.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(StrEnum):
    """Severity label attached to a finding."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"
    # Stage-local tool failure (crash, bad exit status, unreadable report)
    ERROR = "ERROR"

    @classmethod
    def parse(cls, value: Any) -> Severity:
        """Parse a severity label case-insensitively; unknown labels map to UNKNOWN."""
        if isinstance(value, Severity):
            return value
        label = str(value).strip().upper()
        try:
            return cls(label)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def parse_list(cls, value: str | list[str]) -> list[Severity]:
        """Parse ``"CRITICAL,HIGH"`` or ``["critical", "high"]``.

        Unlike ``parse`` this is strict: thresholds name real severities.
        """
        items = value.split(",") if isinstance(value, str) else list(value)
        labels = [str(item).strip().upper() for item in items if str(item).strip()]
        return [cls(label) for label in labels]


class Finding(BaseModel):
    """One issue reported by a stage's tool."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    description: str = ""
    source: str | None = Field(default=None, description="Tool or rule that reported it")

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @classmethod
    def error(cls, description: str, source: str | None = None) -> Finding:
        """Build the finding that stands in for a failed tool invocation."""
        return cls(severity=Severity.ERROR, description=description, source=source)

    def __str__(self) -> str:
        where = f" [{self.source}]" if self.source else ""
        return f"{self.severity.value}{where}: {self.description}"
