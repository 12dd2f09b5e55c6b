"""Gate policies: how a stage's findings translate into a pass/fail outcome."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gatedag.kernel.domain.findings import Severity


class GateAction(StrEnum):
    """Action a gate takes for a finding of a given severity."""

    BLOCK = "block"
    WARN = "warn"
    IGNORE = "ignore"

    @property
    def rank(self) -> int:
        """Strength of the action; the strongest action across findings wins."""
        return _ACTION_RANK[self]


_ACTION_RANK = {GateAction.IGNORE: 0, GateAction.WARN: 1, GateAction.BLOCK: 2}


class GatePolicy(BaseModel):
    """Severity to action mapping for one stage.

    A policy with at least one BLOCK mapping (or a BLOCK default) is a gate;
    anything else is advisory and can only ever produce SOFT_FAILED.

    Examples
    --------
    >>> policy = GatePolicy.from_threshold("CRITICAL,HIGH")
    >>> policy.action_for(Severity.HIGH)
    <GateAction.BLOCK: 'block'>
    >>> policy.action_for(Severity.MEDIUM)
    <GateAction.WARN: 'warn'>
    """

    model_config = ConfigDict(frozen=True)

    severities: dict[Severity, GateAction] = Field(default_factory=dict)
    default: GateAction = GateAction.WARN

    @field_validator("severities", mode="before")
    @classmethod
    def _normalize_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                Severity(str(k).strip().upper()): str(v).strip().lower() for k, v in value.items()
            }
        return value

    @field_validator("default", mode="before")
    @classmethod
    def _normalize_default(cls, value: Any) -> Any:
        return str(value).strip().lower() if isinstance(value, str) else value

    @classmethod
    def advisory(cls) -> Self:
        """Policy used when a stage declares none: every finding warns."""
        return cls(severities={}, default=GateAction.WARN)

    @classmethod
    def from_threshold(
        cls,
        threshold: str | list[str],
        below: GateAction = GateAction.WARN,
        on_error: GateAction = GateAction.BLOCK,
    ) -> Self:
        """Block the listed severities, apply *below* to everything else.

        ``from_threshold("CRITICAL,HIGH")`` is the usual scanner gate. ERROR
        findings (a tool that crashed or left no readable report) take
        *on_error* unless the threshold lists ERROR itself.
        """
        blocked = Severity.parse_list(threshold)
        severities = {Severity.ERROR: on_error}
        severities.update(dict.fromkeys(blocked, GateAction.BLOCK))
        return cls(severities=severities, default=below)

    def with_threshold(self, threshold: str | list[str]) -> Self:
        """Return a copy in which exactly the listed finding severities block.

        Unlisted severities keep their own action, downgraded to WARN if it
        was BLOCK. The default and an explicit ERROR mapping are kept;
        without one, ERROR blocks as in ``from_threshold``.
        """
        blocked = set(Severity.parse_list(threshold))
        severities: dict[Severity, GateAction] = {}
        for severity in Severity:
            if severity is Severity.ERROR:
                continue
            current = self.action_for(severity)
            if severity in blocked:
                severities[severity] = GateAction.BLOCK
            else:
                severities[severity] = GateAction.WARN if current is GateAction.BLOCK else current
        severities[Severity.ERROR] = (
            GateAction.BLOCK
            if Severity.ERROR in blocked
            else self.severities.get(Severity.ERROR, GateAction.BLOCK)
        )
        return type(self)(severities=severities, default=self.default)

    def action_for(self, severity: Severity) -> GateAction:
        """Return the action for *severity*, falling back to the default."""
        return self.severities.get(severity, self.default)

    @property
    def is_blocking(self) -> bool:
        """True if some finding can fail the gate hard."""
        return self.default is GateAction.BLOCK or GateAction.BLOCK in self.severities.values()
