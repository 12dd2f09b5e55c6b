"""Gate evaluation: classify a stage's findings under its gate policy.

The evaluator is a pure function. The same findings and policy always give
the same outcome, whatever order the findings arrive in, so gates can be
unit tested without running a scanner.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from gatedag.kernel.domain.findings import Finding
from gatedag.kernel.domain.policy import GateAction, GatePolicy
from gatedag.kernel.domain.stage import StageState

_OUTCOME = {
    GateAction.BLOCK: StageState.HARD_FAILED,
    GateAction.WARN: StageState.SOFT_FAILED,
    GateAction.IGNORE: StageState.PASSED,
}


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Classification plus the findings that decided it."""

    state: StageState
    action: GateAction
    deciding: tuple[Finding, ...] = ()

    def summary(self) -> str:
        if not self.deciding:
            return "no blocking or warning findings"
        counts: dict[str, int] = {}
        for finding in self.deciding:
            counts[finding.severity.value] = counts.get(finding.severity.value, 0) + 1
        detail = ", ".join(f"{n} {sev}" for sev, n in sorted(counts.items()))
        return f"{self.action.value}: {detail}"


def decide(findings: Iterable[Finding], policy: GatePolicy) -> GateDecision:
    """Classify *findings* and keep the findings behind the strongest action."""
    strongest = GateAction.IGNORE
    deciding: list[Finding] = []
    for finding in findings:
        action = policy.action_for(finding.severity)
        if action.rank > strongest.rank:
            strongest = action
            deciding = [finding]
        elif action is strongest and action is not GateAction.IGNORE:
            deciding.append(finding)
    return GateDecision(state=_OUTCOME[strongest], action=strongest, deciding=tuple(deciding))


def evaluate(findings: Iterable[Finding], policy: GatePolicy) -> StageState:
    """Return PASSED, SOFT_FAILED or HARD_FAILED for *findings* under *policy*.

    Any finding mapped to BLOCK gives HARD_FAILED; otherwise any WARN gives
    SOFT_FAILED; otherwise PASSED. An empty list always passes.

    Examples
    --------
    >>> from gatedag.kernel.domain import Finding, GatePolicy
    >>> policy = GatePolicy.from_threshold("CRITICAL,HIGH")
    >>> evaluate([], policy).value
    'passed'
    >>> evaluate([Finding(severity="MEDIUM", description="x")], policy).value
    'soft_failed'
    """
    return decide(findings, policy).state
