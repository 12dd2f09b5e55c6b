"""Stage runner: executes one stage action and classifies its findings.

The runner is the stage boundary. Whatever happens inside an action (a
crash, a malformed return value, a timeout) is turned into findings and a
stage state here. Only task cancellation passes through.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from gatedag.kernel.domain.findings import Finding, Severity
from gatedag.kernel.domain.stage import StageDefinition, StageState
from gatedag.kernel.logging import get_logger
from gatedag.kernel.orchestration.gate_evaluator import decide
from gatedag.kernel.ports.stage_action import StageCallable, StageContext

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StageOutcome:
    """Terminal state, recorded findings and reason for one stage run.

    ``errored`` is set when the stage's own action failed (crash, timeout,
    or an ERROR finding it reported), as opposed to inherited findings.
    """

    state: StageState
    findings: tuple[Finding, ...] = ()
    reason: str | None = None
    errored: bool = False

    @classmethod
    def hard_failure(cls, stage: str, description: str) -> StageOutcome:
        """Outcome for failures that block whatever the gate says."""
        return cls(
            state=StageState.HARD_FAILED,
            findings=(Finding.error(description, source=stage),),
            reason=description,
            errored=True,
        )

    def escalated(self, reason: str) -> StageOutcome:
        """Same findings, but HARD_FAILED."""
        return replace(self, state=StageState.HARD_FAILED, reason=reason)


class StageRunner:
    """Runs a stage action under its timeout and applies the stage gate.

    Parameters
    ----------
    default_stage_timeout : float | None, default=None
        Seconds allowed for stages that declare no ``timeout`` of their own.
        None means no limit.

    Examples
    --------
    Example usage::

        runner = StageRunner(default_stage_timeout=600)
        outcome = await runner.execute(stage, action, context)
    """

    def __init__(self, default_stage_timeout: float | None = None) -> None:
        self.default_stage_timeout = default_stage_timeout

    async def execute(
        self, stage: StageDefinition, action: StageCallable, context: StageContext
    ) -> StageOutcome:
        """Run *action* for *stage* and return the gated outcome.

        A timeout yields HARD_FAILED regardless of the stage's gate. Any other
        exception becomes one ERROR finding that the gate then classifies.
        """
        timeout = stage.timeout or self.default_stage_timeout
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                raw = await self._invoke(action, context)
            findings = self._normalize(raw)
        except TimeoutError as e:
            if deadline.expired():
                logger.error(
                    "Stage '{stage}' timed out after {timeout}s", stage=stage.name, timeout=timeout
                )
                return StageOutcome.hard_failure(stage.name, f"timed out after {timeout}s")
            findings = [self._error_finding(stage, e)]
        except Exception as e:
            findings = [self._error_finding(stage, e)]

        evaluated = list(findings)
        if stage.inherit_findings:
            for upstream in sorted(context.upstream_findings):
                evaluated.extend(context.upstream_findings[upstream])

        decision = decide(evaluated, stage.gate)
        reason = None if decision.state is StageState.PASSED else decision.summary()
        return StageOutcome(
            state=decision.state,
            findings=tuple(evaluated),
            reason=reason,
            errored=any(f.severity is Severity.ERROR for f in findings),
        )

    @staticmethod
    def _error_finding(stage: StageDefinition, error: Exception) -> Finding:
        logger.warning(
            "Stage '{stage}' action raised {error_type}: {error}",
            stage=stage.name,
            error_type=type(error).__name__,
            error=error,
        )
        return Finding.error(f"{type(error).__name__}: {error}", source=stage.name)

    @staticmethod
    def _normalize(raw: Any) -> list[Finding]:
        """Accept findings, finding dicts, or None (no findings)."""
        if raw is None:
            return []
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
            raise TypeError(
                f"stage action must return a list of findings, got {type(raw).__name__}"
            )
        findings = []
        for item in raw:
            if isinstance(item, Finding):
                findings.append(item)
                continue
            try:
                findings.append(Finding.model_validate(item))
            except PydanticValidationError as e:
                raise TypeError(f"invalid finding {item!r}") from e
        return findings

    @staticmethod
    async def _invoke(action: StageCallable, context: StageContext) -> Any:
        """Await async actions; run sync ones in the default executor.

        A sync action that outlives its timeout keeps running in its worker
        thread; only the wait for it is cancelled.
        """
        if inspect.iscoroutinefunction(action) or inspect.iscoroutinefunction(
            getattr(action, "__call__", None)
        ):
            return await action(context)

        ctx = contextvars.copy_context()
        result = await asyncio.get_running_loop().run_in_executor(None, ctx.run, action, context)
        if inspect.isawaitable(result):
            return await result
        return result
