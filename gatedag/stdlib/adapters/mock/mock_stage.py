"""Scripted stage action for testing purposes."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from gatedag.kernel.domain.findings import Finding

if TYPE_CHECKING:
    from gatedag.kernel.ports.stage_action import StageContext


class MockStageAction:
    """Stage action that returns canned findings.

    Records every context it was called with and when each call started and
    ended, so tests can check ordering and overlap between stages.

    Examples
    --------
    Example usage::

        scan = MockStageAction(findings=[Finding(severity="MEDIUM", description="CVE-1")])
        build = MockStageAction(raises=RuntimeError("docker daemon unreachable"))
    """

    def __init__(
        self,
        findings: list[Finding] | list[dict[str, Any]] | None = None,
        raises: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.findings = [
            f if isinstance(f, Finding) else Finding.model_validate(f) for f in findings or []
        ]
        self.raises = raises
        self.delay_seconds = delay_seconds

        self.calls: list[StageContext] = []
        self.started_at: float | None = None
        self.finished_at: float | None = None

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_context(self) -> StageContext | None:
        return self.calls[-1] if self.calls else None

    async def __call__(self, context: StageContext) -> list[Finding]:
        self.calls.append(context)
        self.started_at = time.perf_counter()
        try:
            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            if self.raises is not None:
                raise self.raises
            return list(self.findings)
        finally:
            self.finished_at = time.perf_counter()
