"""Shell command stage action.

Runs a stage's ``run`` command in a subprocess and reports findings. For
plain commands a non-zero exit status is the finding; for scanners the
parsed report is, and the exit status is ignored so the gate policy alone
decides.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

from gatedag.kernel.domain.findings import Finding
from gatedag.kernel.exceptions import ValidationError
from gatedag.kernel.logging import get_logger
from gatedag.stdlib.adapters.command.findings_parsers import FindingsParseError, parse_findings

if TYPE_CHECKING:
    from gatedag.kernel.domain.stage import FindingsFormat, StageDefinition
    from gatedag.kernel.ports.stage_action import StageContext

logger = get_logger(__name__)

_TAIL_CHARS = 2000


def stage_environment(context: StageContext) -> dict[str, str]:
    """``GATEDAG_*`` variables describing the run to a command."""
    env = context.environment
    return {
        "GATEDAG_RUN_ID": context.run_id,
        "GATEDAG_STAGE": context.stage.name,
        "GATEDAG_PIPELINE": context.run.pipeline_name,
        "GATEDAG_TRIGGER": context.run.trigger.kind.value,
        "GATEDAG_BRANCH": context.run.trigger.branch or "",
        "GATEDAG_ARTIFACT_TAG": context.artifact_tag or "",
        "GATEDAG_IMAGE": context.image or "",
        "GATEDAG_REGISTRY": (env.registry or "") if env else "",
        "GATEDAG_ENVIRONMENT": env.name if env else "",
        "GATEDAG_STATE_BACKEND": (env.state_backend or "") if env else "",
    }


def _tail(text: str) -> str:
    text = text.strip()
    return text if len(text) <= _TAIL_CHARS else "..." + text[-_TAIL_CHARS:]


class CommandStage:
    """Stage action that runs a shell command.

    Args
    ----
        command: Shell command line
        findings_format: How to read stdout (none, json, trivy, sarif)
        cwd: Working directory, defaults to the current one
        env: Extra environment variables

    Examples
    --------
    Example usage::

        scan = CommandStage("trivy image -q -f json $GATEDAG_IMAGE", findings_format="trivy")
        findings = await scan(context)
    """

    def __init__(
        self,
        command: str,
        findings_format: FindingsFormat = "none",
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        if not command.strip():
            raise ValidationError("run", "command cannot be empty")
        self.command = command
        self.findings_format = findings_format
        self.cwd = Path(cwd) if cwd else None
        self.env = dict(env or {})

    @classmethod
    def for_stage(cls, stage: StageDefinition, cwd: str | Path | None = None) -> CommandStage:
        """Build the action for a stage defined with ``run:``.

        Raises
        ------
        ValidationError
            If the stage has no ``run`` command.
        """
        if not stage.run:
            raise ValidationError(f"stages.{stage.name}.run", "stage has no command to run")
        return cls(stage.run, findings_format=stage.findings_format, cwd=cwd)

    async def __call__(self, context: StageContext) -> list[Finding]:
        env = {**os.environ, **self.env, **stage_environment(context)}
        logger.debug(
            "Running '{command}' for stage '{stage}'",
            command=self.command,
            stage=context.stage.name,
        )

        proc = await asyncio.create_subprocess_shell(
            self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )
        try:
            stdout_b, stderr_b = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        stdout = stdout_b.decode(errors="replace")
        stderr = stderr_b.decode(errors="replace")
        source = context.stage.name

        if self.findings_format == "none":
            if proc.returncode != 0:
                detail = _tail(stderr) or _tail(stdout) or "no output"
                return [Finding.error(f"exit status {proc.returncode}: {detail}", source=source)]
            return []

        try:
            findings = parse_findings(self.findings_format, stdout, source)
        except FindingsParseError as e:
            logger.warning(
                "Stage '{stage}' produced unreadable {fmt} output: {error}",
                stage=source,
                fmt=self.findings_format,
                error=e,
            )
            detail = f"; stderr: {_tail(stderr)}" if stderr.strip() else ""
            return [Finding.error(f"{e} (exit status {proc.returncode}){detail}", source=source)]

        logger.debug(
            "Stage '{stage}' reported {count} finding(s), exit status {rc}",
            stage=source,
            count=len(findings),
            rc=proc.returncode,
        )
        return findings

    def __repr__(self) -> str:
        return f"CommandStage({self.command!r}, findings_format={self.findings_format!r})"
