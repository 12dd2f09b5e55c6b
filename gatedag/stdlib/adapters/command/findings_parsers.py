"""Parsers that turn scanner output into findings.

Supported formats:

- ``json``: a list of ``{"severity": ..., "description": ...}`` objects
  (or ``{"findings": [...]}``)
- ``trivy``: Trivy's JSON report (``Results[].Vulnerabilities[]`` and
  ``Results[].Misconfigurations[]``)
- ``sarif``: SARIF 2.1.0, as emitted by Semgrep, CodeQL, Checkov and others
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from gatedag.kernel.domain.findings import Finding, Severity


class FindingsParseError(ValueError):
    """Scanner output could not be read as the declared format."""


FindingsParser = Callable[[str, str], list[Finding]]


def severity_from_level(level: str | None) -> Severity:
    """Map a SARIF result level to a severity."""
    if not level:
        return Severity.MEDIUM
    lvl = str(level).strip().lower()
    if lvl == "error":
        return Severity.HIGH
    if lvl == "warning":
        return Severity.MEDIUM
    if lvl in ("note", "none"):
        return Severity.LOW
    return Severity.MEDIUM


def severity_from_score(score: float) -> Severity:
    """Map a CVSS-style score (0-10) to a severity band."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0:
        return Severity.LOW
    return Severity.UNKNOWN


def _load_json(output: str, fmt: str) -> Any:
    if not output.strip():
        raise FindingsParseError(f"empty {fmt} output")
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise FindingsParseError(f"invalid {fmt} output: {e}") from e


def parse_json_findings(output: str, source: str) -> list[Finding]:
    data = _load_json(output, "json")
    if isinstance(data, dict):
        data = data.get("findings")
    if not isinstance(data, list):
        raise FindingsParseError("json findings must be a list of objects")

    findings = []
    for item in data:
        if not isinstance(item, dict) or "severity" not in item:
            raise FindingsParseError(f"json finding without a severity: {item!r}")
        findings.append(
            Finding(
                severity=item["severity"],
                description=str(item.get("description", "")),
                source=item.get("source") or source,
            )
        )
    return findings


def parse_trivy_report(output: str, source: str) -> list[Finding]:
    report = _load_json(output, "trivy")
    if not isinstance(report, dict):
        raise FindingsParseError("trivy report must be a JSON object")

    findings = []
    for result in report.get("Results") or []:
        target = result.get("Target", "")
        for vuln in result.get("Vulnerabilities") or []:
            package = vuln.get("PkgName", "")
            vuln_id = vuln.get("VulnerabilityID", "?")
            title = vuln.get("Title") or vuln.get("Description") or ""
            findings.append(
                Finding(
                    severity=vuln.get("Severity", "UNKNOWN"),
                    description=f"{vuln_id} in {package} ({target}): {title}",
                    source=source,
                )
            )
        for misconfig in result.get("Misconfigurations") or []:
            if misconfig.get("Status", "FAIL") != "FAIL":
                continue
            check_id = misconfig.get("ID", "?")
            findings.append(
                Finding(
                    severity=misconfig.get("Severity", "UNKNOWN"),
                    description=f"{check_id} ({target}): {misconfig.get('Title', '')}",
                    source=source,
                )
            )
    return findings


def _rules_by_id(run: dict[str, Any]) -> dict[str, dict[str, Any]]:
    rules = ((run.get("tool") or {}).get("driver") or {}).get("rules") or []
    return {r["id"]: r for r in rules if isinstance(r, dict) and isinstance(r.get("id"), str)}


def _sarif_severity(result: dict[str, Any], rule: dict[str, Any] | None) -> Severity:
    for props in (result.get("properties"), (rule or {}).get("properties")):
        if isinstance(props, dict) and "security-severity" in props:
            try:
                return severity_from_score(float(props["security-severity"]))
            except (TypeError, ValueError):
                pass
    level = result.get("level") or ((rule or {}).get("defaultConfiguration") or {}).get("level")
    return severity_from_level(level)


def parse_sarif_report(output: str, source: str) -> list[Finding]:
    log = _load_json(output, "sarif")
    if not isinstance(log, dict) or not isinstance(log.get("runs"), list):
        raise FindingsParseError("sarif log must have a 'runs' list")

    findings = []
    for run in log["runs"]:
        tool = ((run.get("tool") or {}).get("driver") or {}).get("name") or source
        rules = _rules_by_id(run)
        for result in run.get("results") or []:
            rule_id = result.get("ruleId")
            message = (result.get("message") or {}).get("text", "")
            location = ""
            locations = result.get("locations") or []
            if locations:
                physical = locations[0].get("physicalLocation") or {}
                uri = (physical.get("artifactLocation") or {}).get("uri", "")
                line = (physical.get("region") or {}).get("startLine")
                location = f" at {uri}:{line}" if line else f" at {uri}" if uri else ""
            findings.append(
                Finding(
                    severity=_sarif_severity(result, rules.get(rule_id or "")),
                    description=f"{rule_id or 'finding'}{location}: {message}",
                    source=tool,
                )
            )
    return findings


PARSERS: dict[str, FindingsParser] = {
    "json": parse_json_findings,
    "trivy": parse_trivy_report,
    "sarif": parse_sarif_report,
}


def parse_findings(fmt: str, output: str, source: str) -> list[Finding]:
    """Parse *output* as *fmt*.

    Raises
    ------
    FindingsParseError
        If the output does not match the format, or the format is unknown.
    """
    parser = PARSERS.get(fmt)
    if parser is None:
        raise FindingsParseError(f"unknown findings format '{fmt}'")
    try:
        return parser(output, source)
    except (AttributeError, TypeError, KeyError) as e:
        raise FindingsParseError(f"malformed {fmt} report: {e}") from e
