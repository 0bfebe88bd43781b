"""Report renderers for the CLI output."""

from __future__ import annotations

import json
from typing import Dict, List

from .config import SEVERITY_LEVELS


SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_VERSION = "2.1.0"
TOOL_NAME = "routeprobe"

SEVERITY_TO_SARIF_LEVEL = {
    "critical": "error",
    "high": "error",
    "medium": "warning",
    "low": "note",
}


def render_json(report: Dict[str, object]) -> str:
    return json.dumps(report, indent=2)


def _rule_id(vulnerability: str) -> str:
    return vulnerability.lower().replace(" ", "-")


def render_sarif(report: Dict[str, object]) -> str:
    rules: Dict[str, Dict[str, object]] = {}
    results: List[Dict[str, object]] = []
    for finding in report.get("findings", []):
        rule_id = _rule_id(str(finding.get("vulnerability", "finding")))
        rules.setdefault(
            rule_id,
            {
                "id": rule_id,
                "name": finding.get("vulnerability"),
                "help": {"text": finding.get("fix", "")},
            },
        )
        results.append(
            {
                "ruleId": rule_id,
                "level": SEVERITY_TO_SARIF_LEVEL.get(str(finding.get("severity")), "warning"),
                "message": {"text": finding.get("description", "")},
                "locations": [
                    {
                        "logicalLocations": [
                            {"fullyQualifiedName": f"{finding.get('method')} {finding.get('route')}"}
                        ]
                    }
                ],
                "properties": {
                    "severity": finding.get("severity"),
                    "confirmed": finding.get("confirmed", False),
                },
            }
        )
    sarif = {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {"driver": {"name": TOOL_NAME, "rules": list(rules.values())}},
                "results": results,
            }
        ],
    }
    return json.dumps(sarif, indent=2)


def render_human(report: Dict[str, object]) -> str:
    summary = report.get("summary", {})
    lines = []
    lines.append("SECURITY ASSESSMENT REPORT:")
    lines.append(f"Generated: {report.get('timestamp')}")
    lines.append("")
    lines.append("SUMMARY:")
    lines.append(f"Routes Analyzed: {summary.get('totalRoutes', 0)}")
    lines.append(f"Total Findings: {summary.get('totalVulnerabilities', 0)}")
    lines.append(f"Confirmed: {summary.get('confirmedVulnerabilities', 0)}")
    lines.append(f"Unconfirmed: {summary.get('unconfirmedVulnerabilities', 0)}")
    lines.append("")
    lines.append("BY SEVERITY:")
    for severity in SEVERITY_LEVELS:
        count = summary.get(f"{severity}Count", 0)
        if count:
            lines.append(f"{severity.capitalize()}: {count}")
    findings = report.get("findings", [])
    if not findings:
        lines.append("")
        lines.append("No vulnerabilities found.")
        return "\n".join(lines)
    lines.append("")
    lines.append("FINDINGS:")
    for severity in SEVERITY_LEVELS:
        group = [finding for finding in findings if finding.get("severity") == severity]
        if not group:
            continue
        lines.append("")
        lines.append(f"{severity.upper()} SEVERITY:")
        for finding in group:
            status = "CONFIRMED" if finding.get("confirmed") else "UNCONFIRMED"
            lines.append("")
            lines.append(f"[{severity.upper()}] #{finding.get('id')}: {finding.get('vulnerability')}")
            lines.append(f"Route: {finding.get('route')}")
            lines.append(f"Method: {finding.get('method')}")
            lines.append(f"Status: {status}")
            lines.append(f"Description: {finding.get('description')}")
            lines.append(f"Fix: {finding.get('fix')}")
    return "\n".join(lines)


def render_analysis_human(report: Dict[str, object]) -> str:
    """Static analysis summary, printed before live verification."""

    vulnerable = report.get("vulnerableRoutes", [])
    lines = []
    lines.append("SECURITY ANALYSIS REPORT:")
    lines.append("SUMMARY:")
    lines.append(f"Total Route Files: {report.get('totalRoutes', 0)}")
    lines.append(f"HTTP Methods with Sinks: {report.get('routesWithSinks', 0)}")
    lines.append(f"HTTP Methods without Auth: {report.get('routesWithoutAuth', 0)}")
    lines.append(f"Vulnerable HTTP Methods: {len(vulnerable)}")
    if not vulnerable:
        lines.append("")
        lines.append("No vulnerabilities detected.")
        return "\n".join(lines)
    lines.append("")
    lines.append("VULNERABILITIES FOUND:")
    for severity in SEVERITY_LEVELS:
        group = [vuln for vuln in vulnerable if vuln.get("severity") == severity]
        if not group:
            continue
        lines.append("")
        lines.append(f"{severity.upper()} SEVERITY:")
        for vuln in group:
            lines.append("")
            lines.append(f"Route: {vuln.get('route')}")
            lines.append(f"Methods: {', '.join(vuln.get('methods', []))}")
            lines.append(f"Issue: {vuln.get('vulnerability')}")
            lines.append(f"Description: {vuln.get('description')}")
    return "\n".join(lines)
