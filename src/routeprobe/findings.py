"""Merge static findings with fuzz evidence into the final report."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from .classification import (
    INSECURE_FILE_OPERATION,
    MISSING_AUTHENTICATION,
    MISSING_ROLE_CHECK,
    UNSAFE_RAW_SQL,
    AnalysisReport,
)
from .config import SEVERITY_LEVELS, SEVERITY_RANK
from .fuzzing import FuzzReport


ESCALATION = {
    "critical": "critical",
    "high": "critical",
    "medium": "high",
    "low": "medium",
}
FIXES = {
    MISSING_AUTHENTICATION: "Add authentication check to verify user identity before processing requests.",
    MISSING_ROLE_CHECK: (
        "Implement role-based access control and verify user roles before allowing "
        "access to sensitive data or operations."
    ),
    UNSAFE_RAW_SQL: "Make sure the raw SQL is protected by correct authentication and authorization checks.",
    INSECURE_FILE_OPERATION: (
        "Make sure the file operation is protected by correct authentication and authorization checks."
    ),
}
DEFAULT_FIX = "Review the endpoint and implement appropriate security controls."


@dataclass(frozen=True, slots=True)
class Finding:
    id: int
    route: str
    method: str
    vulnerability: str
    severity: str
    confirmed: bool
    description: str
    fix: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "route": self.route,
            "method": self.method,
            "vulnerability": self.vulnerability,
            "severity": self.severity,
            "confirmed": self.confirmed,
            "description": self.description,
            "fix": self.fix,
        }


@dataclass(frozen=True, slots=True)
class FinalReport:
    timestamp: str
    total_routes: int
    findings: Tuple[Finding, ...]

    def count(self, severity: str) -> int:
        return sum(1 for finding in self.findings if finding.severity == severity)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for finding in self.findings if finding.confirmed)

    def to_dict(self) -> Dict[str, object]:
        summary: Dict[str, object] = {
            "totalRoutes": self.total_routes,
            "totalVulnerabilities": len(self.findings),
            "confirmedVulnerabilities": self.confirmed_count,
            "unconfirmedVulnerabilities": len(self.findings) - self.confirmed_count,
        }
        for severity in SEVERITY_LEVELS:
            summary[f"{severity}Count"] = self.count(severity)
        return {
            "timestamp": self.timestamp,
            "summary": summary,
            "findings": [finding.to_dict() for finding in self.findings],
        }


def escalate(severity: str, confirmed: bool) -> str:
    """Raise ``severity`` one step when a live probe confirmed the finding."""

    if not confirmed:
        return severity
    return ESCALATION[severity]


def fix_for(vulnerability: str) -> str:
    return FIXES.get(vulnerability, DEFAULT_FIX)


def aggregate_findings(analysis: AnalysisReport, fuzz: Optional[FuzzReport] = None) -> List[Finding]:
    """Combine static and dynamic evidence, most severe first."""

    results = fuzz.results if fuzz is not None else ()
    confirmed_keys: Set[Tuple[str, str, str]] = {
        (result.route, result.method, result.vulnerability)
        for result in results
        if result.exploitable
    }
    findings: List[Finding] = []
    seen: Set[Tuple[str, str, str]] = set()

    for vuln in analysis.vulnerable_routes:
        for method in vuln.methods:
            key = (vuln.route, method, vuln.vulnerability)
            confirmed = key in confirmed_keys
            seen.add(key)
            findings.append(
                Finding(
                    id=len(findings) + 1,
                    route=vuln.route,
                    method=method,
                    vulnerability=vuln.vulnerability,
                    severity=escalate(vuln.severity, confirmed),
                    confirmed=confirmed,
                    description=(
                        f"{vuln.description}. Exploitation confirmed via fuzzing."
                        if confirmed
                        else vuln.description
                    ),
                    fix=fix_for(vuln.vulnerability),
                )
            )

    for result in results:
        key = (result.route, result.method, result.vulnerability)
        if not result.exploitable or key in seen:
            continue
        seen.add(key)
        findings.append(
            Finding(
                id=len(findings) + 1,
                route=result.route,
                method=result.method,
                vulnerability=result.vulnerability,
                severity="high",
                confirmed=True,
                description=result.description,
                fix=fix_for(result.vulnerability),
            )
        )

    return sorted(findings, key=lambda finding: SEVERITY_RANK[finding.severity])


def build_final_report(analysis: AnalysisReport, fuzz: Optional[FuzzReport] = None) -> FinalReport:
    return FinalReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        total_routes=analysis.total_routes,
        findings=tuple(aggregate_findings(analysis, fuzz)),
    )
