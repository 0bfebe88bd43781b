"""Static vulnerability rule table over analyzed routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .auth_patterns import OWNERSHIP_CHECK, ROLE_CHECK
from .route_analysis import MethodAnalysis, RouteInfo
from .sink_detection import SinkKind


UNSAFE_RAW_SQL = "Unsafe Raw SQL Execution"
MISSING_AUTHENTICATION = "Missing Authentication"
MISSING_ROLE_CHECK = "Missing Role Check"
INSECURE_FILE_OPERATION = "Insecure File Operation"


def insecure_custom_sink(name: str) -> str:
    return f"Insecure {name}"


def missing_authorization_for(name: str) -> str:
    return f"Missing Authorization for {name}"


@dataclass(frozen=True, slots=True)
class VulnerableRoute:
    route: str
    file_path: str
    methods: Tuple[str, ...]
    vulnerability: str
    severity: str
    description: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "route": self.route,
            "filePath": self.file_path,
            "methods": list(self.methods),
            "vulnerability": self.vulnerability,
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class AnalysisReport:
    total_routes: int
    routes_with_sinks: int
    routes_without_auth: int
    vulnerable_routes: Tuple[VulnerableRoute, ...]
    routes: Tuple[RouteInfo, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalRoutes": self.total_routes,
            "routesWithSinks": self.routes_with_sinks,
            "routesWithoutAuth": self.routes_without_auth,
            "vulnerableRoutes": [vuln.to_dict() for vuln in self.vulnerable_routes],
            "routes": [route.to_dict() for route in self.routes],
        }


def _has_sink(detail: MethodAnalysis, kind: SinkKind) -> bool:
    return any(sink.type == kind for sink in detail.sinks)


def _has_check(detail: MethodAnalysis, kind: str) -> bool:
    return any(check.type == kind for check in detail.authorization_checks)


def classify_method(route: RouteInfo, detail: MethodAnalysis) -> List[VulnerableRoute]:
    """Apply every rule to one method; rules never short-circuit each other."""

    found: List[VulnerableRoute] = []
    method = detail.method

    def emit(name: str, severity: str, description: str) -> None:
        found.append(
            VulnerableRoute(
                route=route.route_path,
                file_path=route.file_path,
                methods=(method,),
                vulnerability=name,
                severity=severity,
                description=description,
            )
        )

    authenticated = detail.has_authentication
    if _has_sink(detail, SinkKind.RAW_SQL) and not authenticated:
        emit(
            UNSAFE_RAW_SQL,
            "high",
            f"{method} handler executes raw SQL with dangerous commands without authentication checks",
        )
    if _has_sink(detail, SinkKind.DATABASE_WRITE) and not authenticated:
        emit(
            MISSING_AUTHENTICATION,
            "high",
            f"{method} handler performs database writes without authentication checks",
        )
    if _has_sink(detail, SinkKind.USER_TABLE_READ) and not _has_check(detail, ROLE_CHECK):
        emit(
            MISSING_ROLE_CHECK,
            "high",
            f"{method} handler reads user table without role-based authorization",
        )
    if _has_sink(detail, SinkKind.FILE_WRITE) and not authenticated:
        emit(
            INSECURE_FILE_OPERATION,
            "medium",
            f"{method} handler performs file writes without authentication",
        )

    custom = [sink for sink in detail.sinks if sink.custom_severity is not None]
    for sink in custom:
        if not authenticated:
            emit(
                insecure_custom_sink(sink.type_name),
                sink.custom_severity,
                f"{method} handler uses {sink.type_name} without authentication checks",
            )
    for sink in custom:
        if (
            authenticated
            and sink.custom_severity in ("high", "critical")
            and not _has_check(detail, OWNERSHIP_CHECK)
            and not _has_check(detail, ROLE_CHECK)
        ):
            emit(
                missing_authorization_for(sink.type_name),
                sink.custom_severity,
                f"{method} handler uses {sink.type_name} with authentication but without "
                "proper authorization checks (role or ownership validation)",
            )
    return found


def classify_routes(routes: Iterable[RouteInfo]) -> List[VulnerableRoute]:
    vulnerable: List[VulnerableRoute] = []
    for route in routes:
        for detail in route.method_details:
            vulnerable.extend(classify_method(route, detail))
    return vulnerable


def build_analysis_report(routes: Iterable[RouteInfo]) -> AnalysisReport:
    routes = tuple(routes)
    with_sinks = 0
    without_auth = 0
    for route in routes:
        for detail in route.method_details:
            if not detail.sinks:
                continue
            with_sinks += 1
            if not detail.has_authentication:
                without_auth += 1
    return AnalysisReport(
        total_routes=len(routes),
        routes_with_sinks=with_sinks,
        routes_without_auth=without_auth,
        vulnerable_routes=tuple(classify_routes(routes)),
        routes=routes,
    )
