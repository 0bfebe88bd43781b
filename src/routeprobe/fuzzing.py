"""Live verification of static findings against a running target."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import random
from typing import Dict, List, Optional, Tuple

import requests

from .classification import (
    INSECURE_FILE_OPERATION,
    MISSING_AUTHENTICATION,
    MISSING_ROLE_CHECK,
    AnalysisReport,
    insecure_custom_sink,
    missing_authorization_for,
)
from .config import SecurityConfig
from .fuzz_requests import (
    JSON_HEADERS,
    OBJECT_ID_RANGE,
    FuzzCase,
    FuzzRequest,
    FuzzResponse,
    build_url,
    contains_user_data,
    dynamic_segments,
    generate_fuzz_cases,
    send_request,
)
from .route_analysis import MethodAnalysis, RouteInfo
from .sink_detection import SinkKind, is_sensitive_write, needs_authorization


log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass(frozen=True, slots=True)
class FuzzResult:
    route: str
    method: str
    vulnerability: str
    request: FuzzRequest
    response: FuzzResponse
    exploitable: bool
    description: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "route": self.route,
            "method": self.method,
            "vulnerability": self.vulnerability,
            "request": self.request.to_dict(),
            "response": self.response.to_dict(),
            "exploitable": self.exploitable,
            "description": self.description,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class FuzzReport:
    timestamp: str
    total_tests: int
    vulnerabilities_confirmed: int
    vulnerabilities_rejected: int
    results: Tuple[FuzzResult, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "totalTests": self.total_tests,
            "vulnerabilitiesConfirmed": self.vulnerabilities_confirmed,
            "vulnerabilitiesRejected": self.vulnerabilities_rejected,
            "results": [result.to_dict() for result in self.results],
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_fuzz_report(results: List[FuzzResult] | Tuple[FuzzResult, ...]) -> FuzzReport:
    confirmed = sum(1 for result in results if result.exploitable)
    return FuzzReport(
        timestamp=_now(),
        total_tests=len(results),
        vulnerabilities_confirmed=confirmed,
        vulnerabilities_rejected=len(results) - confirmed,
        results=tuple(results),
    )


def merge_fuzz_reports(*reports: FuzzReport) -> FuzzReport:
    return FuzzReport(
        timestamp=_now(),
        total_tests=sum(report.total_tests for report in reports),
        vulnerabilities_confirmed=sum(report.vulnerabilities_confirmed for report in reports),
        vulnerabilities_rejected=sum(report.vulnerabilities_rejected for report in reports),
        results=tuple(result for report in reports for result in report.results),
    )


def missing_auth_label(detail: MethodAnalysis) -> str:
    """Name of the static finding a blind unauthenticated probe verifies."""

    kinds = {sink.type for sink in detail.sinks}
    if SinkKind.DATABASE_WRITE in kinds or SinkKind.SESSION_MODIFY in kinds:
        return MISSING_AUTHENTICATION
    if SinkKind.FILE_WRITE in kinds:
        return INSECURE_FILE_OPERATION
    for sink in detail.sinks:
        if sink.custom_severity in ("medium", "high", "critical"):
            return insecure_custom_sink(sink.type_name)
    return MISSING_AUTHENTICATION


def privilege_label(detail: MethodAnalysis) -> str:
    """Name of the static finding a non-admin session probe verifies."""

    if any(sink.type is SinkKind.USER_TABLE_READ for sink in detail.sinks):
        return MISSING_ROLE_CHECK
    for sink in detail.sinks:
        if sink.custom_severity in ("high", "critical"):
            return missing_authorization_for(sink.type_name)
    return MISSING_ROLE_CHECK


class FuzzEngine:
    """Sends crafted requests for statically suspicious methods, one at a time."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        config: SecurityConfig | None = None,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.base_url = base_url
        self.config = config or SecurityConfig()
        self.session = session or requests.Session()
        self.rng = rng or random.Random(self.config.fuzz_seed)

    def fuzz_endpoint(self, route_path: str, method: str, case: FuzzCase) -> Tuple[FuzzRequest, FuzzResponse, Optional[str]]:
        request = FuzzRequest(
            url=build_url(self.base_url, route_path, case.path_params),
            method=method,
            headers=dict(case.headers),
            body=case.body,
        )
        try:
            response = send_request(self.session, request, self.config.request_timeout)
        except requests.RequestException as exc:
            log.warning("Request failed: %s %s: %s", method, request.url, exc)
            return request, FuzzResponse(status=0, body=None), str(exc)
        return request, response, None

    def fuzz_missing_authentication(self, report: AnalysisReport) -> FuzzReport:
        results: List[FuzzResult] = []
        for route, detail in _targets(report, _is_missing_auth_target):
            results.extend(self._probe_unauthenticated(route, detail))
        return build_fuzz_report(results)

    def _probe_unauthenticated(self, route: RouteInfo, detail: MethodAnalysis) -> List[FuzzResult]:
        route_path = route.route_path
        method = detail.method
        label = missing_auth_label(detail)
        log.info("Fuzzing %s %s - Missing Authentication", method, route_path)
        results: List[FuzzResult] = []
        cases = generate_fuzz_cases(route.parameters, self.config.fuzz_cases, self.rng, route_path)
        for case in cases:
            request, response, error = self.fuzz_endpoint(route_path, method, case)
            exploitable = response.succeeded
            if exploitable:
                description = (
                    f"Successfully accessed {method} {route_path} without authentication. "
                    f"Response: {response.status}"
                )
            else:
                description = f"Request to {method} {route_path} was rejected with status {response.status}"
            results.append(
                FuzzResult(
                    route=route_path,
                    method=method,
                    vulnerability=label,
                    request=request,
                    response=response,
                    exploitable=exploitable,
                    description=description,
                    error=error,
                )
            )
            if exploitable:
                log.info("VULN CONFIRMED: %s %s (Status: %s)", method, route_path, response.status)
                break
            log.debug("Protected: %s %s (Status: %s)", method, route_path, response.status)
        return results

    def fuzz_privilege_escalation(self, report: AnalysisReport) -> FuzzReport:
        token = self.config.session_tokens.user
        if not token:
            log.info("No user session token configured. Skipping privilege escalation testing.")
            return build_fuzz_report([])

        results: List[FuzzResult] = []
        for route, detail in _targets(report, _is_privilege_target):
            route_path = route.route_path
            method = detail.method
            log.info("Fuzzing %s %s - Privilege Escalation (non-admin session)", method, route_path)
            case = FuzzCase(
                headers={**JSON_HEADERS, "Cookie": f"{self.config.session_cookie}={token}"},
                body=None,
                path_params=self._guess_path_params(route_path),
            )
            request, response, error = self.fuzz_endpoint(route_path, method, case)
            exposed = contains_user_data(response.body)
            exploitable = response.succeeded and exposed
            if exploitable:
                description = (
                    f"Non-admin user successfully accessed user table at {method} {route_path}. "
                    "Sensitive user data exposed in response."
                )
                log.info("VULN CONFIRMED: non-admin accessed %s %s (Status: %s)", method, route_path, response.status)
            elif not response.succeeded:
                description = (
                    f"Non-admin user was denied access to user table at {method} {route_path}. "
                    f"Status: {response.status}"
                )
            else:
                description = (
                    f"Request succeeded but no sensitive user data found in response at "
                    f"{method} {route_path}. Status: {response.status}"
                )
            results.append(
                FuzzResult(
                    route=route_path,
                    method=method,
                    vulnerability=privilege_label(detail),
                    request=request,
                    response=response,
                    exploitable=exploitable,
                    description=description,
                    error=error,
                )
            )
        return build_fuzz_report(results)

    def _guess_path_params(self, route_path: str) -> Dict[str, str]:
        object_id = str(self.rng.randint(*OBJECT_ID_RANGE))
        return {segment: object_id for segment in dynamic_segments(route_path)}

    def run(self, report: AnalysisReport) -> FuzzReport:
        return merge_fuzz_reports(
            self.fuzz_missing_authentication(report),
            self.fuzz_privilege_escalation(report),
        )


def _is_missing_auth_target(detail: MethodAnalysis) -> bool:
    return (
        not detail.has_authentication
        and bool(detail.sinks)
        and any(is_sensitive_write(sink) for sink in detail.sinks)
    )


def _is_privilege_target(detail: MethodAnalysis) -> bool:
    return any(needs_authorization(sink) for sink in detail.sinks)


def _targets(report: AnalysisReport, predicate):
    for route in report.routes:
        for detail in route.method_details:
            if predicate(detail):
                yield route, detail
