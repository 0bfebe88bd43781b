from __future__ import annotations

import json
import random
import unittest
from unittest import mock

import requests

from routeprobe.classification import MISSING_AUTHENTICATION, MISSING_ROLE_CHECK, build_analysis_report
from routeprobe.config import CustomSinkKind, SecurityConfig, SessionTokens
from routeprobe.fuzz_requests import build_url, contains_user_data, generate_fuzz_cases
from routeprobe.fuzzing import FuzzEngine, missing_auth_label, privilege_label
from routeprobe.parameter_extraction import Parameter
from routeprobe.route_analysis import MethodAnalysis, RouteInfo
from routeprobe.sink_detection import Sink, SinkKind


TASK_PARAMETERS = (
    Parameter(name="title", source="body", contains_object_id=False),
    Parameter(name="userId", source="body", contains_object_id=True),
)


def _sink(kind) -> Sink:
    return Sink(type=kind, line=5, call_path=("callee",))


def _detail(method: str, kinds, authenticated: bool) -> MethodAnalysis:
    return MethodAnalysis(
        method=method,
        sinks=tuple(_sink(kind) for kind in kinds),
        has_authentication=authenticated,
        authorization_checks=(),
    )


def _analysis(route_path: str, *details: MethodAnalysis, parameters=TASK_PARAMETERS):
    route = RouteInfo(
        file_path=f"app{route_path}/route.ts",
        route_path=route_path,
        methods=tuple(detail.method for detail in details),
        sinks=(),
        has_authentication=False,
        authorization_checks=(),
        parameters=tuple(parameters),
        middleware=(),
        method_details=details,
    )
    return build_analysis_report([route])


def _response(status: int, body=None) -> mock.Mock:
    response = mock.Mock()
    response.status_code = status
    response.text = json.dumps(body) if body is not None else ""
    response.json.return_value = body
    return response


def _session(response=None, error=None) -> mock.Mock:
    session = mock.Mock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return session


class MissingAuthenticationFuzzTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analysis = _analysis("/api/tasks", _detail("POST", [SinkKind.DATABASE_WRITE], False))
        self.config = SecurityConfig(fuzz_cases=5, fuzz_seed=7)

    def test_success_confirms_and_stops(self) -> None:
        session = _session(_response(201, {"id": "abc"}))
        engine = FuzzEngine("http://localhost:3000/", self.config, session=session)
        report = engine.fuzz_missing_authentication(self.analysis)

        self.assertEqual(session.request.call_count, 1)
        self.assertEqual(report.total_tests, 1)
        self.assertEqual(report.vulnerabilities_confirmed, 1)
        result = report.results[0]
        self.assertTrue(result.exploitable)
        self.assertEqual(result.route, "/api/tasks")
        self.assertEqual(result.method, "POST")
        self.assertEqual(result.vulnerability, MISSING_AUTHENTICATION)
        self.assertEqual(result.request.url, "http://localhost:3000/api/tasks")
        self.assertEqual(result.response.body, {"id": "abc"})

        args, kwargs = session.request.call_args
        self.assertEqual(args, ("POST", "http://localhost:3000/api/tasks"))
        self.assertNotIn("Cookie", kwargs["headers"])
        self.assertEqual(set(kwargs["json"]), {"title", "userId"})
        self.assertIsInstance(kwargs["json"]["userId"], int)
        self.assertIsInstance(kwargs["json"]["title"], str)

    def test_rejections_run_every_case(self) -> None:
        session = _session(_response(401))
        report = FuzzEngine(config=self.config, session=session).fuzz_missing_authentication(self.analysis)
        self.assertEqual(report.total_tests, 5)
        self.assertEqual(report.vulnerabilities_rejected, 5)
        self.assertTrue(all(result.response.body is None for result in report.results))
        self.assertFalse(any(result.exploitable for result in report.results))

    def test_network_errors_are_recorded(self) -> None:
        session = _session(error=requests.ConnectionError("connection refused"))
        config = SecurityConfig(fuzz_cases=2, fuzz_seed=1)
        report = FuzzEngine(config=config, session=session).fuzz_missing_authentication(self.analysis)
        self.assertEqual(report.total_tests, 2)
        for result in report.results:
            self.assertEqual(result.response.status, 0)
            self.assertEqual(result.error, "connection refused")
            self.assertFalse(result.exploitable)
            self.assertEqual(result.to_dict()["error"], "connection refused")

    def test_authenticated_methods_are_skipped(self) -> None:
        analysis = _analysis("/api/tasks", _detail("POST", [SinkKind.DATABASE_WRITE], True))
        session = _session(_response(201, {}))
        report = FuzzEngine(config=self.config, session=session).fuzz_missing_authentication(analysis)
        self.assertEqual(report.total_tests, 0)
        session.request.assert_not_called()

    def test_dynamic_segments_are_filled(self) -> None:
        analysis = _analysis("/api/tasks/[id]", _detail("DELETE", [SinkKind.DATABASE_WRITE], False), parameters=())
        session = _session(_response(200, {"message": "Task deleted"}))
        report = FuzzEngine(config=self.config, session=session).fuzz_missing_authentication(analysis)
        url = report.results[0].request.url
        self.assertRegex(url, r"^http://localhost:3000/api/tasks/\d+$")
        self.assertNotIn("json", session.request.call_args.kwargs)


class PrivilegeEscalationFuzzTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analysis = _analysis("/api/tasks/user", _detail("GET", [SinkKind.USER_TABLE_READ], True))
        self.config = SecurityConfig(session_tokens=SessionTokens(user="user-token"), fuzz_seed=3)

    def test_success_without_sensitive_fields_is_rejected(self) -> None:
        users = [{"id": "user-123", "name": "Regular User", "email": "user@example.com", "role": "user"}]
        session = _session(_response(200, users))
        report = FuzzEngine(config=self.config, session=session).run(self.analysis)

        self.assertEqual(report.total_tests, 1)
        result = report.results[0]
        self.assertFalse(result.exploitable)
        self.assertEqual(result.vulnerability, MISSING_ROLE_CHECK)
        self.assertIn("no sensitive user data", result.description)
        _, kwargs = session.request.call_args
        self.assertEqual(kwargs["headers"]["Cookie"], "next-auth.session-token=user-token")

    def test_sensitive_fields_confirm_escalation(self) -> None:
        users = [{"id": "user-123", "email": "user@example.com", "passwordHash": "x"}]
        session = _session(_response(200, users))
        report = FuzzEngine(config=self.config, session=session).fuzz_privilege_escalation(self.analysis)
        self.assertEqual(report.vulnerabilities_confirmed, 1)
        self.assertTrue(report.results[0].exploitable)

    def test_denied_request_is_rejected(self) -> None:
        session = _session(_response(403, {"error": "Forbidden"}))
        report = FuzzEngine(config=self.config, session=session).fuzz_privilege_escalation(self.analysis)
        self.assertFalse(report.results[0].exploitable)
        self.assertIn("denied", report.results[0].description)

    def test_dynamic_user_route_is_filled(self) -> None:
        analysis = _analysis("/api/users/[id]", _detail("GET", [SinkKind.USER_TABLE_READ], True), parameters=())
        session = _session(_response(200, {"id": 7, "passwordHash": "x"}))
        engine = FuzzEngine("http://x", self.config, session=session)
        report = engine.fuzz_privilege_escalation(analysis)
        url = report.results[0].request.url
        self.assertRegex(url, r"^http://x/api/users/\d+$")
        self.assertEqual(session.request.call_args.args[1], url)
        self.assertTrue(report.results[0].exploitable)

    def test_no_token_skips_probe(self) -> None:
        session = _session(_response(200, []))
        report = FuzzEngine(config=SecurityConfig(), session=session).fuzz_privilege_escalation(self.analysis)
        self.assertEqual(report.total_tests, 0)
        self.assertEqual(report.results, ())
        session.request.assert_not_called()

    def test_custom_cookie_name(self) -> None:
        config = SecurityConfig(session_tokens=SessionTokens(user="abc"), session_cookie="sessionToken")
        session = _session(_response(401))
        FuzzEngine(config=config, session=session).fuzz_privilege_escalation(self.analysis)
        _, kwargs = session.request.call_args
        self.assertEqual(kwargs["headers"]["Cookie"], "sessionToken=abc")


class LabelTests(unittest.TestCase):
    def test_labels_follow_sink_kinds(self) -> None:
        payment = CustomSinkKind(name="payment_charge", patterns=("stripe",), severity="high")
        self.assertEqual(missing_auth_label(_detail("POST", [SinkKind.SESSION_MODIFY], False)), MISSING_AUTHENTICATION)
        self.assertEqual(missing_auth_label(_detail("POST", [SinkKind.FILE_WRITE], False)), "Insecure File Operation")
        self.assertEqual(missing_auth_label(_detail("POST", [payment], False)), "Insecure payment_charge")
        self.assertEqual(privilege_label(_detail("GET", [SinkKind.USER_TABLE_READ], True)), MISSING_ROLE_CHECK)
        self.assertEqual(privilege_label(_detail("POST", [payment], True)), "Missing Authorization for payment_charge")


class FuzzRequestHelperTests(unittest.TestCase):
    def test_contains_user_data(self) -> None:
        self.assertTrue(contains_user_data([{"id": 1}, {"passwordHash": "x"}]))
        self.assertTrue(contains_user_data({"Password": "x"}))
        self.assertTrue(contains_user_data({"emailVerified": True}))
        self.assertFalse(contains_user_data([{"email": "a@example.com"}]))
        self.assertFalse(contains_user_data([]))
        self.assertFalse(contains_user_data("password"))
        self.assertFalse(contains_user_data(None))

    def test_build_url(self) -> None:
        self.assertEqual(build_url("http://host:3000/", "/api/tasks"), "http://host:3000/api/tasks")
        self.assertEqual(build_url("http://host", "/api/tasks/[id]", {"id": "4"}), "http://host/api/tasks/4")
        self.assertEqual(build_url("http://host", "/api/[org]/[id]", {"id": "4"}), "http://host/api/[org]/4")

    def test_generated_cases_are_seeded(self) -> None:
        first = generate_fuzz_cases(TASK_PARAMETERS, 4, random.Random(11), "/api/tasks/[id]")
        second = generate_fuzz_cases(TASK_PARAMETERS, 4, random.Random(11), "/api/tasks/[id]")
        self.assertEqual(first, second)
        self.assertEqual(len(first), 4)
        for case in first:
            self.assertEqual(case.headers, {"Content-Type": "application/json"})
            self.assertTrue(0 <= case.body["userId"] <= 1000)
            self.assertEqual(case.path_params["id"], str(case.body["userId"]))
            self.assertIsInstance(case.body["title"], str)

    def test_cases_without_body_parameters(self) -> None:
        params = (Parameter(name="query", source="query", contains_object_id=False),)
        cases = generate_fuzz_cases(params, 2, random.Random(0))
        self.assertEqual([case.body for case in cases], [None, None])
        self.assertEqual([case.path_params for case in cases], [{}, {}])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
