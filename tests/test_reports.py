from __future__ import annotations

import json
import unittest

from routeprobe.reporters import render_analysis_human, render_human, render_json, render_sarif


REPORT = {
    "timestamp": "2026-01-01T00:00:00+00:00",
    "summary": {
        "totalRoutes": 3,
        "totalVulnerabilities": 2,
        "confirmedVulnerabilities": 1,
        "unconfirmedVulnerabilities": 1,
        "criticalCount": 1,
        "highCount": 0,
        "mediumCount": 1,
        "lowCount": 0,
    },
    "findings": [
        {
            "id": 2,
            "route": "/api/tasks",
            "method": "POST",
            "vulnerability": "Missing Authentication",
            "severity": "critical",
            "confirmed": True,
            "description": "POST handler performs database writes without authentication checks",
            "fix": "Add authentication check to verify user identity before processing requests.",
        },
        {
            "id": 1,
            "route": "/api/files",
            "method": "PUT",
            "vulnerability": "Insecure File Operation",
            "severity": "medium",
            "confirmed": False,
            "description": "PUT handler performs file writes without authentication",
            "fix": "Make sure the file operation is protected.",
        },
    ],
}


class RendererTests(unittest.TestCase):
    def test_json_round_trips(self) -> None:
        self.assertEqual(json.loads(render_json(REPORT)), REPORT)

    def test_human_layout(self) -> None:
        text = render_human(REPORT)
        lines = text.splitlines()
        self.assertEqual(lines[0], "SECURITY ASSESSMENT REPORT:")
        self.assertIn("Routes Analyzed: 3", lines)
        self.assertIn("Critical: 1", lines)
        self.assertIn("Medium: 1", lines)
        self.assertNotIn("High: 0", lines)
        self.assertIn("[CRITICAL] #2: Missing Authentication", lines)
        self.assertIn("Status: CONFIRMED", lines)
        self.assertIn("Status: UNCONFIRMED", lines)

    def test_human_groups_findings_by_severity(self) -> None:
        lines = render_human(REPORT).splitlines()
        self.assertNotIn("HIGH SEVERITY:", lines)
        critical = lines.index("CRITICAL SEVERITY:")
        medium = lines.index("MEDIUM SEVERITY:")
        self.assertLess(critical, lines.index("[CRITICAL] #2: Missing Authentication"))
        self.assertLess(lines.index("[CRITICAL] #2: Missing Authentication"), medium)
        self.assertLess(medium, lines.index("[MEDIUM] #1: Insecure File Operation"))

    def test_analysis_summary_layout(self) -> None:
        analysis = {
            "totalRoutes": 2,
            "routesWithSinks": 3,
            "routesWithoutAuth": 2,
            "vulnerableRoutes": [
                {
                    "route": "/api/files",
                    "methods": ["PUT"],
                    "vulnerability": "Insecure File Operation",
                    "severity": "medium",
                    "description": "PUT handler performs file writes without authentication",
                },
                {
                    "route": "/api/tasks",
                    "methods": ["POST"],
                    "vulnerability": "Missing Authentication",
                    "severity": "high",
                    "description": "POST handler performs database writes without authentication checks",
                },
            ],
        }
        lines = render_analysis_human(analysis).splitlines()
        self.assertEqual(lines[0], "SECURITY ANALYSIS REPORT:")
        self.assertIn("Total Route Files: 2", lines)
        self.assertIn("HTTP Methods with Sinks: 3", lines)
        self.assertIn("HTTP Methods without Auth: 2", lines)
        self.assertIn("Vulnerable HTTP Methods: 2", lines)
        self.assertLess(lines.index("HIGH SEVERITY:"), lines.index("Route: /api/tasks"))
        self.assertLess(lines.index("Route: /api/tasks"), lines.index("MEDIUM SEVERITY:"))
        self.assertLess(lines.index("MEDIUM SEVERITY:"), lines.index("Route: /api/files"))
        self.assertIn("Methods: PUT", lines)
        self.assertIn("Issue: Insecure File Operation", lines)

    def test_analysis_summary_without_vulnerabilities(self) -> None:
        text = render_analysis_human({"totalRoutes": 1, "vulnerableRoutes": []})
        self.assertIn("Vulnerable HTTP Methods: 0", text)
        self.assertTrue(text.endswith("No vulnerabilities detected."))

    def test_human_without_findings(self) -> None:
        text = render_human({"timestamp": "t", "summary": {"totalRoutes": 1}, "findings": []})
        self.assertTrue(text.endswith("No vulnerabilities found."))

    def test_sarif_entries(self) -> None:
        sarif = json.loads(render_sarif(REPORT))
        run = sarif["runs"][0]
        self.assertEqual(sarif["version"], "2.1.0")
        self.assertEqual(
            [rule["id"] for rule in run["tool"]["driver"]["rules"]],
            ["missing-authentication", "insecure-file-operation"],
        )
        results = run["results"]
        self.assertEqual([result["level"] for result in results], ["error", "warning"])
        location = results[0]["locations"][0]["logicalLocations"][0]["fullyQualifiedName"]
        self.assertEqual(location, "POST /api/tasks")
        self.assertTrue(results[0]["properties"]["confirmed"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
