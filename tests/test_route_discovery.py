from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from routeprobe.route_discovery import discover_routes


class RouteDiscoveryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _touch(self, relative: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("export {};\n")
        return path

    def test_finds_app_and_pages_routes(self) -> None:
        tasks = self._touch("app/api/tasks/route.ts")
        task = self._touch("app/api/tasks/[id]/route.ts")
        users = self._touch("pages/api/users/index.tsx")
        self._touch("app/api/tasks/notes.md")
        self._touch("app/page.tsx")
        self._touch("lib/session.ts")
        routes = discover_routes(self.root)
        resolved = [path.resolve() for path in (task, tasks, users)]
        self.assertEqual(routes, sorted(resolved[:2]) + resolved[2:])

    def test_ignores_build_directories(self) -> None:
        self._touch("app/api/node_modules/pkg/route.ts")
        self._touch("app/api/.next/cache/route.ts")
        kept = self._touch("app/api/health/route.ts")
        self.assertEqual(discover_routes(self.root), [kept.resolve()])

    def test_missing_directories(self) -> None:
        self.assertEqual(discover_routes(self.root), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
