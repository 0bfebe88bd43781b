"""Locate Next.js API route files inside a project."""

from __future__ import annotations

from pathlib import Path
from typing import List


ROUTE_DIRECTORIES = ("app/api", "pages/api")
ROUTE_EXTENSIONS = {".ts", ".tsx"}
IGNORED_DIR_NAMES = {"node_modules", "dist", ".next"}


def discover_routes(project_root: Path) -> List[Path]:
    """Return ``.ts``/``.tsx`` files under ``app/api`` and ``pages/api``, app router first."""

    root = project_root.expanduser().resolve()
    routes: List[Path] = []
    for directory in ROUTE_DIRECTORIES:
        base = root / directory
        if not base.is_dir():
            continue
        candidates: List[Path] = []
        for path in base.rglob("*"):
            if not path.is_file() or path.suffix.lower() not in ROUTE_EXTENSIONS:
                continue
            if IGNORED_DIR_NAMES.intersection(path.relative_to(root).parts):
                continue
            candidates.append(path)
        routes.extend(sorted(candidates))
    return routes
