"""Per-file route analysis: sinks, protection and auth checks for every HTTP method."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from pathlib import Path
import re
from typing import Dict, Iterable, List, Tuple

from .ast_utils import (
    build_function_map,
    extract_http_methods,
    find_method_handler,
    parse_source,
)
from .auth_patterns import AuthCheck, AuthPatternMatcher
from .call_graph import propagate_calls
from .config import SecurityConfig
from .parameter_extraction import Parameter, extract_parameters
from .reachability import is_sink_protected
from .sink_detection import Sink, detect_sinks


log = logging.getLogger(__name__)

ROUTE_FILE_RE = re.compile(r"/route\.(ts|tsx)$")
PAGES_EXTENSION_RE = re.compile(r"\.(ts|tsx)$")
ROUTER_DIRECTORIES = ("/app/api/", "/pages/api/")


@dataclass(frozen=True, slots=True)
class MethodAnalysis:
    method: str
    sinks: Tuple[Sink, ...]
    has_authentication: bool
    authorization_checks: Tuple[AuthCheck, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "method": self.method,
            "sinks": [sink.to_dict() for sink in self.sinks],
            "hasAuthentication": self.has_authentication,
            "authorizationChecks": [check.to_dict() for check in self.authorization_checks],
        }


@dataclass(frozen=True, slots=True)
class RouteInfo:
    file_path: str
    route_path: str
    methods: Tuple[str, ...]
    sinks: Tuple[Sink, ...]
    has_authentication: bool
    authorization_checks: Tuple[AuthCheck, ...]
    parameters: Tuple[Parameter, ...]
    middleware: Tuple[str, ...]
    method_details: Tuple[MethodAnalysis, ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "filePath": self.file_path,
            "routePath": self.route_path,
            "methods": list(self.methods),
            "sinks": [sink.to_dict() for sink in self.sinks],
            "hasAuthentication": self.has_authentication,
            "authorizationChecks": [check.to_dict() for check in self.authorization_checks],
            "parameters": [param.to_dict() for param in self.parameters],
            "middleware": list(self.middleware),
            "methodDetails": [detail.to_dict() for detail in self.method_details],
        }


def route_path_for(file_path: str | Path) -> str:
    """URL path served by a Next.js route file (``app/api/tasks/route.ts`` → ``/api/tasks``).

    Paths relative to the project root are read from their first segment. Absolute
    paths are anchored on the last ``app/api/`` or ``pages/api/`` directory.
    """

    path = "/" + str(file_path).replace("\\", "/").lstrip("/")
    relative = not Path(file_path).is_absolute()
    search = path.find if relative else path.rfind
    starts: List[int] = []
    for router in ROUTER_DIRECTORIES:
        found = search(router)
        if found != -1:
            starts.append(found + len(router) - len("/api/"))
    if not starts:
        found = search("/api/")
        if found == -1:
            return "/api"
        starts.append(found)
    path = path[min(starts) if relative else max(starts):]
    if ROUTE_FILE_RE.search(path):
        path = ROUTE_FILE_RE.sub("", path)
    else:
        path = PAGES_EXTENSION_RE.sub("", path)
        if path.endswith("/index"):
            path = path[: -len("/index")]
    return path or "/api"


class RouteAnalyzer:
    """Builds a ``RouteInfo`` for one route file at a time."""

    def __init__(self, config: SecurityConfig | None = None) -> None:
        self.config = config or SecurityConfig()
        self.matcher = AuthPatternMatcher.from_config(self.config)

    def analyze_route(
        self,
        file_path: str | Path,
        content: str | bytes,
        route_path: str | None = None,
    ) -> RouteInfo:
        path = Path(file_path)
        source = content.encode("utf-8") if isinstance(content, str) else content
        tree = parse_source(path, source)
        if tree.root_node.has_error:
            log.warning("Syntax errors in %s, results may be incomplete", path)
        function_map = build_function_map(tree, source)
        middleware = self.matcher.detect_middleware(tree.root_node, source)
        methods = extract_http_methods(tree, source)
        details = tuple(
            self._analyze_method(tree, source, method, function_map, middleware)
            for method in methods
        )
        return RouteInfo(
            file_path=str(file_path),
            route_path=route_path or route_path_for(file_path),
            methods=tuple(methods),
            sinks=tuple(detect_sinks(tree.root_node, source, self.config.custom_sinks)),
            has_authentication=(
                self._has_any_authentication(tree, source)
                or self.matcher.has_auth_middleware(middleware)
            ),
            authorization_checks=tuple(self.matcher.extract_auth_checks(tree.root_node, source)),
            parameters=tuple(extract_parameters(tree, source)),
            middleware=tuple(middleware),
            method_details=details,
        )

    def _analyze_method(
        self,
        tree,
        source: bytes,
        method: str,
        function_map: Dict[str, object],
        middleware: List[str],
    ) -> MethodAnalysis:
        handler = find_method_handler(tree, source, method, function_map)
        if handler is None:
            log.warning("Could not find handler for %s method", method)
            return MethodAnalysis(
                method=method,
                sinks=(),
                has_authentication=False,
                authorization_checks=(),
            )

        direct = [
            replace(sink, is_protected=is_sink_protected(handler, sink.line, source, self.matcher))
            for sink in detect_sinks(handler, source, self.config.custom_sinks)
        ]
        propagated = propagate_calls(
            handler,
            method,
            function_map,
            source,
            self.matcher,
            self.config.custom_sinks,
            self.config.call_depth,
        )
        indirect = propagated.sinks

        direct_ok = not direct or all(sink.is_protected for sink in direct)
        indirect_ok = not indirect or all(sink.is_protected for sink in indirect)
        has_auth = (direct_ok and indirect_ok) or self.matcher.has_auth_middleware(middleware)

        checks = self.matcher.extract_auth_checks(handler, source) + propagated.auth_checks
        return MethodAnalysis(
            method=method,
            sinks=tuple(direct + indirect),
            has_authentication=has_auth,
            authorization_checks=tuple(checks),
        )

    def _has_any_authentication(self, tree, source: bytes) -> bool:
        return any(
            self.matcher.has_auth_pattern(node, source)
            for node in tree.root_node.named_children
            if node.type != "comment"
        )


def analyze_routes(
    route_files: Iterable[Path],
    config: SecurityConfig | None = None,
    project_root: Path | None = None,
) -> List[RouteInfo]:
    """Analyze each route file, skipping the ones that cannot be read or parsed."""

    analyzer = RouteAnalyzer(config)
    routes: List[RouteInfo] = []
    for path in route_files:
        shown = path.relative_to(project_root) if project_root and path.is_relative_to(project_root) else path
        try:
            content = path.read_bytes()
            routes.append(analyzer.analyze_route(path, content, route_path_for(shown)))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            log.error("Error analyzing %s: %s", path, exc)
            continue
        log.info("Analyzed: %s", shown)
    log.info("Analyzed %d routes successfully", len(routes))
    return routes
