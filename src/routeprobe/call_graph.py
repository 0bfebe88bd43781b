"""Same-file call-graph propagation of sinks and auth checks."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
import logging
from typing import Dict, List, Tuple

from .ast_utils import extract_direct_calls
from .auth_patterns import AuthCheck, AuthPatternMatcher
from .config import CustomSinkKind
from .reachability import is_call_protected, is_sink_protected
from .sink_detection import Sink, detect_sinks


log = logging.getLogger(__name__)


@dataclass(slots=True)
class PropagationResult:
    sinks: List[Sink] = field(default_factory=list)
    auth_checks: List[AuthCheck] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)


def propagate_calls(
    handler,
    entry_name: str,
    function_map: Dict[str, object],
    source: bytes,
    matcher: AuthPatternMatcher,
    custom_sinks: Tuple[CustomSinkKind, ...] = (),
    max_depth: int = 1,
) -> PropagationResult:
    """Follow bare-identifier calls out of ``handler`` up to ``max_depth`` levels.

    Each callee is visited once. A callee sink is protected when any call site on
    the way down is guarded in its caller, or when the sink is guarded inside the
    callee itself.
    """

    result = PropagationResult()
    visited = {entry_name}
    # (callee, caller node, call path prefix, depth, guarded by an outer call site)
    queue: deque = deque(
        (name, handler, (), 1, False) for name in extract_direct_calls(handler, source)
    )
    while queue:
        name, caller, prefix, depth, guarded = queue.popleft()
        if name in visited:
            continue
        callee = function_map.get(name)
        if callee is None:
            continue
        visited.add(name)
        result.visited.append(name)
        call_guarded = guarded or is_call_protected(caller, name, source, matcher)
        path = prefix + (name,)
        for sink in detect_sinks(callee, source, custom_sinks):
            protected = call_guarded or is_sink_protected(callee, sink.line, source, matcher)
            result.sinks.append(
                replace(sink, call_path=path + sink.call_path, is_protected=protected)
            )
        result.auth_checks.extend(matcher.extract_auth_checks(callee, source))
        if depth < max_depth:
            for nested in extract_direct_calls(callee, source):
                queue.append((nested, callee, path, depth + 1, call_guarded))
    log.debug("Call graph from %s visited: %s", entry_name, ", ".join(result.visited) or "nothing")
    return result
