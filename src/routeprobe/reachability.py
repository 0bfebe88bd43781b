"""Decide whether a sink or a helper call sits behind an auth-flavoured guard."""

from __future__ import annotations

import logging

from .ast_utils import descendants, is_function_boundary, iter_ancestors, node_text, start_line
from .auth_patterns import AuthPatternMatcher


log = logging.getLogger(__name__)

BRANCH_TYPES = {"if_statement", "ternary_expression"}


def _condition(node):
    return node.child_by_field_name("condition")


def _node_at_line(root, line: int):
    for child in descendants(root):
        if start_line(child) == line:
            return child
    return None


def has_early_auth_return(function_node, target_line: int, source: bytes, matcher: AuthPatternMatcher) -> bool:
    """True when ``function_node`` bails out through ``if (!auth...) return`` before ``target_line``."""

    for child in descendants(function_node):
        if child.type != "return_statement" or start_line(child) >= target_line:
            continue
        current = child.parent
        while current is not None and current != function_node:
            if current.type == "if_statement":
                condition = _condition(current)
                if condition is not None and matcher.has_auth_pattern(condition, source):
                    if "!" in node_text(condition, source):
                        return True
            current = current.parent
    return False


def is_guarded(node, source: bytes, matcher: AuthPatternMatcher) -> bool:
    """Walk up from ``node`` to its enclosing function looking for an auth guard."""

    line = start_line(node)
    for ancestor in iter_ancestors(node):
        if ancestor.type in BRANCH_TYPES:
            condition = _condition(ancestor)
            if condition is not None and matcher.has_auth_pattern(condition, source):
                return True
        if is_function_boundary(ancestor):
            return has_early_auth_return(ancestor, line, source, matcher)
    return False


def is_sink_protected(handler, sink_line: int, source: bytes, matcher: AuthPatternMatcher) -> bool:
    sink_node = _node_at_line(handler, sink_line)
    if sink_node is None:
        log.debug("No statement found at line %d, treating sink as unprotected", sink_line)
        return False
    return is_guarded(sink_node, source, matcher)


def is_call_protected(caller, callee: str, source: bytes, matcher: AuthPatternMatcher) -> bool:
    """True when any ``callee(...)`` call site inside ``caller`` is guarded."""

    for child in descendants(caller):
        if child.type != "call_expression":
            continue
        func = child.child_by_field_name("function")
        if func is None or func.type != "identifier" or node_text(func, source) != callee:
            continue
        if is_guarded(child, source, matcher):
            return True
    return False
