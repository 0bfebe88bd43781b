"""Request parameter discovery for route files."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Dict, List, Set, Tuple

from .ast_utils import callee_name, first_argument_literal, property_access_chain, walk


OBJECT_ID_RE = re.compile(r"[A-Za-z]+Id$")


@dataclass(frozen=True, slots=True)
class Parameter:
    name: str
    source: str
    contains_object_id: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "source": self.source,
            "containsObjectId": self.contains_object_id,
        }


def _looks_like_object_id(part: str) -> bool:
    return part == "id" or bool(OBJECT_ID_RE.search(part))


def _cookie_parameter(node, source: bytes) -> str | None:
    name = callee_name(node, source)
    if not name.endswith(".get") or "cookies" not in name:
        return None
    return first_argument_literal(node, source) or None


def extract_parameters(tree, source: bytes) -> List[Parameter]:
    """Body, query, params and cookie inputs a route file reads."""

    parameters: List[Parameter] = []
    seen: Set[Tuple[str, str]] = set()

    def add(name: str, origin: str, object_id: bool) -> None:
        if (origin, name) in seen:
            return
        seen.add((origin, name))
        parameters.append(Parameter(name=name, source=origin, contains_object_id=object_id))

    for node in walk(tree.root_node):
        if node.type == "call_expression":
            cookie = _cookie_parameter(node, source)
            if cookie:
                add(cookie, "cookie", _looks_like_object_id(cookie))
            continue
        if node.type != "member_expression":
            continue
        props = property_access_chain(node, source)
        has_id = any(_looks_like_object_id(part) for part in props)
        if "body" in props:
            index = props.index("body")
            if index + 1 < len(props):
                add(props[index + 1], "body", has_id)
        if "query" in props:
            add("query", "query", has_id)
        if "params" in props:
            add("params", "params", True)
    return parameters
