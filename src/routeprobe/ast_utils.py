"""Shared tree-sitter helpers: parsing, node text, traversal and handler lookup."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterator, List

from tree_sitter import Language, Parser, Tree
from tree_sitter_javascript import language as javascript_language
from tree_sitter_typescript import language_tsx, language_typescript


HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
FUNCTION_BOUNDARY_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
}
FUNCTION_VALUE_TYPES = {"function_expression", "function", "arrow_function"}

_JS_LANGUAGE = Language(javascript_language())
_TS_LANGUAGE = Language(language_typescript())
_TSX_LANGUAGE = Language(language_tsx())

JS_PARSER = Parser()
JS_PARSER.language = _JS_LANGUAGE
TS_PARSER = Parser()
TS_PARSER.language = _TS_LANGUAGE
TSX_PARSER = Parser()
TSX_PARSER.language = _TSX_LANGUAGE


def node_text(node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def start_line(node) -> int:
    """1-based line on which ``node`` starts."""

    line, _ = node.start_point
    return line + 1


def walk(node) -> Iterator:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def descendants(node) -> Iterator:
    """Pre-order walk of everything below ``node``, excluding ``node`` itself."""

    iterator = walk(node)
    next(iterator, None)
    yield from iterator


def is_function_boundary(node) -> bool:
    return node.type in FUNCTION_BOUNDARY_TYPES


def iter_ancestors(node, stop: Callable[[object], bool] = is_function_boundary) -> Iterator:
    """Yield the parents of ``node`` bottom-up.

    The walk ends after yielding the first ancestor for which ``stop`` holds, so
    callers see the enclosing boundary but never anything outside it.
    """

    current = node.parent
    while current is not None:
        yield current
        if stop(current):
            return
        current = current.parent


def parser_for_extension(ext: str) -> Parser | None:
    if ext in {".ts", ".mts"}:
        return TS_PARSER
    if ext == ".tsx":
        return TSX_PARSER
    if ext in {".js", ".mjs", ".cjs", ".jsx"}:
        return JS_PARSER
    return None


def parse_source(path: Path, source: bytes) -> Tree:
    """Build a fresh syntax tree for ``source``, picking the grammar from ``path``."""

    parser = parser_for_extension(path.suffix.lower())
    if parser is None:
        raise ValueError(f"Unsupported route file type: {path}")
    return parser.parse(source)


def callee_name(node, source: bytes) -> str:
    """Name of the function invoked by a call expression.

    Identifiers give their own text, member expressions give the whole access
    chain (``db.user.delete``); anything else yields an empty string.
    """

    func = node.child_by_field_name("function")
    if func is None:
        return ""
    if func.type in {"identifier", "member_expression"}:
        return node_text(func, source)
    return ""


def property_access_chain(node, source: bytes) -> List[str]:
    """Property names of a member expression, outermost last (``request.body.userId``)."""

    parts: List[str] = []
    current = node
    while current is not None and current.type == "member_expression":
        prop = current.child_by_field_name("property")
        if prop is not None:
            parts.insert(0, node_text(prop, source))
        obj = current.child_by_field_name("object")
        if obj is not None and obj.type == "identifier":
            parts.insert(0, node_text(obj, source))
            break
        current = obj
    return parts


def first_argument_literal(node, source: bytes) -> str | None:
    args = node.child_by_field_name("arguments")
    if args is None:
        return None
    for child in args.named_children:
        if child.type in {"string", "template_string"}:
            text = node_text(child, source).strip()
            text = text.strip("\"'`")
            return text
    return None


def _top_level_declarations(tree) -> Iterator[tuple[object, bool]]:
    """Yield ``(declaration, exported)`` for each top-level statement."""

    for node in tree.root_node.named_children:
        if node.type == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is not None:
                yield declaration, True
            continue
        yield node, False


def _declarators(declaration) -> Iterator:
    if declaration.type not in {"lexical_declaration", "variable_declaration"}:
        return
    for child in declaration.named_children:
        if child.type == "variable_declarator":
            yield child


def build_function_map(tree, source: bytes) -> Dict[str, object]:
    """Map top-level function names to their function nodes.

    Covers ``function name() {}`` and ``const name = () => {}`` /
    ``const name = function () {}``, exported or not.
    """

    functions: Dict[str, object] = {}
    for declaration, _ in _top_level_declarations(tree):
        if declaration.type in {"function_declaration", "generator_function_declaration"}:
            name_node = declaration.child_by_field_name("name")
            if name_node is not None:
                functions[node_text(name_node, source)] = declaration
            continue
        for declarator in _declarators(declaration):
            name_node = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            if name_node is None or value is None:
                continue
            if value.type in FUNCTION_VALUE_TYPES:
                functions[node_text(name_node, source)] = value
    return functions


def _export_aliases(tree, source: bytes) -> Dict[str, str]:
    """Exported name → local name for ``export { local as GET }`` clauses."""

    aliases: Dict[str, str] = {}
    for node in tree.root_node.named_children:
        if node.type != "export_statement":
            continue
        clause = next((child for child in node.named_children if child.type == "export_clause"), None)
        if clause is None:
            continue
        for spec in clause.named_children:
            if spec.type != "export_specifier":
                continue
            name_node = spec.child_by_field_name("name")
            alias_node = spec.child_by_field_name("alias") or name_node
            if name_node is None or alias_node is None:
                continue
            aliases[node_text(alias_node, source)] = node_text(name_node, source)
    return aliases


def _exported_declarations(tree, source: bytes) -> Dict[str, object]:
    exported: Dict[str, object] = {}
    for declaration, is_exported in _top_level_declarations(tree):
        if not is_exported:
            continue
        if declaration.type in {"function_declaration", "generator_function_declaration"}:
            name_node = declaration.child_by_field_name("name")
            if name_node is not None:
                exported.setdefault(node_text(name_node, source), declaration)
            continue
        for declarator in _declarators(declaration):
            name_node = declarator.child_by_field_name("name")
            if name_node is not None:
                exported.setdefault(node_text(name_node, source), declarator)
    return exported


def extract_http_methods(tree, source: bytes) -> List[str]:
    """Exported HTTP method names, in declaration order, without duplicates."""

    names = list(_exported_declarations(tree, source)) + list(_export_aliases(tree, source))
    methods: List[str] = []
    for name in names:
        if name in HTTP_METHODS and name not in methods:
            methods.append(name)
    return methods


def find_method_handler(tree, source: bytes, method: str, function_map: Dict[str, object] | None = None):
    """Locate the handler bound to the exported ``method`` name, or ``None``."""

    declaration = _exported_declarations(tree, source).get(method)
    if declaration is not None:
        if declaration.type in FUNCTION_BOUNDARY_TYPES:
            return declaration
        value = declaration.child_by_field_name("value")
        if value is not None:
            return value

    for candidate, _ in _top_level_declarations(tree):
        for declarator in _declarators(candidate):
            name_node = declarator.child_by_field_name("name")
            if name_node is None or node_text(name_node, source) != method:
                continue
            value = declarator.child_by_field_name("value")
            if value is not None:
                return value

    local = _export_aliases(tree, source).get(method)
    if local:
        functions = function_map if function_map is not None else build_function_map(tree, source)
        return functions.get(local)
    return None


def extract_direct_calls(node, source: bytes) -> List[str]:
    """Names of bare-identifier calls below ``node`` (``helper()``, not ``obj.helper()``)."""

    calls: List[str] = []
    for child in descendants(node):
        if child.type != "call_expression":
            continue
        func = child.child_by_field_name("function")
        if func is None or func.type != "identifier":
            continue
        name = node_text(func, source)
        if name not in calls:
            calls.append(name)
    return calls
