"""Sensitive operation (sink) detection over tree-sitter call expressions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .ast_utils import callee_name, descendants, node_text, start_line
from .config import CustomSinkKind


class SinkKind(str, Enum):
    DATABASE_WRITE = "database_write"
    DATABASE_READ = "database_read"
    FILE_WRITE = "file_write"
    SESSION_MODIFY = "session_modify"
    USER_TABLE_READ = "user_table_read"
    RAW_SQL = "raw_sql"


SinkType = Union[SinkKind, CustomSinkKind]

RAW_SQL_PATTERNS = ("$queryRaw", "$executeRaw", "queryRaw", "executeRaw", "raw")
DANGEROUS_SQL_KEYWORDS = ("DELETE", "UPDATE", "INSERT", "DROP", "ALTER", "TRUNCATE")
DB_WRITE_PATTERNS = (
    "create",
    "update",
    "delete",
    "insert",
    "save",
    "remove",
    "upsert",
    "deleteMany",
    "updateMany",
)
DB_READ_PATTERNS = ("findMany", "findUnique", "findFirst", "query")
FILE_WRITE_PATTERNS = (
    "writeFile",
    "writeFileSync",
    "appendFile",
    "unlink",
    "unlinkSync",
    "rmSync",
    "rm",
)
SESSION_MUTATORS = ("set", "update")


@dataclass(frozen=True, slots=True)
class Sink:
    """A call site performing a security-sensitive operation."""

    type: SinkType
    line: int
    call_path: Tuple[str, ...]
    is_protected: bool = False

    @property
    def type_name(self) -> str:
        if isinstance(self.type, CustomSinkKind):
            return self.type.name
        return self.type.value

    @property
    def custom_severity(self) -> Optional[str]:
        if isinstance(self.type, CustomSinkKind):
            return self.type.severity
        return None

    @property
    def location(self) -> str:
        return f"Line {self.line}"

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "type": self.type_name,
            "location": self.location,
            "callPath": list(self.call_path),
            "isProtected": self.is_protected,
        }
        if self.custom_severity is not None:
            data["customSeverity"] = self.custom_severity
        return data


def _mentions_user_table(code: str) -> bool:
    return "user" in code or "User" in code


def _classify_call(callee: str, code: str, custom_sinks: Iterable[CustomSinkKind]) -> List[SinkType]:
    kinds: List[SinkType] = []
    if any(pattern in callee for pattern in RAW_SQL_PATTERNS):
        upper = code.upper()
        if any(keyword in upper for keyword in DANGEROUS_SQL_KEYWORDS):
            kinds.append(SinkKind.RAW_SQL)
        elif "SELECT" in upper and _mentions_user_table(code):
            kinds.append(SinkKind.USER_TABLE_READ)
    if any(pattern in callee for pattern in DB_WRITE_PATTERNS):
        kinds.append(SinkKind.DATABASE_WRITE)
    if any(pattern in callee for pattern in DB_READ_PATTERNS) and _mentions_user_table(code):
        kinds.append(SinkKind.USER_TABLE_READ)
    if any(pattern in callee for pattern in FILE_WRITE_PATTERNS):
        kinds.append(SinkKind.FILE_WRITE)
    if "session" in callee and any(word in callee for word in SESSION_MUTATORS):
        kinds.append(SinkKind.SESSION_MODIFY)
    for custom in custom_sinks:
        if any(pattern in callee for pattern in custom.patterns):
            kinds.append(custom)
    return kinds


def detect_sinks(node, source: bytes, custom_sinks: Iterable[CustomSinkKind] = ()) -> List[Sink]:
    """Collect every sink reached by a call expression below ``node``.

    A single call may land in several categories; each one is reported.
    """

    custom_sinks = tuple(custom_sinks)
    sinks: List[Sink] = []
    for child in descendants(node):
        if child.type != "call_expression":
            continue
        callee = callee_name(child, source)
        if not callee:
            continue
        line = start_line(child)
        for kind in _classify_call(callee, node_text(child, source), custom_sinks):
            sinks.append(Sink(type=kind, line=line, call_path=(callee,)))
    return sinks


def is_sensitive_write(sink: Sink) -> bool:
    """Sinks whose unauthenticated reachability is worth probing with blind requests."""

    if sink.type in (SinkKind.DATABASE_WRITE, SinkKind.SESSION_MODIFY, SinkKind.FILE_WRITE):
        return True
    return sink.custom_severity in ("medium", "high", "critical")


def needs_authorization(sink: Sink) -> bool:
    """Sinks that should only be reachable by privileged sessions."""

    if sink.type is SinkKind.USER_TABLE_READ:
        return True
    return sink.custom_severity in ("high", "critical")
