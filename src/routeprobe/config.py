"""Security configuration loading for the route scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple


log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "security-config.json"
SEVERITY_LEVELS = ("critical", "high", "medium", "low")
SEVERITY_RANK = {name: idx for idx, name in enumerate(SEVERITY_LEVELS)}

DEFAULT_CONFIG: Dict[str, Any] = {
    "customRoles": [],
    "sessionTokens": {},
    "customSinks": [],
    "sessionCookie": "next-auth.session-token",
    "callDepth": 1,
    "fuzzCases": 100,
    "fuzzSeed": None,
    "requestTimeout": None,
}


@dataclass(frozen=True, slots=True)
class CustomSinkKind:
    """Operator-defined sink category matched by callee name patterns."""

    name: str
    patterns: Tuple[str, ...]
    severity: str
    description: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "patterns": list(self.patterns),
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class SessionTokens:
    user: Optional[str] = None
    admin: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        tokens: Dict[str, object] = {}
        if self.user is not None:
            tokens["user"] = self.user
        if self.admin is not None:
            tokens["admin"] = self.admin
        return tokens


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Read-only settings shared by the analyzers and the fuzzer for one run."""

    custom_roles: Tuple[str, ...] = ()
    session_tokens: SessionTokens = field(default_factory=SessionTokens)
    custom_sinks: Tuple[CustomSinkKind, ...] = ()
    session_cookie: str = DEFAULT_CONFIG["sessionCookie"]
    call_depth: int = DEFAULT_CONFIG["callDepth"]
    fuzz_cases: int = DEFAULT_CONFIG["fuzzCases"]
    fuzz_seed: Optional[int] = None
    request_timeout: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customRoles": list(self.custom_roles),
            "sessionTokens": self.session_tokens.to_dict(),
            "customSinks": [sink.to_dict() for sink in self.custom_sinks],
            "sessionCookie": self.session_cookie,
            "callDepth": self.call_depth,
            "fuzzCases": self.fuzz_cases,
            "fuzzSeed": self.fuzz_seed,
            "requestTimeout": self.request_timeout,
        }


def _merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**base}
    for key, value in updates.items():
        if (
            isinstance(value, dict)
            and isinstance(merged.get(key), dict)
        ):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_json_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Configuration in {path} must be a JSON object")
    return data


def _config_sources(project_root: Path, user_config: Path | None) -> Iterable[Path]:
    default_file = project_root / CONFIG_FILE_NAME
    if default_file.exists():
        yield default_file
    if user_config is not None:
        user_file = user_config
        if not user_file.is_absolute():
            user_file = project_root / user_file
        if not user_file.exists():
            raise ValueError(f"Configuration file not found: {user_file}")
        yield user_file


def _severity(value: Any, context: str) -> str:
    severity = str(value).strip().lower()
    if severity not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity {value!r} for {context}")
    return severity


def _custom_sink(entry: Any) -> CustomSinkKind:
    if not isinstance(entry, dict) or not entry.get("name"):
        raise ValueError(f"Custom sink needs a name: {entry!r}")
    name = str(entry["name"])
    patterns = entry.get("patterns") or []
    if isinstance(patterns, str) or not all(isinstance(p, str) and p for p in patterns):
        raise ValueError(f"Custom sink {name!r} patterns must be a list of non-empty strings")
    return CustomSinkKind(
        name=name,
        patterns=tuple(patterns),
        severity=_severity(entry.get("severity", "medium"), f"custom sink {name!r}"),
        description=str(entry.get("description", "")),
    )


def _optional_number(value: Any, cast, key: str):
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {key}: {value!r}") from exc


def config_from_dict(data: Dict[str, Any]) -> SecurityConfig:
    """Validate a merged configuration mapping into a ``SecurityConfig``."""

    tokens = data.get("sessionTokens") or {}
    if not isinstance(tokens, dict):
        raise ValueError("sessionTokens must be an object")
    call_depth = _optional_number(data.get("callDepth"), int, "callDepth")
    fuzz_cases = _optional_number(data.get("fuzzCases"), int, "fuzzCases")
    if call_depth is None or call_depth < 1:
        raise ValueError("callDepth must be a positive integer")
    if fuzz_cases is None or fuzz_cases < 1:
        raise ValueError("fuzzCases must be a positive integer")
    return SecurityConfig(
        custom_roles=tuple(str(role) for role in data.get("customRoles") or []),
        session_tokens=SessionTokens(
            user=tokens.get("user") or None,
            admin=tokens.get("admin") or None,
        ),
        custom_sinks=tuple(_custom_sink(entry) for entry in data.get("customSinks") or []),
        session_cookie=str(data.get("sessionCookie") or DEFAULT_CONFIG["sessionCookie"]),
        call_depth=call_depth,
        fuzz_cases=fuzz_cases,
        fuzz_seed=_optional_number(data.get("fuzzSeed"), int, "fuzzSeed"),
        request_timeout=_optional_number(data.get("requestTimeout"), float, "requestTimeout"),
    )


def load_config(
    project_root: Path,
    config_path: Path | None = None,
    overrides: Dict[str, Any] | None = None,
) -> SecurityConfig:
    """Load configuration from defaults, files, and CLI overrides."""

    root = project_root.expanduser().resolve()
    config_data: Dict[str, Any] = {**DEFAULT_CONFIG}
    for path in _config_sources(root, config_path):
        log.info("Loading security config from %s", path)
        config_data = _merge(config_data, _read_json_file(path))
    if overrides:
        config_data = _merge(config_data, overrides)
    config = config_from_dict(config_data)
    log.debug("Custom roles: %s", ", ".join(config.custom_roles) or "none")
    return config
