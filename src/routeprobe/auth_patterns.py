"""Lexical authentication / authorization pattern matching."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .ast_utils import callee_name, descendants, node_text, start_line
from .config import SecurityConfig


AUTH_TOKENS = (
    "session",
    "authenticated",
    "auth()",
    "getserversession",
    "usesession",
    "getsession",
    "nextauth",
    "next-auth",
    "user",
    "token",
)
ROLE_TOKENS = ("role", "admin", "permission")
ROLE_KEYWORDS = ("role", "admin")
COMPARISON_OPERATORS = ("===", "==", "!==", "!=")
MIDDLEWARE_MARKERS = ("middleware", "withAuth", "requireAuth")
AUTH_MIDDLEWARE_MARKERS = ("withauth", "requireauth", "auth")
MAX_CHECK_TEXT = 200
DETAILS_LENGTH = 100

SESSION_CHECK = "session_check"
ROLE_CHECK = "role_check"
OWNERSHIP_CHECK = "ownership_check"


@dataclass(frozen=True, slots=True)
class AuthCheck:
    type: str
    line: int
    details: str

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.type, "location": f"Line {self.line}", "details": self.details}


@dataclass(frozen=True, slots=True)
class AuthVocabulary:
    """Token sets that make a code fragment look auth-related."""

    auth_tokens: Tuple[str, ...] = AUTH_TOKENS
    role_tokens: Tuple[str, ...] = ROLE_TOKENS
    role_keywords: Tuple[str, ...] = ROLE_KEYWORDS
    custom_roles: Tuple[str, ...] = ()

    def with_roles(self, roles: Iterable[str]) -> "AuthVocabulary":
        return AuthVocabulary(
            auth_tokens=self.auth_tokens,
            role_tokens=self.role_tokens,
            role_keywords=self.role_keywords,
            custom_roles=self.custom_roles + tuple(roles),
        )


class AuthPatternMatcher:
    """Answers "does this fragment look like an auth or role check?"."""

    def __init__(self, vocabulary: AuthVocabulary | None = None) -> None:
        self.vocabulary = vocabulary or AuthVocabulary()
        self._lowered_tokens = tuple(
            token.lower()
            for token in (
                *self.vocabulary.auth_tokens,
                *self.vocabulary.role_tokens,
                *self.vocabulary.custom_roles,
            )
        )

    @classmethod
    def from_config(cls, config: SecurityConfig) -> "AuthPatternMatcher":
        return cls(AuthVocabulary().with_roles(config.custom_roles))

    def text_has_auth_pattern(self, text: str) -> bool:
        lowered = text.lower()
        return any(token in lowered for token in self._lowered_tokens)

    def has_auth_pattern(self, node, source: bytes) -> bool:
        return self.text_has_auth_pattern(node_text(node, source))

    def _has_role_word(self, text: str) -> bool:
        words = (*self.vocabulary.role_keywords, *self.vocabulary.custom_roles)
        return any(word in text for word in words)

    def _classify(self, text: str) -> List[str]:
        kinds: List[str] = []
        if "session" in text:
            kinds.append(SESSION_CHECK)
        compares = any(op in text for op in COMPARISON_OPERATORS)
        if self._has_role_word(text) and (compares or "if" in text):
            kinds.append(ROLE_CHECK)
        if "userId" in text and compares:
            kinds.append(OWNERSHIP_CHECK)
        return kinds

    def extract_auth_checks(self, node, source: bytes) -> List[AuthCheck]:
        """Session, role and ownership checks below ``node``, one per line."""

        checks: List[AuthCheck] = []
        seen_lines: set[int] = set()
        for child in descendants(node):
            if not child.is_named or child.type == "comment":
                continue
            text = node_text(child, source)
            if len(text) >= MAX_CHECK_TEXT:
                continue
            line = start_line(child)
            if line in seen_lines:
                continue
            kinds = self._classify(text)
            if not kinds:
                continue
            seen_lines.add(line)
            checks.append(AuthCheck(type=kinds[0], line=line, details=text[:DETAILS_LENGTH]))
        return checks

    def detect_middleware(self, root, source: bytes) -> List[str]:
        names: List[str] = []
        for child in descendants(root):
            if child.type != "call_expression":
                continue
            name = callee_name(child, source)
            if name and name not in names and any(marker in name for marker in MIDDLEWARE_MARKERS):
                names.append(name)
        return names

    @staticmethod
    def has_auth_middleware(middleware: Iterable[str]) -> bool:
        for name in middleware:
            lowered = name.lower()
            if any(marker in lowered for marker in AUTH_MIDDLEWARE_MARKERS):
                return True
        return False
