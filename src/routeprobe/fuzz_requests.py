"""HTTP plumbing and case generation for route fuzzing."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import random
import re
import string
from typing import Any, Dict, List, Optional

import requests

from .parameter_extraction import Parameter


log = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}
BODY_METHODS = {"POST", "PUT", "DELETE"}
SENSITIVE_USER_FIELDS = {"emailverified", "password", "passwordhash"}
OBJECT_ID_RANGE = (0, 1000)
STRING_LENGTH_RANGE = (1, 100)
STRING_ALPHABET = string.ascii_letters + string.digits + string.punctuation + " "
LOREM_WORDS = (
    "lorem", "ipsum", "dolor", "sit", "amet", "consectetur", "adipiscing", "elit",
    "sed", "do", "eiusmod", "tempor", "incididunt", "ut", "labore", "et", "dolore",
    "magna", "aliqua", "enim", "ad", "minim", "veniam", "quis", "nostrud",
)
DYNAMIC_SEGMENT_RE = re.compile(r"\[(?:\.\.\.)?([^\]/]+)\]")


@dataclass(frozen=True, slots=True)
class FuzzCase:
    headers: Dict[str, str]
    body: Optional[Dict[str, Any]] = None
    path_params: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FuzzRequest:
    url: str
    method: str
    headers: Dict[str, str]
    body: Any = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"url": self.url, "method": self.method, "headers": dict(self.headers)}
        if self.body is not None:
            data["body"] = self.body
        return data


@dataclass(frozen=True, slots=True)
class FuzzResponse:
    status: int
    body: Any = None

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> Dict[str, object]:
        return {"status": self.status, "body": self.body}


def contains_user_data(body: Any) -> bool:
    """True when a response body exposes password-like user fields."""

    if isinstance(body, list):
        return any(isinstance(item, dict) and _has_sensitive_key(item) for item in body)
    if isinstance(body, dict):
        return _has_sensitive_key(body)
    return False


def _has_sensitive_key(record: Dict[str, Any]) -> bool:
    return any(str(key).lower() in SENSITIVE_USER_FIELDS for key in record)


def build_url(base_url: str, route_path: str, path_params: Dict[str, str] | None = None) -> str:
    """Join the target base URL and a route path, filling ``[segment]`` placeholders."""

    if path_params:
        route_path = DYNAMIC_SEGMENT_RE.sub(
            lambda match: path_params.get(match.group(1), match.group(0)),
            route_path,
        )
    return f"{base_url.rstrip('/')}{route_path}"


def dynamic_segments(route_path: str) -> List[str]:
    return DYNAMIC_SEGMENT_RE.findall(route_path)


def _parse_body(response: requests.Response) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return response.json()
    except ValueError:
        return text


def send_request(
    session: requests.Session,
    request: FuzzRequest,
    timeout: float | None = None,
) -> FuzzResponse:
    """Send one request; network errors propagate to the caller."""

    kwargs: Dict[str, Any] = {"headers": dict(request.headers), "timeout": timeout}
    if request.body is not None and request.method.upper() in BODY_METHODS:
        kwargs["json"] = request.body
    response = session.request(request.method, request.url, **kwargs)
    log.debug("%s %s -> %s", request.method, request.url, response.status_code)
    return FuzzResponse(status=response.status_code, body=_parse_body(response))


def _random_string(rng: random.Random) -> str:
    length = rng.randint(*STRING_LENGTH_RANGE)
    return "".join(rng.choice(STRING_ALPHABET) for _ in range(length))


def _lorem(rng: random.Random) -> str:
    return " ".join(rng.choice(LOREM_WORDS) for _ in range(rng.randint(1, 5)))


def generate_fuzz_cases(
    parameters: List[Parameter] | tuple,
    count: int,
    rng: random.Random,
    route_path: str = "",
) -> List[FuzzCase]:
    """Randomized unauthenticated requests for a route.

    Object identifiers are guessed as small integers; string or UUID keyed
    resources will rarely be hit.
    """

    body_params = [param for param in parameters if param.source == "body" and param.name]
    segments = dynamic_segments(route_path)
    cases: List[FuzzCase] = []
    for _ in range(count):
        object_id = rng.randint(*OBJECT_ID_RANGE)
        text_value = _random_string(rng)
        body: Optional[Dict[str, Any]] = None
        if body_params:
            body = {}
            for param in body_params:
                if param.contains_object_id:
                    body[param.name] = object_id
                else:
                    body[param.name] = rng.choice((text_value, _lorem(rng)))
        cases.append(
            FuzzCase(
                headers=dict(JSON_HEADERS),
                body=body,
                path_params={segment: str(object_id) for segment in segments},
            )
        )
    return cases
