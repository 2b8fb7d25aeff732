"""
Transport-level guards that run before any payload inspection.

- ``check_content_type``: mutating requests must declare an allowed media type (415).
- ``check_body_size``: declared and actual body length must fit the route ceiling (413).
- ``find_injection`` / ``check_injection``: deny-list scan over every string in the
  raw body and query parameters (400, generic message, nothing echoed back).
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Mapping, Optional, Pattern, Sequence, Tuple

from pipeline.errors import InjectionDetected, PayloadTooLarge, UnsupportedContentType

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH"})
JSON = "application/json"
FORM = "application/x-www-form-urlencoded"

DANGEROUS_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"<\s*iframe\b", re.IGNORECASE),
    re.compile(r"<\s*object\b", re.IGNORECASE),
    re.compile(r"<\s*embed\b", re.IGNORECASE),
)


def check_content_type(method: str, content_type: Optional[str], allowed: Sequence[str]) -> None:
    if method.upper() not in MUTATING_METHODS:
        return
    media = (content_type or "").lower()
    if not media or not any(kind in media for kind in allowed):
        raise UnsupportedContentType(allowed)


def check_body_size(content_length: Optional[str], body: bytes, max_bytes: int) -> None:
    try:
        declared = int(content_length or 0)
    except ValueError:
        declared = 0
    if declared > max_bytes or len(body) > max_bytes:
        raise PayloadTooLarge(max_bytes)


def iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


def find_injection(*sources: Any, patterns: Sequence[Pattern[str]] = DANGEROUS_PATTERNS) -> bool:
    for source in sources:
        for text in iter_strings(source):
            if any(pattern.search(text) for pattern in patterns):
                return True
    return False


def check_injection(*sources: Any) -> None:
    if find_injection(*sources):
        raise InjectionDetected()
