"""
Request sanitizers.

Sanitizers never reject; they normalize the in-flight payload in place so the
schema validator sees canonical values. Anything a sanitizer cannot make sense
of is left untouched for the validator to report.

Every sanitizer is idempotent: running the chain twice yields the same payload.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, MutableMapping, Optional, Sequence

from transactions.transaction_model import SORT_FIELDS, TransactionKind, iso_timestamp

Sanitizer = Callable[[MutableMapping[str, Any]], None]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_CONTROL_CHARS_KEEP_NEWLINES = re.compile(r"[\x00-\x09\x0b\x0c\x0e-\x1f\x7f]")
_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
# An ampersand that does not already start one of the entities we emit.
_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|#x27|#x2F|#96);)")
_MARKUP_ENTITIES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
    "`": "&#96;",
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def strip_low(text: str, keep_newlines: bool = False) -> str:
    pattern = _CONTROL_CHARS_KEEP_NEWLINES if keep_newlines else _CONTROL_CHARS
    return pattern.sub("", text)


def escape_markup(text: str) -> str:
    escaped = _BARE_AMPERSAND.sub("&amp;", text)
    for char, entity in _MARKUP_ENTITIES.items():
        escaped = escaped.replace(char, entity)
    return escaped


def to_decimal(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str) and _NUMERIC.match(value.strip()):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return value
    return value


def to_bool(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return value


# --- Sanitizer factories -----------------------------------------------------

def trim_strings(payload: MutableMapping[str, Any]) -> None:
    """Trim every top-level string value."""
    for key, value in list(payload.items()):
        if isinstance(value, str):
            payload[key] = value.strip()


def clean_text(*fields: str) -> Sanitizer:
    """Trim, drop control characters (newlines kept) and escape markup."""

    def _clean(payload: MutableMapping[str, Any]) -> None:
        for field in fields:
            value = payload.get(field)
            if isinstance(value, str):
                payload[field] = escape_markup(strip_low(value, keep_newlines=True).strip())

    return _clean


def normalize_email(field: str = "email") -> Sanitizer:
    def _normalize(payload: MutableMapping[str, Any]) -> None:
        value = payload.get(field)
        if isinstance(value, str):
            payload[field] = value.strip().lower()

    return _normalize


def normalize_tags(field: str = "tags") -> Sanitizer:
    """Lower-case and trim tags, dropping empty entries and duplicates."""

    def _normalize(payload: MutableMapping[str, Any]) -> None:
        value = payload.get(field)
        if not isinstance(value, list):
            return
        seen: set = set()
        tags: List[Any] = []
        for tag in value:
            if isinstance(tag, str):
                tag = strip_low(tag).strip().lower()
                if not tag or tag in seen:
                    continue
                seen.add(tag)
            tags.append(tag)
        payload[field] = tags

    return _normalize


def rename_field(source: str, target: str) -> Sanitizer:
    """Move ``source`` to ``target`` unless the target is already present."""

    def _rename(payload: MutableMapping[str, Any]) -> None:
        if source in payload and target not in payload:
            payload[target] = payload.pop(source)

    return _rename


def drop_fields(*fields: str) -> Sanitizer:
    """Remove fields the route does not accept."""

    def _drop(payload: MutableMapping[str, Any]) -> None:
        for field in fields:
            payload.pop(field, None)

    return _drop


def coerce_numbers(*fields: str) -> Sanitizer:
    def _coerce(payload: MutableMapping[str, Any]) -> None:
        for field in fields:
            if field in payload:
                payload[field] = to_decimal(payload[field])

    return _coerce


def coerce_booleans(*fields: str) -> Sanitizer:
    def _coerce(payload: MutableMapping[str, Any]) -> None:
        for field in fields:
            if field in payload:
                payload[field] = to_bool(payload[field])

    return _coerce


def canonical_dates(*fields: str) -> Sanitizer:
    """Rewrite parseable dates as canonical UTC timestamps; leave the rest."""

    def _canonical(payload: MutableMapping[str, Any]) -> None:
        for field in fields:
            value = payload.get(field)
            parsed = parse_timestamp(value)
            if parsed is not None:
                payload[field] = iso_timestamp(parsed)

    return _canonical


def paging_params(max_limit: int = 100, default_limit: int = 10) -> Sanitizer:
    """Clamp page/limit and default sortBy/sortOrder on list queries."""

    def _paging(params: MutableMapping[str, Any]) -> None:
        params["page"] = _positive_int(params.get("page"), default=1)
        limit = _positive_int(params.get("limit"), default=default_limit)
        params["limit"] = min(limit, max_limit)
        if params.get("sortBy") not in SORT_FIELDS:
            params["sortBy"] = "date"
        params["sortOrder"] = "asc" if params.get("sortOrder") == "asc" else "desc"

    return _paging


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def run_sanitizers(payload: MutableMapping[str, Any], sanitizers: Iterable[Sanitizer]) -> MutableMapping[str, Any]:
    for sanitize in sanitizers:
        sanitize(payload)
    return payload


TRANSACTION_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
    clean_text("description", "notes"),
    normalize_tags("tags"),
    canonical_dates("date"),
    coerce_numbers("amount"),
    coerce_booleans("isRecurring", "isEssential"),
)

# Incomes have no essential flag
INCOME_SANITIZERS: Sequence[Sanitizer] = (drop_fields("isEssential"), *TRANSACTION_SANITIZERS)


def transaction_sanitizers(kind: TransactionKind) -> Sequence[Sanitizer]:
    return INCOME_SANITIZERS if kind is TransactionKind.INCOME else TRANSACTION_SANITIZERS

QUERY_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
    paging_params(),
    canonical_dates("startDate", "endDate"),
    coerce_booleans("isEssential"),
)

REGISTER_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
    normalize_email("email"),
)

LOGIN_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
    rename_field("email", "username"),
    normalize_email("username"),
)

SETTINGS_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
)

REPORT_SANITIZERS: Sequence[Sanitizer] = (
    trim_strings,
    canonical_dates("startDate", "endDate"),
)
