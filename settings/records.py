from __future__ import annotations

from typing import Any, Dict, List


def rows_from(result: Any) -> List[Dict[str, Any]]:
    """
    Normalize a SurrealDB query result into a list of records.

    Depending on the client version, a single-statement query returns either
    the records directly or a list of statement envelopes ``{"result": [...]}``.
    """
    if not result:
        return []
    if isinstance(result, dict):
        result = [result]
    first = result[0]
    if isinstance(first, dict) and "result" in first and set(first) <= {"result", "status", "time"}:
        inner = first.get("result") or []
        return inner if isinstance(inner, list) else [inner]
    if isinstance(first, list):
        return first
    return list(result)


def record_key(value: Any) -> str:
    """Return the id part of a ``table:id`` record reference."""
    text = str(value)
    return text.split(":", 1)[1] if ":" in text else text


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    if "id" in record:
        record = {**record, "id": record_key(record["id"])}
    return record
