from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from surrealdb import AsyncSurreal

from pipeline.sanitizer import parse_timestamp
from settings.records import normalize_record, record_key, rows_from
from transactions.transaction_model import SORT_FIELDS, TransactionKind, iso_timestamp

logger = logging.getLogger(__name__)

FILTER_FIELDS = frozenset({"user", "is_active", "amount", "date", "category", "is_essential"})


@dataclass(frozen=True)
class Between:
    """Range filter: start <= value < end. Either bound may be open (None)."""

    start: Any = None
    end: Any = None

    def contains(self, value: Any) -> bool:
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        return self.end is None or value < self.end


def date_window(start: Optional[str], end: Optional[str]) -> Optional[Between]:
    """Filter for a startDate/endDate pair; the end date is inclusive of its whole day."""
    if not start and not end:
        return None
    end_exclusive = None
    if end:
        day = parse_timestamp(end).replace(hour=0, minute=0, second=0, microsecond=0)
        end_exclusive = iso_timestamp(day + timedelta(days=1))
    return Between(start or None, end_exclusive)


def build_where(filters: Mapping[str, Any], exclude_id: Optional[str] = None, table: str = "") -> Tuple[str, Dict[str, Any]]:
    clauses: List[str] = []
    vars: Dict[str, Any] = {}
    for name, value in filters.items():
        if name not in FILTER_FIELDS:
            raise ValueError(f"Unsupported filter field: {name}")
        if isinstance(value, Between):
            if value.start is not None:
                clauses.append(f"{name} >= ${name}_start")
                vars[f"{name}_start"] = value.start
            if value.end is not None:
                clauses.append(f"{name} < ${name}_end")
                vars[f"{name}_end"] = value.end
        else:
            clauses.append(f"{name} = ${name}")
            vars[name] = value
    if exclude_id is not None:
        clauses.append("id != type::thing($table, $exclude_id)")
        vars["table"] = table
        vars["exclude_id"] = record_key(exclude_id)
    return (" AND ".join(clauses) or "true"), vars


class TransactionRepo:
    """SurrealDB access for one transaction table (``income`` or ``expense``)."""

    def __init__(self, db: AsyncSurreal, kind: TransactionKind):
        self.db = db
        self.kind = kind
        self.table = kind.table

    async def create(self, user_id: str, document: dict) -> dict:
        now_iso = iso_timestamp(datetime.now(timezone.utc))
        payload = {
            **document,
            "user": user_id,
            "is_active": True,
            "created_at": now_iso,
            "updated_at": now_iso,
        }
        record = await self.db.create(self.table, payload)
        if isinstance(record, list):
            record = record[0]
        return normalize_record(record)

    async def get(self, record_id: str) -> Optional[dict]:
        record = await self.db.select(f"{self.table}:{record_key(record_id)}")
        if isinstance(record, list):
            record = record[0] if record else None
        return normalize_record(record) if record else None

    async def find_owned(self, user_id: str, record_id: str) -> Optional[dict]:
        record = await self.get(record_id)
        if record is None or record.get("user") != user_id or not record.get("is_active", True):
            return None
        return record

    async def list(
        self,
        filters: Mapping[str, Any],
        sort_by: str = "date",
        sort_order: str = "desc",
        limit: int = 10,
        offset: int = 0,
    ) -> List[dict]:
        if sort_by not in SORT_FIELDS:
            sort_by = "date"
        direction = "ASC" if sort_order == "asc" else "DESC"
        where, vars = build_where(filters)
        query = f"SELECT * FROM {self.table} WHERE {where} ORDER BY {sort_by} {direction} LIMIT $limit START $offset;"
        res = await self.db.query(query, {**vars, "limit": limit, "offset": offset})
        return [normalize_record(row) for row in rows_from(res)]

    async def count(self, filters: Mapping[str, Any]) -> int:
        where, vars = build_where(filters)
        query = f"SELECT count() AS total FROM {self.table} WHERE {where} GROUP ALL;"
        rows = rows_from(await self.db.query(query, vars))
        return int(rows[0].get("total", 0)) if rows else 0

    async def find_one(self, filters: Mapping[str, Any], exclude_id: Optional[str] = None) -> Optional[dict]:
        where, vars = build_where(filters, exclude_id=exclude_id, table=self.table)
        query = f"SELECT * FROM {self.table} WHERE {where} LIMIT 1;"
        rows = rows_from(await self.db.query(query, vars))
        return normalize_record(rows[0]) if rows else None

    async def update(self, record_id: str, changes: dict) -> dict:
        payload = {**changes, "updated_at": iso_timestamp(datetime.now(timezone.utc))}
        record = await self.db.merge(f"{self.table}:{record_key(record_id)}", payload)
        if isinstance(record, list):
            record = record[0]
        return normalize_record(record)

    async def soft_delete(self, record_id: str) -> None:
        await self.update(record_id, {"is_active": False})
        logger.info("Soft-deleted %s:%s", self.table, record_key(record_id))

    async def all_for(self, user_id: str, window: Optional[Between] = None) -> List[dict]:
        """Every active record of the user, newest first, optionally inside a date window."""
        filters: Dict[str, Any] = {"user": user_id, "is_active": True}
        if window is not None:
            filters["date"] = window
        where, vars = build_where(filters)
        query = f"SELECT * FROM {self.table} WHERE {where} ORDER BY date DESC;"
        res = await self.db.query(query, vars)
        return [normalize_record(row) for row in rows_from(res)]


class Ledger:
    """Both transaction tables behind the read interface the business rules use."""

    def __init__(self, repos: Mapping[TransactionKind, TransactionRepo]):
        self.repos = dict(repos)

    def repo(self, kind: TransactionKind) -> TransactionRepo:
        return self.repos[kind]

    async def count_matching(self, filters: Mapping[str, Any], kinds: Sequence[TransactionKind]) -> int:
        total = 0
        for kind in kinds:
            total += await self.repos[kind].count(filters)
        return total

    async def find_one_matching(
        self,
        filters: Mapping[str, Any],
        kinds: Sequence[TransactionKind],
        exclude_id: Optional[str] = None,
    ) -> Optional[dict]:
        for kind in kinds:
            found = await self.repos[kind].find_one(filters, exclude_id=exclude_id)
            if found is not None:
                return found
        return None
