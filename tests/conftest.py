import os
import sys

# Provide required auth secrets for tests if not already set
os.environ.setdefault("ENV_SECRET", "test-secret")
os.environ.setdefault("ENV_RESET_PASSWORD_TOKEN_SECRET", "test-reset-secret")
os.environ.setdefault("ENV_VERIFICATION_TOKEN_SECRET", "test-verify-secret")


def pytest_sessionstart(session):
    # Ensure project root is on sys.path so `auth`, `pipeline` and friends resolve
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


# --- Test utilities: Fake in-memory SurrealDB ---
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from auth.models import User
from pipeline.business_rules import BusinessRuleConfig, BusinessRuleEvaluator
from pipeline.principal import Principal
from transactions.transaction_model import SORT_FIELDS, TransactionKind, iso_timestamp
from transactions.transaction_repo import Between, Ledger

FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeAsyncSurreal:
    """Just enough of AsyncSurreal for the user store; every query is recorded."""

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, dict]] = {"users": {}}
        self.queries: List[tuple] = []
        self.next_query_result: Optional[list] = None

    async def select(self, key: str):
        # Expecting format "<table>:<id>"
        if ":" in key:
            table, id_part = key.split(":", 1)
            rec = self._tables.get(table, {}).get(id_part)
            if rec is None:
                return None
            # Return a plain dict like the real client
            return {**rec}
        return [{**rec} for rec in self._tables.get(key, {}).values()]

    async def query(self, query: str, vars: dict | None = None):
        self.queries.append((query, vars or {}))
        if self.next_query_result is not None:
            result, self.next_query_result = self.next_query_result, None
            return result

        # Handle cleanup
        if query.strip().upper() == "REMOVE TABLE USERS":
            self._tables["users"] = {}
            return [{"result": []}]

        # Handle select by email
        if query.strip().upper().startswith("SELECT * FROM USERS WHERE EMAIL = $EMAIL"):
            email = vars.get("email") if vars else None
            users_table = self._tables["users"]
            for rec in users_table.values():
                if rec.get("email") == email:
                    return [{"result": [{**rec}]}]
            return [{"result": []}]

        # Default empty result for unrecognized queries used in tests
        return [{"result": []}]

    async def create(self, table: str, payload: dict):
        new_id = str(uuid.uuid4())
        # Simulate SurrealDB id like "users:<uuid>"
        record = {**payload, "id": f"{table}:{new_id}"}
        self._tables.setdefault(table, {})[new_id] = record
        return {**record}

    async def merge(self, key: str, payload: dict):
        table, id_part = key.split(":", 1)
        current = self._tables.get(table, {}).get(id_part)
        if current is None:
            raise KeyError(key)
        updated = {**current, **payload}
        self._tables[table][id_part] = updated
        return {**updated}

    async def delete(self, key: str):
        table, id_part = key.split(":", 1)
        self._tables.get(table, {}).pop(id_part, None)

    async def signin(self, credentials: dict):
        self.signed_in_as = credentials["username"]

    async def use(self, namespace: str, database: str):
        self.scope = (namespace, database)

    async def close(self):
        self.closed = True


class InMemoryTransactionRepo:
    """Dict-backed stand-in for TransactionRepo with the same filter semantics."""

    def __init__(self, kind: TransactionKind) -> None:
        self.kind = kind
        self.records: Dict[str, dict] = {}

    def _matches(self, record: dict, filters: Dict[str, Any]) -> bool:
        for name, expected in filters.items():
            value = record.get(name)
            if isinstance(expected, Between):
                if not expected.contains(value):
                    return False
            elif value != expected:
                return False
        return True

    async def create(self, user_id: str, document: dict) -> dict:
        record_id = uuid.uuid4().hex[:12]
        record = {**document, "id": record_id, "user": user_id, "is_active": True}
        self.records[record_id] = record
        return {**record}

    async def get(self, record_id: str) -> Optional[dict]:
        record = self.records.get(record_id)
        return {**record} if record else None

    async def find_owned(self, user_id: str, record_id: str) -> Optional[dict]:
        record = await self.get(record_id)
        if record is None or record.get("user") != user_id or not record.get("is_active", True):
            return None
        return record

    async def list(self, filters, sort_by="date", sort_order="desc", limit=10, offset=0) -> List[dict]:
        sort_by = sort_by if sort_by in SORT_FIELDS else "date"
        rows = [r for r in self.records.values() if self._matches(r, filters)]
        rows.sort(key=lambda r: r.get(sort_by), reverse=sort_order != "asc")
        return [{**r} for r in rows[offset:offset + limit]]

    async def count(self, filters) -> int:
        return sum(1 for r in self.records.values() if self._matches(r, filters))

    async def find_one(self, filters, exclude_id=None) -> Optional[dict]:
        for record in self.records.values():
            if record["id"] != exclude_id and self._matches(record, filters):
                return {**record}
        return None

    async def update(self, record_id: str, changes: dict) -> dict:
        self.records[record_id] = {**self.records[record_id], **changes}
        return {**self.records[record_id]}

    async def soft_delete(self, record_id: str) -> None:
        await self.update(record_id, {"is_active": False})

    async def all_for(self, user_id: str, window=None) -> List[dict]:
        filters: Dict[str, Any] = {"user": user_id, "is_active": True}
        if window is not None:
            filters["date"] = window
        return await self.list(filters, limit=10_000)


def make_ledger() -> Ledger:
    return Ledger({kind: InMemoryTransactionRepo(kind) for kind in TransactionKind})


def seed(ledger: Ledger, kind: TransactionKind, user_id: str, **fields) -> dict:
    """Insert a record directly, bypassing the pipeline."""
    repo = ledger.repo(kind)
    record_id = uuid.uuid4().hex[:12]
    record = {
        "id": record_id,
        "user": user_id,
        "is_active": True,
        "description": "Seeded",
        "amount": 10.0,
        "category": "salario" if kind is TransactionKind.INCOME else "alimentacion",
        "date": iso_timestamp(FIXED_NOW),
        "payment_method": "efectivo",
        "tags": [],
        "is_recurring": False,
        **fields,
    }
    repo.records[record_id] = record
    return record


@pytest_asyncio.fixture
async def fake_db():
    # Provide a fresh fake DB per test function
    db = FakeAsyncSurreal()
    yield db


@pytest.fixture
def ledger() -> Ledger:
    return make_ledger()


@pytest.fixture
def principal() -> Principal:
    return Principal(
        id="user-1",
        is_active=True,
        plan="free",
        preferences={"currency": "USD", "language": "en"},
        last_login=iso_timestamp(FIXED_NOW - timedelta(days=1)),
    )


@pytest.fixture
def evaluator(ledger: Ledger) -> BusinessRuleEvaluator:
    return BusinessRuleEvaluator(BusinessRuleConfig(), ledger, fixed_clock)


def make_user(**overrides) -> User:
    fields = {
        "id": "user-1",
        "email": "ana@example.com",
        "hashed_password": "not-a-real-hash",
        "name": "Ana Maria",
        "plan": "free",
        "preferences": {"currency": "USD", "language": "en", "notifications": {"email": True, "push": False}},
        "last_login": iso_timestamp(FIXED_NOW - timedelta(days=1)),
        **overrides,
    }
    return User(**fields)


class CurrentUser:
    """Mutable holder so a test can switch the authenticated user mid-way."""

    def __init__(self, user: User) -> None:
        self.user = user

    def __call__(self) -> User:
        return self.user


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(make_user())


@pytest.fixture
def client(ledger, current_user, fake_db):
    from fastapi.testclient import TestClient

    from auth.auth import get_current_user
    from main import app
    from settings.db import get_db
    from settings.deps import get_clock, get_ledger

    app.dependency_overrides[get_current_user] = current_user
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    app.dependency_overrides[get_db] = lambda: fake_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
