"""
Ownership checks for ``/{id}`` routes.

Each resource variant knows how to load itself for a principal. Routes pick the
variant statically; any miss (absent, soft-deleted, someone else's) is a 404 so
the response never reveals whether the id exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pipeline.errors import NotFound
from pipeline.principal import Principal
from settings.records import record_key
from transactions.transaction_model import TransactionKind
from transactions.transaction_repo import Ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessSources:
    ledger: Optional[Ledger] = None
    user_db: Any = None


@dataclass(frozen=True)
class _TransactionResource:
    kind: TransactionKind

    async def lookup(self, principal: Principal, resource_id: str, sources: AccessSources) -> Dict[str, Any]:
        record = await sources.ledger.repo(self.kind).find_owned(principal.id, resource_id)
        if record is None:
            logger.warning("Access denied to %s %s for user %s", self.kind.value, resource_id, principal.id)
            raise NotFound()
        return record


@dataclass(frozen=True)
class IncomeResource(_TransactionResource):
    kind: TransactionKind = TransactionKind.INCOME


@dataclass(frozen=True)
class ExpenseResource(_TransactionResource):
    kind: TransactionKind = TransactionKind.EXPENSE


@dataclass(frozen=True)
class UserProfileResource:
    async def lookup(self, principal: Principal, resource_id: str, sources: AccessSources) -> Dict[str, Any]:
        if record_key(resource_id) != record_key(principal.id):
            raise NotFound()
        user = await sources.user_db.get(resource_id)
        if user is None or not user.is_active:
            raise NotFound()
        return user.model_dump(exclude={"hashed_password"})


Resource = Union[IncomeResource, ExpenseResource, UserProfileResource]


def resource_for(kind: TransactionKind) -> Resource:
    return IncomeResource() if kind is TransactionKind.INCOME else ExpenseResource()
