from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import Depends
from surrealdb import AsyncSurreal

from pipeline.access import AccessSources
from pipeline.business_rules import BusinessRuleConfig, BusinessRuleEvaluator
from pipeline.rulesets import utc_now
from transactions.transaction_model import TransactionKind
from transactions.transaction_repo import Ledger, TransactionRepo
from users.user_repo import SurrealUserDatabase
from .config import settings
from .db import USERS_TABLE, get_db


def get_clock() -> Callable[[], datetime]:
	"""Time source for date windows and policy checks; overridden in tests."""
	return utc_now


def get_rule_config() -> BusinessRuleConfig:
	return BusinessRuleConfig.from_settings(settings)


async def get_ledger(db: AsyncSurreal = Depends(get_db)) -> Ledger:
	return Ledger({kind: TransactionRepo(db, kind) for kind in TransactionKind})


async def get_evaluator(
	ledger: Ledger = Depends(get_ledger),
	config: BusinessRuleConfig = Depends(get_rule_config),
	clock: Callable[[], datetime] = Depends(get_clock),
) -> BusinessRuleEvaluator:
	return BusinessRuleEvaluator(config, ledger, clock)


async def get_users(db: AsyncSurreal = Depends(get_db)) -> SurrealUserDatabase:
	return SurrealUserDatabase(db, USERS_TABLE)


async def get_access_sources(
	ledger: Ledger = Depends(get_ledger),
	user_db: SurrealUserDatabase = Depends(get_users),
) -> AccessSources:
	return AccessSources(ledger=ledger, user_db=user_db)
