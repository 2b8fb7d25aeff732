"""
Business rule evaluation.

Unlike schema validation, business rules consult the transaction store and
short-circuit: checks run in a fixed order and the first failure wins.

Create order:
    1. active account / policy session expiry   403 / 401
    2. daily volume                              429
    3. per-transaction amount ceiling            400
    4. financial consistency                     400
    5. plan quota (count, then tags)             429 / 400
    6. duplicate detection                       409

Updates skip the volume and plan-count checks; the duplicate check excludes
the record being edited.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Sequence

from pipeline.errors import (
    AccountInactive,
    AmountPolicyExceeded,
    DuplicateTransaction,
    FinancialInconsistency,
    SessionExpiredByPolicy,
    PlanLimitExceeded,
    RateLimited,
    RuleOutcome,
)
from pipeline.principal import Principal
from pipeline.sanitizer import parse_timestamp
from transactions.transaction_model import TransactionDraft, TransactionKind, iso_timestamp
from transactions.transaction_repo import Between


UNLIMITED: Optional[int] = None
BOTH_KINDS = (TransactionKind.INCOME, TransactionKind.EXPENSE)


def _limit(value: int) -> Optional[int]:
    # -1 (or any non-positive value) in the environment means unlimited
    return value if value > 0 else UNLIMITED


@dataclass(frozen=True)
class PlanLimits:
    max_transactions: Optional[int]
    max_tags: Optional[int]


@dataclass(frozen=True)
class BusinessRuleConfig:
    max_daily_transactions: int = 50
    max_transaction_amount: Decimal = Decimal("1000000")
    max_future_days: int = 30
    max_inactive_days: int = 90
    plans: Mapping[str, PlanLimits] = field(default_factory=lambda: {
        "free": PlanLimits(max_transactions=100, max_tags=5),
        "premium": PlanLimits(max_transactions=1000, max_tags=20),
        "enterprise": PlanLimits(max_transactions=UNLIMITED, max_tags=UNLIMITED),
    })
    default_plan: str = "free"

    @classmethod
    def from_settings(cls, settings: Any) -> "BusinessRuleConfig":
        return cls(
            max_daily_transactions=settings.MAX_DAILY_TRANSACTIONS,
            max_transaction_amount=Decimal(str(settings.MAX_TRANSACTION_AMOUNT)),
            max_future_days=settings.MAX_FUTURE_DAYS,
            max_inactive_days=settings.MAX_INACTIVE_DAYS,
            plans={
                "free": PlanLimits(
                    _limit(settings.PLAN_FREE_MAX_TRANSACTIONS), _limit(settings.PLAN_FREE_MAX_TAGS)
                ),
                "premium": PlanLimits(
                    _limit(settings.PLAN_PREMIUM_MAX_TRANSACTIONS), _limit(settings.PLAN_PREMIUM_MAX_TAGS)
                ),
                "enterprise": PlanLimits(
                    _limit(settings.PLAN_ENTERPRISE_MAX_TRANSACTIONS), _limit(settings.PLAN_ENTERPRISE_MAX_TAGS)
                ),
            },
        )

    def limits_for(self, plan: Optional[str]) -> PlanLimits:
        return self.plans.get(plan or self.default_plan) or self.plans[self.default_plan]


class TransactionStore(Protocol):
    """Read side of the store the business rules need."""

    async def count_matching(self, filters: Mapping[str, Any], kinds: Sequence[TransactionKind]) -> int:
        ...

    async def find_one_matching(
        self,
        filters: Mapping[str, Any],
        kinds: Sequence[TransactionKind],
        exclude_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class RuleContext:
    principal: Principal
    kind: TransactionKind
    draft: TransactionDraft
    exclude_id: Optional[str] = None


Check = Callable[["BusinessRuleEvaluator", RuleContext], Awaitable[RuleOutcome]]


class BusinessRuleEvaluator:
    def __init__(
        self,
        config: BusinessRuleConfig,
        store: TransactionStore,
        clock: Callable[[], datetime],
    ) -> None:
        self.config = config
        self.store = store
        self.clock = clock

    def _owned(self, principal: Principal, **filters: Any) -> Dict[str, Any]:
        return {"user": principal.id, "is_active": True, **filters}

    async def check_active_account(self, ctx: RuleContext) -> RuleOutcome:
        principal = ctx.principal
        if not principal.is_active:
            return AccountInactive("Your account has been deactivated. Contact the administrator.")
        last_login = parse_timestamp(principal.last_login)
        max_days = self.config.max_inactive_days
        if last_login is None or self.clock() - last_login > timedelta(days=max_days):
            return SessionExpiredByPolicy(
                f"Your session expired after more than {max_days} days of inactivity. Please log in again."
            )
        return None

    async def check_daily_volume(self, ctx: RuleContext) -> RuleOutcome:
        if ctx.draft.date is None:
            return None
        day = parse_timestamp(ctx.draft.date).replace(hour=0, minute=0, second=0, microsecond=0)
        window = Between(iso_timestamp(day), iso_timestamp(day + timedelta(days=1)))
        count = await self.store.count_matching(self._owned(ctx.principal, date=window), BOTH_KINDS)
        ceiling = self.config.max_daily_transactions
        if count >= ceiling:
            return RateLimited(f"Only {ceiling} transactions are allowed per day", message="Daily transaction limit exceeded")
        return None

    async def check_amount_ceiling(self, ctx: RuleContext) -> RuleOutcome:
        amount = ctx.draft.amount
        ceiling = self.config.max_transaction_amount
        if amount is not None and amount > ceiling:
            return AmountPolicyExceeded(f"The maximum amount per transaction is {ceiling:,.2f}")
        return None

    async def check_financial_consistency(self, ctx: RuleContext) -> RuleOutcome:
        draft = ctx.draft
        if draft.amount is not None and draft.amount <= 0:
            return FinancialInconsistency("The amount must be greater than zero", message="Invalid amount")
        if draft.date is not None:
            horizon = self.clock() + timedelta(days=self.config.max_future_days)
            if parse_timestamp(draft.date) > horizon:
                return FinancialInconsistency(
                    f"Transactions cannot be more than {self.config.max_future_days} days in the future",
                    message="Invalid date",
                )
        if draft.category is not None and draft.category not in ctx.kind.categories:
            noun = "incomes" if ctx.kind is TransactionKind.INCOME else "expenses"
            return FinancialInconsistency(
                f"The category is not valid for {noun}", message="Invalid category"
            )
        return None

    async def check_plan_count(self, ctx: RuleContext) -> RuleOutcome:
        plan = ctx.principal.plan or self.config.default_plan
        limits = self.config.limits_for(plan)
        if limits.max_transactions is None:
            return None
        count = await self.store.count_matching(self._owned(ctx.principal), BOTH_KINDS)
        if count >= limits.max_transactions:
            return RateLimited(
                f"You have reached the limit of {limits.max_transactions} transactions for the {plan} plan. "
                "Consider upgrading your plan.",
                message="Plan limit exceeded",
            )
        return None

    async def check_plan_tags(self, ctx: RuleContext) -> RuleOutcome:
        plan = ctx.principal.plan or self.config.default_plan
        limits = self.config.limits_for(plan)
        tags = ctx.draft.tags
        if limits.max_tags is not None and tags and len(tags) > limits.max_tags:
            return PlanLimitExceeded(
                f"Your {plan} plan allows at most {limits.max_tags} tags per transaction",
                message="Tag limit exceeded",
            )
        return None

    async def check_duplicate(self, ctx: RuleContext) -> RuleOutcome:
        draft = ctx.draft
        if draft.amount is None or draft.date is None or draft.category is None:
            return None
        filters = self._owned(
            ctx.principal,
            amount=float(draft.amount),
            date=iso_timestamp(draft.date),
            category=draft.category,
        )
        existing = await self.store.find_one_matching(filters, BOTH_KINDS, exclude_id=ctx.exclude_id)
        if existing is not None:
            return DuplicateTransaction("A transaction with the same data already exists for that date")
        return None

    async def first_failure(self, ctx: RuleContext, checks: Sequence[Check]) -> RuleOutcome:
        for check in checks:
            outcome = await check(self, ctx)
            if outcome is not None:
                return outcome
        return None

    async def enforce(self, ctx: RuleContext, checks: Sequence[Check]) -> None:
        outcome = await self.first_failure(ctx, checks)
        if outcome is not None:
            raise outcome

    async def enforce_account(self, principal: Principal, kind: TransactionKind = TransactionKind.INCOME) -> None:
        await self.enforce(RuleContext(principal, kind, TransactionDraft()), ACCOUNT_CHECKS)

    async def enforce_create(self, principal: Principal, kind: TransactionKind, draft: TransactionDraft) -> None:
        await self.enforce(RuleContext(principal, kind, draft), CREATE_CHECKS)

    async def enforce_update(
        self, principal: Principal, kind: TransactionKind, draft: TransactionDraft, record_id: str
    ) -> None:
        await self.enforce(RuleContext(principal, kind, draft, exclude_id=record_id), UPDATE_CHECKS)


CREATE_CHECKS: Sequence[Check] = (
    BusinessRuleEvaluator.check_active_account,
    BusinessRuleEvaluator.check_daily_volume,
    BusinessRuleEvaluator.check_amount_ceiling,
    BusinessRuleEvaluator.check_financial_consistency,
    BusinessRuleEvaluator.check_plan_count,
    BusinessRuleEvaluator.check_plan_tags,
    BusinessRuleEvaluator.check_duplicate,
)

UPDATE_CHECKS: Sequence[Check] = (
    BusinessRuleEvaluator.check_active_account,
    BusinessRuleEvaluator.check_amount_ceiling,
    BusinessRuleEvaluator.check_financial_consistency,
    BusinessRuleEvaluator.check_plan_tags,
    BusinessRuleEvaluator.check_duplicate,
)

ACCOUNT_CHECKS: Sequence[Check] = (
    BusinessRuleEvaluator.check_active_account,
)
