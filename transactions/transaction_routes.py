from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError as PydanticValidationError

from auth.auth import get_principal
from pipeline.access import AccessSources, resource_for
from pipeline.business_rules import BusinessRuleEvaluator
from pipeline.composer import RoutePipeline
from pipeline.errors import ValidationError, ValidationFailure
from pipeline.formatting import present
from pipeline.principal import Principal
from pipeline.rulesets import date_range_rules, list_query_rules, transaction_rules
from pipeline.sanitizer import QUERY_SANITIZERS, REPORT_SANITIZERS, transaction_sanitizers
from reports.report_service import ReportService, get_report_service
from settings.config import settings
from settings.deps import get_access_sources, get_clock, get_evaluator, get_ledger
from transactions.transaction_model import DEFAULT_PAYMENT_METHOD, Transaction, TransactionDraft, TransactionKind
from transactions.transaction_repo import Ledger, date_window

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def create_pipeline(kind: TransactionKind, clock: Clock) -> RoutePipeline:
    return RoutePipeline(
        name=f"create {kind.value}",
        max_body=settings.MAX_BODY_TRANSACTION,
        sanitizers=transaction_sanitizers(kind),
        rules=transaction_rules(kind, clock),
    )


def update_pipeline(kind: TransactionKind, clock: Clock) -> RoutePipeline:
    return RoutePipeline(
        name=f"update {kind.value}",
        max_body=settings.MAX_BODY_TRANSACTION,
        sanitizers=transaction_sanitizers(kind),
        rules=transaction_rules(kind, clock, partial=True),
    )


def list_pipeline(kind: TransactionKind) -> RoutePipeline:
    return RoutePipeline(
        name=f"list {kind.label}",
        reads_body=False,
        query_sanitizers=QUERY_SANITIZERS,
        query_rules=list_query_rules(kind),
    )


def read_pipeline(name: str) -> RoutePipeline:
    return RoutePipeline(name=name, reads_body=False, query_sanitizers=REPORT_SANITIZERS, query_rules=date_range_rules())


def serialize(record: Dict[str, Any], kind: TransactionKind, principal: Principal) -> Dict[str, Any]:
    presented = present(record, principal.currency, principal.language)
    return Transaction.model_validate({**presented, "kind": kind}).model_dump(by_alias=True, mode="json")


DRAFT_FIELDS = frozenset(info.alias or name for name, info in TransactionDraft.model_fields.items())


def draft_from(body: Dict[str, Any]) -> TransactionDraft:
    """Build the draft from the validated body; a coercion failure is still a 400."""
    try:
        return TransactionDraft.model_validate({k: v for k, v in body.items() if k in DRAFT_FIELDS})
    except PydanticValidationError as exc:
        raise ValidationFailure([
            ValidationError(
                field=".".join(str(part) for part in err.get("loc", ())) or "body",
                message=err.get("msg", "Invalid value"),
            )
            for err in exc.errors()
        ])


def document_for(kind: TransactionKind, body: Dict[str, Any]) -> Dict[str, Any]:
    document = draft_from(body).to_document()
    if kind is TransactionKind.INCOME:
        document.pop("is_essential", None)
    return document


def build_router(kind: TransactionKind) -> APIRouter:
    router = APIRouter(prefix=f"/api/{kind.label}", tags=[kind.label])
    noun = kind.value.capitalize()
    resource = resource_for(kind)

    @router.get("")
    async def list_transactions(
        request: Request,
        principal: Principal = Depends(get_principal),
        ledger: Ledger = Depends(get_ledger),
        evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
    ):
        result = await list_pipeline(kind).run(
            request, principal.id, business=lambda _: evaluator.enforce_account(principal, kind)
        )
        q = result.query
        filters: Dict[str, Any] = {"user": principal.id, "is_active": True}
        if q.get("category"):
            filters["category"] = q["category"]
        if kind is TransactionKind.EXPENSE and isinstance(q.get("isEssential"), bool):
            filters["is_essential"] = q["isEssential"]
        window = date_window(q.get("startDate"), q.get("endDate"))
        if window is not None:
            filters["date"] = window

        repo = ledger.repo(kind)
        page, limit = q["page"], q["limit"]
        records = await repo.list(filters, q["sortBy"], q["sortOrder"], limit=limit, offset=(page - 1) * limit)
        total = await repo.count(filters)
        return {
            "success": True,
            "data": {
                kind.label: [serialize(r, kind, principal) for r in records],
                "pagination": {
                    "currentPage": page,
                    "totalPages": math.ceil(total / limit),
                    "totalItems": total,
                    "itemsPerPage": limit,
                },
            },
        }

    @router.get("/stats")
    async def transaction_stats(
        request: Request,
        principal: Principal = Depends(get_principal),
        ledger: Ledger = Depends(get_ledger),
        evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
        clock: Clock = Depends(get_clock),
        service: ReportService = Depends(get_report_service),
    ):
        result = await read_pipeline(f"{kind.value} stats").run(
            request, principal.id, business=lambda _: evaluator.enforce_account(principal, kind)
        )
        repo = ledger.repo(kind)
        everything = service.records_to_dataframe(await repo.all_for(principal.id), kind.value)
        window = date_window(result.query.get("startDate"), result.query.get("endDate"))
        period = None
        if window is not None:
            period = service.records_to_dataframe(await repo.all_for(principal.id, window), kind.value)
        return {"success": True, "data": service.transaction_stats(everything, clock(), period)}

    @router.get("/{record_id}")
    async def get_transaction(
        record_id: str,
        principal: Principal = Depends(get_principal),
        sources: AccessSources = Depends(get_access_sources),
    ):
        record = await resource.lookup(principal, record_id, sources)
        return {"success": True, "data": {kind.value: serialize(record, kind, principal)}}

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_transaction(
        request: Request,
        principal: Principal = Depends(get_principal),
        ledger: Ledger = Depends(get_ledger),
        evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
        clock: Clock = Depends(get_clock),
    ):
        async def business(body: Dict[str, Any]) -> None:
            await evaluator.enforce_create(principal, kind, draft_from(body))

        result = await create_pipeline(kind, clock).run(request, principal.id, business=business)
        document = document_for(kind, result.body)
        document.setdefault("payment_method", DEFAULT_PAYMENT_METHOD)
        document.setdefault("tags", [])
        document.setdefault("is_recurring", False)
        if kind is TransactionKind.EXPENSE:
            document.setdefault("is_essential", False)
        record = await ledger.repo(kind).create(principal.id, document)
        logger.info("%s %s created for user %s", noun, record["id"], principal.id)
        return {
            "success": True,
            "message": f"{noun} created successfully",
            "data": {kind.value: serialize(record, kind, principal)},
        }

    @router.put("/{record_id}")
    async def update_transaction(
        record_id: str,
        request: Request,
        principal: Principal = Depends(get_principal),
        ledger: Ledger = Depends(get_ledger),
        sources: AccessSources = Depends(get_access_sources),
        evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
        clock: Clock = Depends(get_clock),
    ):
        async def business(body: Dict[str, Any]) -> None:
            await evaluator.enforce_account(principal, kind)
            await resource.lookup(principal, record_id, sources)
            await evaluator.enforce_update(principal, kind, draft_from(body), record_id)

        result = await update_pipeline(kind, clock).run(request, principal.id, business=business)
        changes = document_for(kind, result.body)
        if changes.get("is_recurring") is False:
            changes["recurring_frequency"] = None
        record = await ledger.repo(kind).update(record_id, changes)
        return {
            "success": True,
            "message": f"{noun} updated successfully",
            "data": {kind.value: serialize(record, kind, principal)},
        }

    @router.delete("/{record_id}")
    async def delete_transaction(
        record_id: str,
        principal: Principal = Depends(get_principal),
        ledger: Ledger = Depends(get_ledger),
        sources: AccessSources = Depends(get_access_sources),
        evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
    ):
        await evaluator.enforce_account(principal, kind)
        await resource.lookup(principal, record_id, sources)
        await ledger.repo(kind).soft_delete(record_id)
        return {"success": True, "message": f"{noun} deleted successfully"}

    return router


incomes_router = build_router(TransactionKind.INCOME)
expenses_router = build_router(TransactionKind.EXPENSE)
