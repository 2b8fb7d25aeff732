from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from auth.auth import get_current_user, get_principal
from auth.models import User
from pipeline.access import AccessSources, UserProfileResource
from pipeline.business_rules import BusinessRuleEvaluator
from pipeline.composer import RoutePipeline
from pipeline.principal import Principal
from pipeline.rulesets import date_range_rules, report_query_rules, settings_rules
from pipeline.sanitizer import REPORT_SANITIZERS, SETTINGS_SANITIZERS, parse_timestamp
from reports.report_service import ReportService, get_report_service
from settings.config import settings
from settings.deps import get_access_sources, get_clock, get_evaluator, get_ledger, get_users
from transactions.transaction_model import TransactionKind
from transactions.transaction_repo import Ledger, date_window
from users.user_repo import SurrealUserDatabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

Clock = Callable[[], datetime]

dashboard_pipeline = RoutePipeline(
    name="dashboard", reads_body=False, query_sanitizers=REPORT_SANITIZERS, query_rules=date_range_rules()
)
report_pipeline = RoutePipeline(
    name="report", reads_body=False, query_sanitizers=REPORT_SANITIZERS, query_rules=report_query_rules()
)
settings_pipeline = RoutePipeline(
    name="update settings",
    max_body=settings.MAX_BODY_DEFAULT,
    sanitizers=SETTINGS_SANITIZERS,
    rules=settings_rules(),
)


def merge_preferences(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**current}
    for key in ("currency", "language"):
        if changes.get(key) is not None:
            merged[key] = changes[key]
    notifications = changes.get("notifications")
    if isinstance(notifications, dict):
        merged["notifications"] = {
            **(current.get("notifications") or {}),
            **{k: v for k, v in notifications.items() if k in ("email", "push")},
        }
    return merged


@router.get("/dashboard")
async def dashboard(
    request: Request,
    principal: Principal = Depends(get_principal),
    ledger: Ledger = Depends(get_ledger),
    evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
    clock: Clock = Depends(get_clock),
    service: ReportService = Depends(get_report_service),
):
    query = (await dashboard_pipeline.run(
        request, principal.id, business=lambda _: evaluator.enforce_account(principal)
    )).query
    now = clock()
    # Defaults to the last 30 days; an explicit end date covers that whole day.
    end = parse_timestamp(query.get("endDate"))
    end = end.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1) if end else now
    start = parse_timestamp(query.get("startDate")) or end - timedelta(days=30)
    incomes = await ledger.repo(TransactionKind.INCOME).all_for(principal.id)
    expenses = await ledger.repo(TransactionKind.EXPENSE).all_for(principal.id)
    data = service.dashboard(incomes, expenses, start, end, now, principal.language)
    return {"success": True, "data": data}


@router.get("/report")
async def financial_report(
    request: Request,
    principal: Principal = Depends(get_principal),
    ledger: Ledger = Depends(get_ledger),
    evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
    service: ReportService = Depends(get_report_service),
):
    query = (await report_pipeline.run(
        request, principal.id, business=lambda _: evaluator.enforce_account(principal)
    )).query
    window = date_window(query["startDate"], query["endDate"])
    incomes = await ledger.repo(TransactionKind.INCOME).all_for(principal.id, window)
    expenses = await ledger.repo(TransactionKind.EXPENSE).all_for(principal.id, window)

    if query.get("format") == "csv":
        return Response(
            content=service.report_csv(incomes, expenses),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="financial-report.csv"'},
        )

    start = parse_timestamp(query["startDate"])
    end = parse_timestamp(query["endDate"])
    return {"success": True, "data": service.financial_report(incomes, expenses, start, end)}


@router.get("/settings")
async def get_settings(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "data": {
            "preferences": user.preferences,
            "profile": {
                "name": user.name,
                "email": user.email,
                "role": user.role,
                "isActive": user.is_active,
                "lastLogin": user.last_login,
                "createdAt": user.created_at,
            },
        },
    }


@router.put("/settings")
async def update_settings(
    request: Request,
    user: User = Depends(get_current_user),
    user_db: SurrealUserDatabase = Depends(get_users),
    evaluator: BusinessRuleEvaluator = Depends(get_evaluator),
):
    principal = Principal.from_user(user)
    body = (await settings_pipeline.run(
        request, principal.id, business=lambda _: evaluator.enforce_account(principal)
    )).body
    changes = body.get("preferences") if isinstance(body.get("preferences"), dict) else {}
    updated = await user_db.update_preferences(user, merge_preferences(user.preferences, changes))
    logger.info("Preferences updated for user %s", user.id)
    return {
        "success": True,
        "message": "Settings updated successfully",
        "data": {"preferences": updated.preferences},
    }


@router.get("/{user_id}")
async def get_profile(
    user_id: str,
    principal: Principal = Depends(get_principal),
    sources: AccessSources = Depends(get_access_sources),
):
    profile = await UserProfileResource().lookup(principal, user_id, sources)
    return {"success": True, "data": {"user": profile}}
