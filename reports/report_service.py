from __future__ import annotations

from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from pipeline.formatting import format_month
from transactions.transaction_model import iso_timestamp

COLUMNS = {
  "id": "string",
  "kind": "string",
  "description": "string",
  "amount": "float64",
  "category": "string",
  "payment_method": "string",
  "is_essential": "bool",
}


def month_start(moment: datetime, months_back: int = 0) -> datetime:
  year, month = moment.year, moment.month - months_back
  while month < 1:
    month += 12
    year -= 1
  return moment.replace(year=year, month=month, day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month(moment: datetime) -> datetime:
  return (moment.replace(day=1) + timedelta(days=32)).replace(day=1)


def _round(value: float) -> float:
  return round(float(value), 2)


class ReportService():
  """pandas aggregations behind the stats, dashboard and report endpoints."""

  def __init__(self) -> None:
    pass

  def records_to_dataframe(self, records: Sequence[Dict[str, Any]], kind: Optional[str] = None) -> pd.DataFrame:
    """
    Convert stored transaction records to a typed DataFrame.
    ``date`` becomes a UTC datetime column; bad dates turn into NaT and drop out.
    """
    df = pd.DataFrame(list(records))
    if df.empty:
      empty = pd.DataFrame(columns=list(COLUMNS) + ["date"]).astype(COLUMNS)
      empty["date"] = pd.to_datetime(empty["date"], utc=True)
      return empty

    if kind is not None:
      df["kind"] = kind
    for col in COLUMNS:
      if col not in df.columns:
        df[col] = pd.NA
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["is_essential"] = df["is_essential"].fillna(False).astype("bool")
    df["payment_method"] = df["payment_method"].fillna("efectivo")
    df["date"] = pd.to_datetime(df["date"], utc=True, errors="coerce")
    df = df.dropna(subset=["date"])
    df = df.astype({col: dtype for col, dtype in COLUMNS.items() if col != "is_essential"})
    return df.sort_values(by="date", ascending=False, kind="mergesort").reset_index(drop=True)

  def between(self, df: pd.DataFrame, start: datetime, end: datetime) -> pd.DataFrame:
    """Rows with start <= date < end."""
    if df.empty:
      return df
    mask = (df["date"] >= pd.Timestamp(start)) & (df["date"] < pd.Timestamp(end))
    return df[mask]

  def category_totals(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
    if df.empty:
      return []
    grp = df.groupby("category", dropna=False).agg(total=("amount", "sum"), n=("amount", "size")).reset_index()
    grand_total = grp["total"].sum()
    grp["percentage"] = np.where(grand_total > 0, grp["total"] / grand_total * 100.0, 0.0)
    grp = grp.sort_values("total", ascending=False, kind="mergesort")
    return [
      {
        "category": str(row.category),
        "total": _round(row.total),
        "count": int(row.n),
        "percentage": _round(row.percentage),
      }
      for row in grp.itertuples(index=False)
    ]

  def transaction_stats(self, df: pd.DataFrame, now: datetime, period: Optional[pd.DataFrame] = None) -> Dict[str, Any]:
    """Month-over-month figures use every record; total and categories honour ``period`` when given."""
    period = df if period is None else period
    current = month_start(now)
    previous = month_start(now, 1)
    monthly_total = self.between(df, current, next_month(current))["amount"].sum()
    last_month_total = self.between(df, previous, current)["amount"].sum()
    growth = (monthly_total - last_month_total) / last_month_total * 100.0 if last_month_total > 0 else 0.0
    return {
      "total": _round(period["amount"].sum()),
      "monthlyTotal": _round(monthly_total),
      "lastMonthTotal": _round(last_month_total),
      "growthPercentage": _round(growth),
      "categoryStats": self.category_totals(period),
    }

  def monthly_series(
    self, incomes: pd.DataFrame, expenses: pd.DataFrame, now: datetime, months: int = 6, language: str = "es"
  ) -> List[Dict[str, Any]]:
    series = []
    for back in range(months - 1, -1, -1):
      start = month_start(now, back)
      end = next_month(start)
      income = self.between(incomes, start, end)["amount"].sum()
      expense = self.between(expenses, start, end)["amount"].sum()
      series.append({
        "month": format_month(start, language),
        "income": _round(income),
        "expense": _round(expense),
        "balance": _round(income - expense),
      })
    return series

  def recent(self, df: pd.DataFrame, by_id: Dict[str, Dict[str, Any]], limit: int = 5) -> List[Dict[str, Any]]:
    return [by_id[record_id] for record_id in df.head(limit)["id"] if record_id in by_id]

  def dashboard(
    self,
    incomes: Sequence[Dict[str, Any]],
    expenses: Sequence[Dict[str, Any]],
    start: datetime,
    end: datetime,
    now: datetime,
    language: str = "es",
  ) -> Dict[str, Any]:
    income_df = self.records_to_dataframe(incomes, "income")
    expense_df = self.records_to_dataframe(expenses, "expense")
    income_period = self.between(income_df, start, end)
    expense_period = self.between(expense_df, start, end)
    total_income = income_period["amount"].sum()
    total_expense = expense_period["amount"].sum()
    return {
      "summary": {
        "totalIncome": _round(total_income),
        "totalExpense": _round(total_expense),
        "balance": _round(total_income - total_expense),
        "period": {"startDate": iso_timestamp(start), "endDate": iso_timestamp(end)},
      },
      "incomeByCategory": self.category_totals(income_period),
      "expenseByCategory": self.category_totals(expense_period),
      "recentIncomes": self.recent(income_df, {r["id"]: r for r in incomes}),
      "recentExpenses": self.recent(expense_df, {r["id"]: r for r in expenses}),
      "monthlyStats": self.monthly_series(income_df, expense_df, now, language=language),
    }

  def financial_report(
    self,
    incomes: Sequence[Dict[str, Any]],
    expenses: Sequence[Dict[str, Any]],
    start: datetime,
    end: datetime,
  ) -> Dict[str, Any]:
    income_df = self.records_to_dataframe(incomes, "income")
    expense_df = self.records_to_dataframe(expenses, "expense")
    total_income = income_df["amount"].sum()
    total_expense = expense_df["amount"].sum()
    days = max(1, (end - start).days)
    essential = expense_df[expense_df["is_essential"]]
    non_essential = expense_df[~expense_df["is_essential"]]

    def share(part: pd.DataFrame) -> Dict[str, Any]:
      part_total = part["amount"].sum()
      return {
        "total": _round(part_total),
        "count": int(len(part)),
        "percentage": _round(part_total / total_expense * 100.0) if total_expense > 0 else 0.0,
      }

    return {
      "period": {"startDate": iso_timestamp(start), "endDate": iso_timestamp(end), "days": days},
      "summary": {
        "totalIncome": _round(total_income),
        "totalExpense": _round(total_expense),
        "balance": _round(total_income - total_expense),
        "averageDailyIncome": _round(total_income / days),
        "averageDailyExpense": _round(total_expense / days),
      },
      "incomeByCategory": self.category_totals(income_df),
      "expenseByCategory": self.category_totals(expense_df),
      "essentialExpenses": share(essential),
      "nonEssentialExpenses": share(non_essential),
      "transactions": {
        "total": int(len(income_df) + len(expense_df)),
        "incomes": int(len(income_df)),
        "expenses": int(len(expense_df)),
      },
    }

  def report_csv(self, incomes: Sequence[Dict[str, Any]], expenses: Sequence[Dict[str, Any]]) -> str:
    df = pd.concat(
      [self.records_to_dataframe(incomes, "income"), self.records_to_dataframe(expenses, "expense")],
      ignore_index=True,
    )
    out = pd.DataFrame({
      "Type": df["kind"],
      "Description": df["description"],
      "Amount": df["amount"].map(lambda v: f"{v:.2f}"),
      "Category": df["category"],
      "Date": pd.to_datetime(df["date"], utc=True).dt.strftime("%Y-%m-%d"),
      "Payment Method": df["payment_method"],
    })
    return out.to_csv(index=False, lineterminator="\n")


@lru_cache(maxsize=1)
def get_report_service() -> "ReportService":
  return ReportService()
