from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def table(self) -> str:
        return self.value

    @property
    def categories(self) -> FrozenSet[str]:
        return INCOME_CATEGORIES if self is TransactionKind.INCOME else EXPENSE_CATEGORIES

    @property
    def label(self) -> str:
        return "incomes" if self is TransactionKind.INCOME else "expenses"


INCOME_CATEGORIES: FrozenSet[str] = frozenset({
    "salario", "ventas", "inversiones", "freelance", "bonos", "comisiones",
    "alquiler", "intereses", "dividendos", "reembolsos", "regalos", "otros",
})

EXPENSE_CATEGORIES: FrozenSet[str] = frozenset({
    "alimentacion", "transporte", "vivienda", "servicios", "salud", "educacion",
    "entretenimiento", "ropa", "tecnologia", "deudas", "ahorro", "inversion",
    "impuestos", "seguros", "mantenimiento", "otros",
})

PAYMENT_METHODS: FrozenSet[str] = frozenset({
    "efectivo", "tarjeta", "tarjeta_debito", "tarjeta_credito",
    "transferencia", "cheque", "crypto", "otros",
})

RECURRING_FREQUENCIES: FrozenSet[str] = frozenset({
    "diario", "semanal", "quincenal", "mensual", "trimestral", "anual",
})

CURRENCIES: FrozenSet[str] = frozenset({"USD", "EUR", "MXN", "COP", "ARS", "BRL"})
LANGUAGES: FrozenSet[str] = frozenset({"es", "en", "pt"})
SORT_FIELDS = ("date", "amount", "description", "category")
SORT_ORDERS = ("asc", "desc")
REPORT_FORMATS = ("json", "csv")

DEFAULT_PAYMENT_METHOD = "efectivo"


class TransactionDraft(BaseModel):
    """Sanitized, validated transaction input handed to the route handlers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    description: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    date: Optional[datetime] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[str] = None
    is_essential: Optional[bool] = None

    def to_document(self) -> dict:
        """Snake-case document for the store, only with the fields that were sent."""
        doc = self.model_dump(exclude_none=True)
        if "amount" in doc:
            doc["amount"] = float(doc["amount"])
        if "date" in doc:
            doc["date"] = iso_timestamp(doc["date"])
        return doc


class Transaction(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user: str
    kind: TransactionKind
    description: str
    amount: float
    category: str
    date: str
    payment_method: str = DEFAULT_PAYMENT_METHOD
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_frequency: Optional[str] = None
    is_essential: Optional[bool] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    formatted_amount: Optional[str] = None
    formatted_date: Optional[str] = None


def iso_timestamp(value: datetime) -> str:
    """Canonical UTC timestamp, millisecond precision: 2024-01-15T00:00:00.000Z"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
