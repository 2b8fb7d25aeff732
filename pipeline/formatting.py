"""
Presentation helpers applied by handlers to records after a store read/write.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional, Union

from babel.dates import format_date as babel_format_date, format_skeleton
from babel.numbers import format_currency as babel_format_currency

from pipeline.sanitizer import parse_timestamp

LOCALES = {"es": "es_ES", "en": "en_US", "pt": "pt_BR"}
DEFAULT_LANGUAGE = "es"
DEFAULT_CURRENCY = "USD"


def locale_for(language: Optional[str]) -> str:
    return LOCALES.get(language or DEFAULT_LANGUAGE, LOCALES[DEFAULT_LANGUAGE])


def format_currency(
    amount: Union[int, float, Decimal],
    currency: Optional[str] = DEFAULT_CURRENCY,
    language: Optional[str] = DEFAULT_LANGUAGE,
) -> str:
    return babel_format_currency(Decimal(str(amount)), currency or DEFAULT_CURRENCY, locale=locale_for(language))


def format_date(value: Any, language: Optional[str] = DEFAULT_LANGUAGE) -> Optional[str]:
    """Long calendar date, e.g. ``15 de enero de 2024``; None when unparseable."""
    moment = parse_timestamp(value)
    if moment is None:
        return None
    return babel_format_date(moment.date(), format="long", locale=locale_for(language))


def present(record: Dict[str, Any], currency: Optional[str], language: Optional[str]) -> Dict[str, Any]:
    """Record plus its formatted amount/date for the principal's preferences."""
    presented = dict(record)
    if record.get("amount") is not None:
        presented["formatted_amount"] = format_currency(record["amount"], currency, language)
    presented["formatted_date"] = format_date(record.get("date"), language)
    return presented


def format_month(value: Any, language: Optional[str] = DEFAULT_LANGUAGE) -> Optional[str]:
    """Month and year, e.g. ``enero de 2024``."""
    moment = parse_timestamp(value)
    if moment is None:
        return None
    return format_skeleton("yMMMM", moment, locale=locale_for(language))
