from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from pipeline.schema import (
    Clock,
    FieldRule,
    array,
    decimal_between,
    email,
    is_bool,
    is_string,
    is_timestamp,
    length,
    matches,
    max_decimals,
    not_before,
    not_later_than_years,
    not_older_than_years,
    one_of,
    optional_rules,
    when_true,
)
from transactions.transaction_model import (
    CURRENCIES,
    LANGUAGES,
    PAYMENT_METHODS,
    RECURRING_FREQUENCIES,
    REPORT_FORMATS,
    SORT_FIELDS,
    SORT_ORDERS,
    TransactionKind,
)

AMOUNT_MIN = Decimal("0.01")
AMOUNT_MAX = Decimal("999999999.99")
TAG_PATTERN = r"[a-zA-Z0-9áéíóúÁÉÍÓÚñÑüÜ\s\-_]+"
NAME_PATTERN = r"[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+"
PASSWORD_PATTERN = r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&]).+"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def transaction_rules(kind: TransactionKind, clock: Clock = utc_now, partial: bool = False) -> List[FieldRule]:
    noun = "income" if kind is TransactionKind.INCOME else "expense"
    rules = [
        FieldRule(
            "description",
            (length(1, 200, "Description must be between 1 and 200 characters"),),
        ),
        FieldRule(
            "amount",
            (
                decimal_between(AMOUNT_MIN, AMOUNT_MAX, "Amount must be a number between 0.01 and 999,999,999.99"),
                max_decimals(2, "Amount cannot have more than 2 decimal places"),
            ),
        ),
        FieldRule(
            "category",
            (one_of(kind.categories, f"Invalid {noun} category"),),
        ),
        FieldRule(
            "date",
            (
                is_timestamp("Date must be a valid ISO 8601 date"),
                not_older_than_years(1, clock, "Date cannot be more than one year in the past"),
                not_later_than_years(1, clock, "Date cannot be more than one year in the future"),
            ),
        ),
        FieldRule(
            "paymentMethod",
            (one_of(PAYMENT_METHODS, "Invalid payment method"),),
            required=False,
        ),
        FieldRule(
            "notes",
            (length(0, 500, "Notes cannot exceed 500 characters"),),
            required=False,
        ),
        FieldRule(
            "tags",
            (array(10, "No more than 10 tags can be added"),),
            required=False,
            each=(
                length(1, 20, "Each tag must be between 1 and 20 characters"),
                matches(TAG_PATTERN, "Tags may only contain letters, numbers, spaces, hyphens and underscores"),
            ),
        ),
        FieldRule(
            "isRecurring",
            (is_bool("isRecurring must be a boolean"),),
            required=False,
        ),
        FieldRule(
            "recurringFrequency",
            (one_of(RECURRING_FREQUENCIES, "Invalid recurring frequency"),),
            required=when_true("isRecurring"),
            required_message="recurringFrequency is required when isRecurring is true",
        ),
    ]
    if kind is TransactionKind.EXPENSE:
        rules.append(FieldRule("isEssential", (is_bool("isEssential must be a boolean"),), required=False))
    return optional_rules(rules) if partial else rules


def list_query_rules(kind: TransactionKind) -> List[FieldRule]:
    noun = "income" if kind is TransactionKind.INCOME else "expense"
    rules = [
        FieldRule("startDate", (is_timestamp("Start date must be a valid ISO 8601 date"),), required=False, location="query"),
        FieldRule(
            "endDate",
            (
                is_timestamp("End date must be a valid ISO 8601 date"),
                not_before("startDate", "End date must not precede start date"),
            ),
            required=False,
            location="query",
        ),
        FieldRule("sortBy", (one_of(SORT_FIELDS, "Invalid sort field"),), required=False, location="query"),
        FieldRule("sortOrder", (one_of(SORT_ORDERS, "Sort order must be asc or desc"),), required=False, location="query"),
        FieldRule("category", (one_of(kind.categories, f"Invalid {noun} category"),), required=False, location="query"),
    ]
    if kind is TransactionKind.EXPENSE:
        rules.append(FieldRule("isEssential", (is_bool("isEssential must be a boolean"),), required=False, location="query"))
    return rules


def date_range_rules(required: bool = False) -> List[FieldRule]:
    return [
        FieldRule("startDate", (is_timestamp("Start date must be a valid ISO 8601 date"),), required=required, location="query"),
        FieldRule(
            "endDate",
            (
                is_timestamp("End date must be a valid ISO 8601 date"),
                not_before("startDate", "End date must not precede start date"),
            ),
            required=required,
            location="query",
        ),
    ]


def report_query_rules() -> List[FieldRule]:
    return date_range_rules(required=True) + [
        FieldRule("format", (one_of(REPORT_FORMATS, "Format must be json or csv"),), required=False, location="query"),
    ]


def register_rules() -> List[FieldRule]:
    return [
        FieldRule(
            "name",
            (
                length(2, 50, "Name must be between 2 and 50 characters"),
                matches(NAME_PATTERN, "Name may only contain letters and spaces"),
            ),
        ),
        FieldRule(
            "email",
            (
                email("Must be a valid email"),
                length(3, 100, "Email cannot exceed 100 characters"),
            ),
        ),
        FieldRule("password", password_checks()),
    ]


def password_checks() -> tuple:
    return (
        length(8, 128, "Password must be between 8 and 128 characters"),
        matches(
            PASSWORD_PATTERN,
            "Password must contain at least one lowercase letter, one uppercase letter, one number and one special character",
        ),
    )


def login_rules() -> List[FieldRule]:
    return [
        FieldRule("username", (email("Must be a valid email"),)),
        FieldRule("password", (is_string("Password must be a string"),), required_message="Password is required"),
    ]


def settings_rules() -> List[FieldRule]:
    return [
        FieldRule("preferences.currency", (one_of(CURRENCIES, "Invalid currency"),), required=False),
        FieldRule("preferences.language", (one_of(LANGUAGES, "Invalid language"),), required=False),
        FieldRule(
            "preferences.notifications.email",
            (is_bool("Email notifications must be a boolean"),),
            required=False,
        ),
        FieldRule(
            "preferences.notifications.push",
            (is_bool("Push notifications must be a boolean"),),
            required=False,
        ),
    ]
