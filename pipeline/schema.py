"""
Declarative schema validation.

A route declares a list of ``FieldRule`` objects. Each rule inspects one field
(addressed by a dotted path) and may look at sibling fields through the whole
payload. Unlike business rules, schema rules never short-circuit each other:
``SchemaValidator.collect`` runs every rule and returns every violation, in
rule order. Within a single rule the checks bail on the first failure, so one
field contributes at most one error (plus one per bad array item).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import EmailStr, TypeAdapter, ValidationError as PydanticValidationError

from pipeline.errors import ValidationError, ValidationFailure
from pipeline.sanitizer import parse_timestamp

Check = Callable[[Any, Mapping[str, Any]], Optional[str]]
Clock = Callable[[], datetime]

_MISSING = object()
_email_adapter = TypeAdapter(EmailStr)


def lookup(payload: Mapping[str, Any], path: str) -> Any:
    current: Any = payload
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass(frozen=True)
class FieldRule:
    field: str
    checks: Tuple[Check, ...] = ()
    required: Union[bool, Callable[[Mapping[str, Any]], bool]] = True
    required_message: Optional[str] = None
    each: Tuple[Check, ...] = ()
    location: str = "body"

    def is_required(self, payload: Mapping[str, Any]) -> bool:
        if callable(self.required):
            return bool(self.required(payload))
        return self.required

    def _required_message(self) -> str:
        return self.required_message or f"{self.field} is required"

    def evaluate(self, payload: Mapping[str, Any]) -> List[ValidationError]:
        value = lookup(payload, self.field)
        required = self.is_required(payload)
        if value is _MISSING or value is None or (value == "" and not required):
            if required:
                return [self._error(self.field, self._required_message(), None)]
            return []

        for check in self.checks:
            message = check(value, payload)
            if message:
                return [self._error(self.field, message, value)]
        # A present but empty value that no check rejected
        if value == "":
            return [self._error(self.field, self._required_message(), value)]

        errors: List[ValidationError] = []
        if self.each and isinstance(value, list):
            for index, item in enumerate(value):
                for check in self.each:
                    message = check(item, payload)
                    if message:
                        errors.append(self._error(f"{self.field}[{index}]", message, item))
                        break
        return errors

    def _error(self, field: str, message: str, value: Any) -> ValidationError:
        return ValidationError(field=field, message=message, rejected_value=_plain(value), location=self.location)


class SchemaValidator:
    def __init__(self, rules: Sequence[FieldRule]) -> None:
        self.rules = tuple(rules)

    def collect(self, sources: Mapping[str, Mapping[str, Any]]) -> List[ValidationError]:
        errors: List[ValidationError] = []
        for rule in self.rules:
            errors.extend(rule.evaluate(sources.get(rule.location) or {}))
        return errors

    def validate(self, sources: Mapping[str, Mapping[str, Any]]) -> None:
        errors = self.collect(sources)
        if errors:
            raise ValidationFailure(errors)


def optional_rules(rules: Iterable[FieldRule]) -> List[FieldRule]:
    """Partial-update variant: plain required flags are dropped, conditional ones kept."""
    return [rule if callable(rule.required) else replace(rule, required=False) for rule in rules]


def _plain(value: Any) -> Any:
    # Keep error bodies JSON-friendly.
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# --- Checks ------------------------------------------------------------------

def is_string(message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        return None if isinstance(value, str) else message
    return _check


def length(min_len: int, max_len: int, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        if not isinstance(value, str) or not (min_len <= len(value) <= max_len):
            return message
        return None
    return _check


def matches(pattern: str, message: str) -> Check:
    compiled = re.compile(pattern)

    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        if not isinstance(value, str) or not compiled.fullmatch(value):
            return message
        return None
    return _check


def one_of(values: Iterable[str], message: str) -> Check:
    allowed = frozenset(values)

    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        if not isinstance(value, str) or value not in allowed:
            return message
        return None
    return _check


def is_bool(message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        return None if isinstance(value, bool) else message
    return _check


def as_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def decimal_between(low: Decimal, high: Decimal, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        number = as_decimal(value)
        if number is None or not (low <= number <= high):
            return message
        return None
    return _check


def fraction_digits(value: Decimal) -> int:
    """Digits after the decimal point in the written form, ignoring trailing zeros."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def max_decimals(places: int, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        number = as_decimal(value)
        if number is None or fraction_digits(number) > places:
            return message
        return None
    return _check


def is_timestamp(message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        return None if parse_timestamp(value) is not None else message
    return _check


def shift_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


def not_older_than_years(years: int, clock: Clock, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        moment = parse_timestamp(value)
        if moment is None:
            return message
        floor = shift_years(clock(), -years).replace(hour=0, minute=0, second=0, microsecond=0)
        return message if moment < floor else None
    return _check


def not_later_than_years(years: int, clock: Clock, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        moment = parse_timestamp(value)
        if moment is None:
            return message
        ceiling = shift_years(clock(), years)
        return message if moment > ceiling else None
    return _check


def not_before(other: str, message: str) -> Check:
    """Cross-field: this timestamp must not precede the ``other`` field."""
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        start = parse_timestamp(lookup(payload, other))
        end = parse_timestamp(value)
        if start is not None and end is not None and end < start:
            return message
        return None
    return _check


def array(max_items: int, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        if not isinstance(value, list) or len(value) > max_items:
            return message
        return None
    return _check


def email(message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        try:
            _email_adapter.validate_python(value)
        except PydanticValidationError:
            return message
        return None
    return _check


def is_int_between(low: int, high: int, message: str) -> Check:
    def _check(value: Any, payload: Mapping[str, Any]) -> Optional[str]:
        if isinstance(value, bool):
            return message
        try:
            number = int(str(value))
        except ValueError:
            return message
        return None if low <= number <= high else message
    return _check


def when_true(field: str) -> Callable[[Mapping[str, Any]], bool]:
    def _predicate(payload: Mapping[str, Any]) -> bool:
        return lookup(payload, field) is True
    return _predicate
