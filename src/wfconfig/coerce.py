"""Per-kind value coercion used by the form collector and the API."""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from .errors import ValidationError
from .field_kinds import EDITABLE_FIELDS, FieldKind, kind_of
from .json_text import JsonValueTypeError, check_json_value, parse_json_text

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_NUMERIC_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")

# Postgres limits: integer is 32-bit; numeric holds 131072 digits before the
# point and 16383 after it.
INTEGER_MIN = -(2**31)
INTEGER_MAX = 2**31 - 1
NUMERIC_MAX_INT_DIGITS = 131072
NUMERIC_MAX_SCALE = 16383


def _coerce_text(field: str, value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    return value


def integer_in_range(value: int) -> bool:
    return INTEGER_MIN <= value <= INTEGER_MAX


def numeric_in_range(value: Decimal) -> bool:
    if not value.is_finite():
        return False
    return value.is_zero() or -NUMERIC_MAX_SCALE <= value.adjusted() < NUMERIC_MAX_INT_DIGITS


def _coerce_integer(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, f"Invalid integer value for {field}")
    number: int | None = None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        number = int(value)
    elif isinstance(value, Decimal) and value.is_finite() and INTEGER_MIN <= value <= INTEGER_MAX:
        if value == value.to_integral_value():
            number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        # Longer digit strings are out of range anyway.
        if _INTEGER_RE.fullmatch(text) and len(text.lstrip("+-").lstrip("0")) <= 10:
            number = int(text, 10)
    if number is None or not integer_in_range(number):
        raise ValidationError(field, f"Invalid integer value for {field}")
    return number


def _coerce_numeric(field: str, value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(field, f"Invalid numeric value for {field}")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        # str() keeps the shortest repr, so 0.7 stays Decimal("0.7").
        number = Decimal(str(value))
    elif isinstance(value, str) and _NUMERIC_RE.fullmatch(value.strip()):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(field, f"Invalid numeric value for {field}") from None
    else:
        raise ValidationError(field, f"Invalid numeric value for {field}")
    if not numeric_in_range(number):
        raise ValidationError(field, f"Invalid numeric value for {field}")
    return number


def _coerce_json(field: str, value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_json_text(value)
        except ValueError as exc:
            raise ValidationError(field, f'Invalid JSON in field "{field}": {exc}') from exc
    try:
        check_json_value(value)
    except (JsonValueTypeError, ValueError) as exc:
        raise ValidationError(field, f'Invalid JSON in field "{field}": {exc}') from exc
    return value


_COERCERS: dict[FieldKind, Callable[[str, Any], Any]] = {
    FieldKind.TEXT: _coerce_text,
    FieldKind.INTEGER: _coerce_integer,
    FieldKind.NUMERIC: _coerce_numeric,
    FieldKind.JSON: _coerce_json,
}


def coerce_value(field: str, value: Any) -> Any:
    kind = kind_of(field)
    if kind is None or not kind.editable:
        raise ValidationError(field, f"Field is not editable: {field}")
    return _COERCERS[kind](field, value)


def coerce_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a full update payload, allow-list order, first error wins.

    Keys outside the allow-list are ignored here; callers that must reject
    them check ``unknown_fields`` first.
    """
    clean: dict[str, Any] = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            raise ValidationError(field, f"Missing field: {field}")
        clean[field] = coerce_value(field, data[field])
    return clean


def unknown_fields(data: Mapping[str, Any]) -> list[str]:
    editable = set(EDITABLE_FIELDS)
    return [key for key in data if key not in editable]


def matches_kind(field: str, value: Any) -> bool:
    """True when ``value`` already has the in-memory type of the field's kind."""
    kind = kind_of(field)
    if kind is FieldKind.TEXT:
        return isinstance(value, str)
    if kind is FieldKind.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool) and integer_in_range(value)
    if kind is FieldKind.NUMERIC:
        return isinstance(value, Decimal) and numeric_in_range(value)
    if kind is FieldKind.JSON:
        try:
            check_json_value(value)
        except (JsonValueTypeError, ValueError):
            return False
        return True
    return False
