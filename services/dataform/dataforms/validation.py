"""Value checks and coercion shared by direct entry and spreadsheet import."""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Union

from .exceptions import ValidationError
from .resolver import is_blank
from .schema import DATE, EMAIL, NUMBER, Schema

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_NUMBER_DIGITS = 15

Number = Union[int, float]


def schema_keys(schema: Schema) -> List[str]:
    """Field names followed by the names of columns without a field."""

    names = schema.field_names()
    names.extend(column.name for column in schema.columns if column.name not in names)
    return names


def label_for(name: str, schema: Schema) -> str:
    definition = schema.get_field(name)
    if definition is not None and definition.label:
        return definition.label
    column = schema.get_column(name)
    if column is not None and column.label:
        return column.label
    return name


def type_for(name: str, schema: Schema) -> str:
    definition = schema.get_field(name)
    return definition.type if definition is not None else ""


def is_required(name: str, schema: Schema) -> bool:
    definition = schema.get_field(name)
    column = schema.get_column(name)
    return bool((definition is not None and definition.required) or (column is not None and column.required))


def missing_required(values: Mapping[str, Any], schema: Schema) -> List[str]:
    return [name for name in schema_keys(schema) if is_required(name, schema) and is_blank(values.get(name))]


def invalid_emails(values: Mapping[str, Any], schema: Schema) -> List[str]:
    invalid = []
    for name in schema_keys(schema):
        value = values.get(name)
        if type_for(name, schema) == EMAIL and not is_blank(value):
            if not EMAIL_PATTERN.match(str(value).strip()):
                invalid.append(name)
    return invalid


def coerce_number(value: Any) -> Number:
    """Parse ``value`` as an int or float of at most ``MAX_NUMBER_DIGITS`` integer digits."""

    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"not a number: {value!r}")
    if number.adjusted() >= MAX_NUMBER_DIGITS:
        raise ValueError(f"number out of range: {value!r}")
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def coerce_text(value: Any) -> str:
    # Spreadsheet cells hold phone numbers as floats, e.g. 5551234567.0.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value).strip()


def coerce_date(value: Any) -> str:
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def coerce_values(values: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
    """Convert raw values to their stored representation per field type.

    Blank values become ``""`` for text-like fields and ``None`` for numbers.
    """

    cleaned: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    for name in schema_keys(schema):
        value = values.get(name, "")
        field_type = type_for(name, schema)
        if is_blank(value):
            cleaned[name] = None if field_type == NUMBER else ""
        elif field_type == NUMBER:
            try:
                cleaned[name] = coerce_number(value)
            except ValueError:
                errors[name] = f"{label_for(name, schema)} must be a number"
        elif field_type == DATE:
            cleaned[name] = coerce_date(value)
        else:
            cleaned[name] = coerce_text(value)
    if errors:
        raise ValidationError("; ".join(errors.values()), errors)
    return cleaned


def clean_values(values: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
    """Validate a direct submission against ``schema`` and coerce it.

    Keys that do not belong to the schema are dropped.
    """

    errors: Dict[str, str] = {}
    for name in missing_required(values, schema):
        errors[name] = f"{label_for(name, schema)} is required."
    for name in invalid_emails(values, schema):
        errors.setdefault(name, "Invalid email format")
    if errors:
        message = "All required fields must be filled in." if len(errors) > 1 else next(iter(errors.values()))
        raise ValidationError(message, errors)
    return coerce_values(values, schema)
