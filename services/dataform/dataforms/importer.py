"""Bulk import of spreadsheet rows against a form schema."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence

from django.conf import settings
from django.db import transaction

from . import store
from .exceptions import EmptyInputError, ValidationError
from .resolver import build_alias_table, resolve
from .schema import DATE, EMAIL, NUMBER, TEL, Schema
from .validation import coerce_values, invalid_emails, label_for, missing_required

logger = logging.getLogger(__name__)

SAMPLE_VALUES = {
    "name": "John Doe",
    "age": 25,
    "number": "123-456-7890",
    "email": "john@example.com",
    "hobby": "Reading",
}
SAMPLE_BY_TYPE = {
    NUMBER: 1,
    TEL: "123-456-7890",
    EMAIL: "someone@example.com",
    DATE: "2024-01-31",
}


@dataclass
class ImportReport:
    imported_count: int = 0
    total_rows: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.imported_count > 0

    @property
    def message(self) -> str:
        if not self.succeeded:
            return "No data could be imported"
        return f"Successfully imported {self.imported_count} out of {self.total_rows} records"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "importedCount": self.imported_count,
            "totalRows": self.total_rows,
            "errors": list(self.errors),
        }


def _error_limit() -> int:
    return int(getattr(settings, "DATAFORM_IMPORT_ERROR_LIMIT", 10))


def check_row(number: int, values: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
    """Validate one resolved row and return its stored values.

    ``number`` is the 1-based row position used in error messages.
    """

    missing = missing_required(values, schema)
    if missing:
        labels = ", ".join(label_for(name, schema) for name in missing)
        raise ValidationError(f"Row {number}: Missing required fields ({labels})")
    if invalid_emails(values, schema):
        raise ValidationError(f"Row {number}: Invalid email format")
    try:
        return coerce_values(values, schema)
    except ValidationError as exc:
        raise ValidationError(f"Row {number}: {exc.message}", exc.errors) from exc


def run_import(
    rows: Sequence[Mapping[str, Any]],
    schema: Schema,
    owner_id: str,
    form_id: int | None = None,
    insert: Callable[..., Any] | None = None,
) -> ImportReport:
    """Resolve, validate and persist every row, collecting per-row errors.

    A row that fails is skipped and the next one is processed. Raises
    :class:`EmptyInputError` when there are no rows at all.
    """

    if not rows:
        raise EmptyInputError()
    if insert is None:
        insert = store.insert_record

    logger.info("Importing %s rows for owner %s (form %s)", len(rows), owner_id, form_id)
    table = build_alias_table(schema)
    report = ImportReport(total_rows=len(rows))
    errors: List[str] = []
    for index, row in enumerate(rows, start=1):
        try:
            data = check_row(index, resolve(row, schema, table), schema)
            with transaction.atomic():
                insert(owner_id=owner_id, form_id=form_id, data=data)
        except ValidationError as exc:
            logger.debug("Rejected import row: %s", exc.message)
            errors.append(exc.message)
            continue
        except Exception as exc:
            logger.exception("Storing import row %s failed", index)
            errors.append(f"Row {index}: {exc}")
            continue
        report.imported_count += 1

    report.errors = errors[: _error_limit()]
    logger.info(
        "Import finished for owner %s: %s of %s rows imported, %s errors",
        owner_id,
        report.imported_count,
        report.total_rows,
        len(errors),
    )
    return report


def sample_rows(schema: Schema) -> List[List[Any]]:
    """Header row of column labels followed by one example row."""

    names = [column.name for column in schema.columns]
    header = [column.label or column.name for column in schema.columns]
    example = []
    for name in names:
        definition = schema.get_field(name)
        field_type = definition.type if definition is not None else ""
        example.append(SAMPLE_VALUES.get(name, SAMPLE_BY_TYPE.get(field_type, "Sample")))
    return [header, example]
