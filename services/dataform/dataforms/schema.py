"""Form schema value types and the locked-field reconciliation rules.

A schema carries two ordered lists: ``fields`` drive the rendered entry form
and ``columns`` describe the spreadsheet export/import layout. The columns are
persisted separately so they may diverge from the live form, but every
locked field always has a required column and shared names follow the field
order.
"""
from __future__ import annotations

import copy
import string
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from django.utils.crypto import get_random_string

from .exceptions import DuplicateFieldError, ValidationError

TEXT = "text"
NUMBER = "number"
TEL = "tel"
EMAIL = "email"
DATE = "date"

FIELD_TYPES = [
    (TEXT, "Text"),
    (NUMBER, "Number"),
    (TEL, "Phone"),
    (EMAIL, "Email"),
    (DATE, "Date"),
]
FIELD_TYPE_KEYS = frozenset(key for key, _ in FIELD_TYPES)

DEFAULT_TITLE = "Data Entry Form"
DEFAULT_HEADER = "Enter the heading"
DEFAULT_SUBMIT_TEXT = "Submit"


@dataclass
class FieldDefinition:
    """One data-entry field of a form."""

    name: str
    label: str
    type: str = TEXT
    required: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FieldDefinition":
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Field name is required.", {"fields": "Field name is required."})
        field_type = str(payload.get("type") or TEXT)
        if field_type not in FIELD_TYPE_KEYS:
            raise ValidationError(
                f"Unsupported field type: {field_type}", {name: f"Unsupported field type: {field_type}"}
            )
        label = payload.get("label")
        return cls(
            name=name,
            label=str(label) if label is not None else name,
            type=field_type,
            required=bool(payload.get("required", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "type": self.type, "required": self.required}


@dataclass
class ColumnDescriptor:
    """One spreadsheet column of the export/import layout."""

    name: str
    label: str
    required: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ColumnDescriptor":
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Column name is required.", {"columns": "Column name is required."})
        label = payload.get("label")
        return cls(
            name=name,
            label=str(label) if label is not None else name,
            required=bool(payload.get("required", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "required": self.required}


# Canonical definitions of the fields whose type, required flag and presence
# are fixed. Only their label may be edited.
LOCKED_FIELDS: Tuple[FieldDefinition, ...] = (
    FieldDefinition(name="number", label="Phone Number", type=TEL, required=True),
    FieldDefinition(name="email", label="Email", type=EMAIL, required=True),
)
_LOCKED_BY_NAME = {definition.name: definition for definition in LOCKED_FIELDS}


def is_locked(name: str) -> bool:
    """Return whether ``name`` is a structurally locked field."""

    return name in _LOCKED_BY_NAME


def locked_definition(name: str) -> FieldDefinition | None:
    return _LOCKED_BY_NAME.get(name)


def random_form_name() -> str:
    return "Form-" + get_random_string(6, allowed_chars=string.ascii_uppercase + string.digits)


@dataclass
class Schema:
    """An owner-scoped, named form definition."""

    fields: List[FieldDefinition] = field(default_factory=list)
    columns: List[ColumnDescriptor] = field(default_factory=list)
    form_name: str = ""
    title: str = DEFAULT_TITLE
    header: str = DEFAULT_HEADER
    submit_text: str = DEFAULT_SUBMIT_TEXT
    owner_id: str | None = None
    form_id: int | None = None
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def field_names(self) -> List[str]:
        return [item.name for item in self.fields]

    def get_field(self, name: str) -> FieldDefinition | None:
        for item in self.fields:
            if item.name == name:
                return item
        return None

    def get_column(self, name: str) -> ColumnDescriptor | None:
        for item in self.columns:
            if item.name == name:
                return item
        return None

    def copy(self) -> "Schema":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], **identity: Any) -> "Schema":
        """Build a reconciled schema from an API or storage payload.

        ``identity`` supplies values that never come from user payloads, such
        as ``owner_id``, ``form_id`` and the timestamps.
        """

        fields = [FieldDefinition.from_dict(item) for item in payload.get("fields") or []]
        ensure_unique(fields, "field")
        raw_columns = payload.get("columns") or []
        if raw_columns:
            columns = [ColumnDescriptor.from_dict(item) for item in raw_columns]
            ensure_unique(columns, "column")
        else:
            columns = derive_columns(fields)

        header = payload.get("header", DEFAULT_HEADER)
        schema = cls(
            fields=fields,
            columns=columns,
            form_name=str(payload.get("form_name") or "").strip(),
            title=str(payload.get("title") or DEFAULT_TITLE),
            header=str(header) if header is not None else "",
            submit_text=str(payload.get("submit_text") or DEFAULT_SUBMIT_TEXT),
            **identity,
        )
        return reconcile(schema)

    def content(self) -> Dict[str, Any]:
        """Return the user-editable part of the schema."""

        return {
            "form_name": self.form_name,
            "title": self.title,
            "header": self.header,
            "submit_text": self.submit_text,
            "fields": [item.to_dict() for item in self.fields],
            "columns": [item.to_dict() for item in self.columns],
        }

    def to_dict(self) -> Dict[str, Any]:
        payload = {"id": self.form_id, "owner_id": self.owner_id, "is_default": self.is_default}
        payload.update(self.content())
        payload["created_at"] = self.created_at
        payload["updated_at"] = self.updated_at
        return payload


def ensure_unique(items: Iterable[Any], kind: str) -> None:
    seen = set()
    for item in items:
        if item.name in seen:
            raise DuplicateFieldError(f"Duplicate {kind} name: {item.name}", {item.name: "Duplicate name."})
        seen.add(item.name)


def derive_columns(fields: Sequence[FieldDefinition]) -> List[ColumnDescriptor]:
    return [ColumnDescriptor(name=item.name, label=item.label, required=item.required) for item in fields]


def sync_column_order(
    fields: Sequence[FieldDefinition], columns: Sequence[ColumnDescriptor]
) -> List[ColumnDescriptor]:
    """Order columns shared with fields by field order; keep the rest after them."""

    by_name = {column.name: column for column in columns}
    field_names = {item.name for item in fields}
    ordered = [by_name[item.name] for item in fields if item.name in by_name]
    ordered.extend(column for column in columns if column.name not in field_names)
    return ordered


def reconcile(schema: Schema) -> Schema:
    """Force the locked fields into ``schema`` and re-sync column order.

    Returns a new schema; applying it to its own output changes nothing.
    """

    result = schema.copy()
    for canonical in LOCKED_FIELDS:
        current = result.get_field(canonical.name)
        if current is None:
            result.fields.append(replace(canonical))
            continue
        current.type = canonical.type
        current.required = canonical.required
        if not current.label.strip():
            current.label = canonical.label

    for canonical in LOCKED_FIELDS:
        current = result.get_field(canonical.name)
        column = result.get_column(canonical.name)
        if column is None:
            result.columns.append(ColumnDescriptor(name=current.name, label=current.label, required=True))
            continue
        column.required = True
        if not column.label.strip():
            column.label = current.label

    result.columns = sync_column_order(result.fields, result.columns)
    return result


def default_schema(owner_id: str | None = None, form_name: str | None = None) -> Schema:
    """Return the built-in default: the locked phone and email fields only."""

    fields = [replace(definition) for definition in LOCKED_FIELDS]
    schema = Schema(
        fields=fields,
        columns=derive_columns(fields),
        form_name=form_name or random_form_name(),
        owner_id=owner_id,
    )
    return reconcile(schema)
