"""ORM-backed persistence for schemas and records.

Every lookup is scoped by owner id; ids that are missing or belong to
someone else raise the same :class:`NotFoundOrForbidden`.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Mapping

from django.db import transaction
from django.db.models import QuerySet

from .editor import SchemaEditor
from .exceptions import NotFoundOrForbidden, ValidationError
from .models import FormSchema, Record
from .schema import Schema, default_schema, random_form_name

logger = logging.getLogger(__name__)


def _identity(row: FormSchema) -> Dict[str, Any]:
    return {
        "owner_id": row.owner_id,
        "form_id": row.pk,
        "is_default": row.is_default,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def to_schema(row: FormSchema) -> Schema:
    payload = {
        "form_name": row.form_name,
        "title": row.title,
        "header": row.header,
        "submit_text": row.submit_text,
        "fields": row.fields,
        "columns": row.columns,
    }
    return Schema.from_dict(payload, **_identity(row))


def snapshot_of(row: FormSchema) -> Schema | None:
    if not row.previous_snapshot:
        return None
    return Schema.from_dict(row.previous_snapshot, **_identity(row))


def schema_rows(owner_id: str) -> QuerySet:
    return FormSchema.objects.filter(owner_id=owner_id)


def get_schema_row(owner_id: str, form_id: Any) -> FormSchema:
    try:
        return schema_rows(owner_id).get(pk=form_id)
    except (FormSchema.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFoundOrForbidden("Form not found") from exc


def load_schema(owner_id: str, form_id: Any = None) -> Schema | None:
    """Return the owner's schema, or their default schema when no id is given."""

    if form_id is None:
        row = schema_rows(owner_id).filter(is_default=True).first()
        return to_schema(row) if row is not None else None
    row = schema_rows(owner_id).filter(pk=form_id).first() if str(form_id).isdigit() else None
    return to_schema(row) if row is not None else None


def require_schema(owner_id: str, form_id: Any) -> Schema:
    return to_schema(get_schema_row(owner_id, form_id))


def load_or_default(owner_id: str) -> Schema:
    schema = load_schema(owner_id)
    if schema is None:
        schema = default_schema(owner_id=owner_id)
        schema.is_default = True
    return schema


def load_editor(owner_id: str, form_id: Any) -> SchemaEditor:
    row = get_schema_row(owner_id, form_id)
    return SchemaEditor(to_schema(row), snapshot_of(row))


def _ensure_unique_name(owner_id: str, form_name: str, exclude_id: int | None) -> None:
    clash = schema_rows(owner_id).filter(form_name=form_name)
    if exclude_id is not None:
        clash = clash.exclude(pk=exclude_id)
    if clash.exists():
        raise ValidationError("Form name already exists", {"form_name": "Form name already exists"})


def save_schema(schema: Schema, snapshot: Schema | None = None) -> Schema:
    """Upsert ``schema`` by owner and id, or by owner alone for the default.

    The last write wins; there is no version check.
    """

    if not schema.owner_id:
        raise ValidationError("An owner is required to save a form.")

    if schema.form_id is not None:
        row = get_schema_row(schema.owner_id, schema.form_id)
    elif schema.is_default:
        row = schema_rows(schema.owner_id).filter(is_default=True).first() or FormSchema(
            owner_id=schema.owner_id, is_default=True
        )
    else:
        row = FormSchema(owner_id=schema.owner_id)

    content = schema.content()
    content["form_name"] = content["form_name"] or row.form_name or random_form_name()
    _ensure_unique_name(schema.owner_id, content["form_name"], row.pk)
    for attr, value in content.items():
        setattr(row, attr, value)
    row.previous_snapshot = snapshot.content() if snapshot is not None else None
    row.save()
    logger.info("Saved form %s (%s) for owner %s", row.pk, row.form_name, row.owner_id)
    return to_schema(row)


def create_schema(schema: Schema) -> Schema:
    """Persist ``schema`` as a new, non-default form."""

    if schema.form_id is not None:
        raise ValidationError("A new form cannot carry an id.")
    return save_schema(replace(schema, is_default=False))


def save_editor(editor: SchemaEditor) -> Schema:
    saved = save_schema(editor.schema, editor.snapshot)
    editor.schema = saved
    return saved


def delete_schema(owner_id: str, form_id: Any) -> int:
    """Delete a schema and every record collected against it."""

    with transaction.atomic():
        row = get_schema_row(owner_id, form_id)
        removed = delete_all_for_form(row.pk)
        row.delete()
    logger.info("Deleted form %s for owner %s with %s records", form_id, owner_id, removed)
    return removed


def insert_record(owner_id: str, data: Mapping[str, Any], form_id: int | None = None) -> Record:
    return Record.objects.create(owner_id=owner_id, form_id=form_id, data=dict(data))


def find_records(
    owner_id: str,
    form_id: Any = None,
    ordering: str | None = None,
    search: str | None = None,
) -> QuerySet:
    """Return the owner's records, newest first unless ``ordering`` is given.

    ``ordering`` accepts ``submitted_at`` or a field name, optionally
    prefixed with ``-``. ``search`` matches any stored value, case-insensitively.
    """

    records = Record.objects.filter(owner_id=owner_id)
    if form_id is not None:
        records = records.filter(form_id=form_id)
    if search:
        matching = [record.pk for record in records if _matches(record, search)]
        records = records.filter(pk__in=matching)
    if ordering:
        descending = ordering.startswith("-")
        key = ordering.lstrip("-")
        if not key or "__" in key:
            raise ValidationError(f"Cannot order records by {ordering}")
        if key in {"submitted_at", "updated_at", "id"}:
            expression = key
        else:
            expression = f"data__{key}"
        records = records.order_by(f"-{expression}" if descending else expression, "-id")
    return records


def _matches(record: Record, search: str) -> bool:
    needle = search.strip().lower()
    return any(needle in str(value).lower() for value in (record.data or {}).values())


def get_owned_record(record_id: Any, owner_id: str) -> Record:
    try:
        return Record.objects.get(pk=record_id, owner_id=owner_id)
    except (Record.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFoundOrForbidden("Record not found or access denied") from exc


def update_owned(record_id: Any, owner_id: str, patch: Mapping[str, Any]) -> Record:
    record = get_owned_record(record_id, owner_id)
    data = dict(record.data or {})
    data.update(patch)
    record.data = data
    record.save(update_fields=["data", "updated_at"])
    return record


def replace_owned(record_id: Any, owner_id: str, data: Mapping[str, Any]) -> Record:
    record = get_owned_record(record_id, owner_id)
    record.data = dict(data)
    record.save(update_fields=["data", "updated_at"])
    return record


def delete_owned(record_id: Any, owner_id: str) -> None:
    get_owned_record(record_id, owner_id).delete()


def delete_all_for_form(form_id: int) -> int:
    removed, _ = Record.objects.filter(form_id=form_id).delete()
    return removed
