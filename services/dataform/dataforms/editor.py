"""Schema mutations with locked-field enforcement and single-level undo."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Mapping

from django.utils.text import slugify

from .exceptions import LockedFieldError, UnknownFieldError, ValidationError
from .schema import (
    FIELD_TYPE_KEYS,
    TEXT,
    ColumnDescriptor,
    FieldDefinition,
    Schema,
    default_schema,
    is_locked,
    reconcile,
)

logger = logging.getLogger(__name__)

META_ATTRIBUTES = ("title", "header", "submit_text", "form_name")


def placeholder_name(label: str) -> str:
    return slugify(label).replace("-", "_") or "field"


class SchemaEditor:
    """Apply edits to a schema, keeping one snapshot for :meth:`undo`.

    Every successful edit stores the pre-edit schema in the snapshot slot,
    replacing whatever was there, even when the edit changes nothing.
    Rejected edits leave both the schema and the snapshot untouched.
    """

    def __init__(self, schema: Schema, snapshot: Schema | None = None) -> None:
        self.schema = reconcile(schema)
        self.snapshot = snapshot

    @property
    def can_undo(self) -> bool:
        return self.snapshot is not None

    def _apply(self, mutate: Callable[[Schema], None]) -> Schema:
        candidate = self.schema.copy()
        mutate(candidate)
        self.snapshot = self.schema
        self.schema = reconcile(candidate)
        return self.schema

    def _require_field(self, schema: Schema, name: str) -> FieldDefinition:
        current = schema.get_field(name)
        if current is None:
            raise UnknownFieldError(f"Field does not exist: {name}", {name: "Field does not exist."})
        return current

    def set_meta(self, **values: Any) -> Schema:
        unknown = set(values) - set(META_ATTRIBUTES)
        if unknown:
            raise ValidationError(f"Unknown form attribute: {', '.join(sorted(unknown))}")

        def mutate(schema: Schema) -> None:
            for attr, value in values.items():
                setattr(schema, attr, "" if value is None else str(value))

        return self._apply(mutate)

    def rename_field_label(self, name: str, new_label: str) -> Schema:
        def mutate(schema: Schema) -> None:
            current = self._require_field(schema, name)
            current.label = new_label
            column = schema.get_column(name)
            if column is not None:
                column.label = new_label

        return self._apply(mutate)

    def update_field(self, name: str, type: str | None = None, required: bool | None = None) -> Schema:
        if is_locked(name) and (type is not None or required is not None):
            raise LockedFieldError(f"The type and required flag of '{name}' cannot be changed.")
        if type is not None and type not in FIELD_TYPE_KEYS:
            raise ValidationError(f"Unsupported field type: {type}", {name: f"Unsupported field type: {type}"})

        def mutate(schema: Schema) -> None:
            current = self._require_field(schema, name)
            if type is not None:
                current.type = type
            if required is not None:
                current.required = bool(required)
                column = schema.get_column(name)
                if column is not None:
                    column.required = current.required

        return self._apply(mutate)

    def add_field(self, label: str | None = None, type: str = TEXT, required: bool = False) -> Schema:
        if type not in FIELD_TYPE_KEYS:
            raise ValidationError(f"Unsupported field type: {type}")

        def mutate(schema: Schema) -> None:
            names = set(schema.field_names()) | {column.name for column in schema.columns}
            if label:
                new_label = label
            else:
                position = len(schema.fields) + 1
                new_label = f"Field {position}"
                while placeholder_name(new_label) in names:
                    position += 1
                    new_label = f"Field {position}"
            name = placeholder_name(new_label)
            if name in names:
                logger.debug("Skipping add_field for existing name %s", name)
                return
            schema.fields.append(FieldDefinition(name=name, label=new_label, type=type, required=bool(required)))
            schema.columns.append(ColumnDescriptor(name=name, label=new_label, required=bool(required)))

        return self._apply(mutate)

    def remove_field(self, name: str) -> Schema:
        if is_locked(name):
            raise LockedFieldError(f"The field '{name}' cannot be removed.")

        def mutate(schema: Schema) -> None:
            current = self._require_field(schema, name)
            schema.fields.remove(current)

        return self._apply(mutate)

    def move_field(self, name: str, direction: int) -> Schema:
        if direction not in (-1, 1):
            raise ValidationError("Direction must be -1 or 1.")

        def mutate(schema: Schema) -> None:
            current = self._require_field(schema, name)
            index = schema.fields.index(current)
            target = index + direction
            if target < 0 or target >= len(schema.fields):
                return
            schema.fields.insert(target, schema.fields.pop(index))

        return self._apply(mutate)

    def reset(self) -> Schema:
        def mutate(schema: Schema) -> None:
            fresh = default_schema(owner_id=schema.owner_id)
            schema.fields = fresh.fields
            schema.columns = fresh.columns
            for attr in META_ATTRIBUTES:
                setattr(schema, attr, getattr(fresh, attr))

        return self._apply(mutate)

    def replace(self, payload: Mapping[str, Any]) -> Schema:
        """Swap in a whole new schema body, as the customization screen saves it."""

        incoming = Schema.from_dict(payload)
        incoming = replace(
            incoming,
            form_name=incoming.form_name or self.schema.form_name,
            owner_id=self.schema.owner_id,
            form_id=self.schema.form_id,
            is_default=self.schema.is_default,
            created_at=self.schema.created_at,
            updated_at=self.schema.updated_at,
        )

        def mutate(schema: Schema) -> None:
            schema.fields = incoming.fields
            schema.columns = incoming.columns
            for attr in META_ATTRIBUTES:
                setattr(schema, attr, getattr(incoming, attr))

        return self._apply(mutate)

    def undo(self) -> Schema:
        if self.snapshot is None:
            return self.schema
        self.schema = self.snapshot
        self.snapshot = None
        return self.schema

    def apply_operation(self, op: str, arguments: Mapping[str, Any]) -> Schema:
        """Dispatch one named operation, as submitted over the API."""

        handlers = {
            "set_meta": lambda: self.set_meta(**dict(arguments.get("values") or {})),
            "rename_field_label": lambda: self.rename_field_label(
                arguments["name"], str(arguments.get("label") or "")
            ),
            "update_field": lambda: self.update_field(
                arguments["name"], type=arguments.get("type"), required=arguments.get("required")
            ),
            "add_field": lambda: self.add_field(
                label=arguments.get("label") or None,
                type=arguments.get("type") or TEXT,
                required=bool(arguments.get("required", False)),
            ),
            "remove_field": lambda: self.remove_field(arguments["name"]),
            "move_field": lambda: self.move_field(arguments["name"], int(arguments["direction"])),
            "reset": self.reset,
            "undo": self.undo,
        }
        handler = handlers.get(op)
        if handler is None:
            raise ValidationError(f"Unknown operation: {op}")
        try:
            return handler()
        except KeyError as exc:
            raise ValidationError(f"Missing argument for {op}: {exc.args[0]}") from exc
